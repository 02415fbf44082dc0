from __future__ import annotations

import logging
from typing import Any

from flask_socketio import SocketIO


logger = logging.getLogger(__name__)

ROOM_STATE = "room:state"
PLAYER_JOINED = "player:joined"
ANSWER_SUBMITTED = "answer:submitted"
JUDGE_RESULT = "judge:result"
ROOM_ERROR = "room:error"


class Notifier:
    """Push side channel. Clients that only poll never depend on it."""

    def room_updated(self, view: dict) -> None:
        pass

    def player_joined(self, room_id: str, player: dict) -> None:
        pass

    def answer_submitted(self, room_id: str, answer: dict) -> None:
        pass

    def judge_result(self, room_id: str, result: dict) -> None:
        pass


class SocketIONotifier(Notifier):
    def __init__(self, socketio: SocketIO) -> None:
        self.socketio = socketio

    def _emit(self, event: str, payload: Any, room_id: str) -> None:
        logger.debug("push %s to room %s", event, room_id)
        self.socketio.emit(event, payload, to=room_id)

    def room_updated(self, view: dict) -> None:
        self._emit(ROOM_STATE, view, view["roomId"])

    def player_joined(self, room_id: str, player: dict) -> None:
        self._emit(PLAYER_JOINED, player, room_id)

    def answer_submitted(self, room_id: str, answer: dict) -> None:
        self._emit(ANSWER_SUBMITTED, answer, room_id)

    def judge_result(self, room_id: str, result: dict) -> None:
        self._emit(JUDGE_RESULT, result, room_id)
