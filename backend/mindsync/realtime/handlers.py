from __future__ import annotations

import logging

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game.service import GameService
from . import events


logger = logging.getLogger(__name__)


def register_socketio_handlers(socketio: SocketIO, service: GameService) -> None:
    """Push channel. Clients subscribe to a room and receive its updates;
    every game operation itself goes through the HTTP API."""

    @socketio.on("room:subscribe")
    def room_subscribe(data):
        payload = data or {}
        room_id = str(payload.get("roomId", "")).strip()
        if not room_id:
            emit(events.ROOM_ERROR, {"error": "invalid_room"})
            return {"ok": False, "error": "invalid_room"}

        view = service.get_room(room_id)
        if not view:
            emit(events.ROOM_ERROR, {"error": "room_not_found"})
            return {"ok": False, "error": "room_not_found"}

        join_room(room_id)
        logger.debug("socket %s subscribed to room %s", request.sid, room_id)

        # Snapshot so the subscriber does not wait for the next change.
        emit(events.ROOM_STATE, view, to=request.sid)
        return {"ok": True}

    @socketio.on("room:unsubscribe")
    def room_unsubscribe(data):
        payload = data or {}
        room_id = str(payload.get("roomId", "")).strip()
        if not room_id:
            return {"ok": False, "error": "invalid_room"}

        leave_room(room_id)
        return {"ok": True}

    @socketio.on("disconnect")
    def on_disconnect(*_args):
        # Socket rooms are dropped by Flask-SocketIO; players stay until they leave.
        logger.debug("socket %s disconnected", request.sid)
