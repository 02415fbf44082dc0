from __future__ import annotations

import copy
import time
from dataclasses import fields
from threading import RLock
from typing import Any, Callable

from .models import Answer, Player, Room


_ROOM_FIELDS = frozenset(f.name for f in fields(Room))
_PLAYER_FIELDS = frozenset(f.name for f in fields(Player))


class RecordStore:
    """Keyed storage for Room, Player and Answer records.

    Each call is atomic for the single record it touches; nothing spans
    records. Records handed out are copies, so callers always read-modify-write
    through the store.
    """

    def put_room(self, room: Room) -> None:
        raise NotImplementedError

    def get_room(self, room_id: str) -> Room | None:
        raise NotImplementedError

    def get_room_by_code(self, room_code: str) -> Room | None:
        raise NotImplementedError

    def update_room(self, room_id: str, expect: dict[str, Any] | None = None, **changes: Any) -> Room | None:
        raise NotImplementedError

    def delete_room(self, room_id: str) -> bool:
        raise NotImplementedError

    def list_rooms(self) -> list[Room]:
        raise NotImplementedError

    def put_player(self, player: Player) -> None:
        raise NotImplementedError

    def get_player(self, player_id: str) -> Player | None:
        raise NotImplementedError

    def update_player(self, player_id: str, **changes: Any) -> Player | None:
        raise NotImplementedError

    def delete_player(self, player_id: str) -> bool:
        raise NotImplementedError

    def list_players(self, room_id: str) -> list[Player]:
        raise NotImplementedError

    def put_answer(self, answer: Answer) -> None:
        raise NotImplementedError

    def list_answers(self, room_id: str) -> list[Answer]:
        raise NotImplementedError

    def delete_answer(self, answer_id: str) -> bool:
        raise NotImplementedError

    def purge(self) -> dict[str, int]:
        raise NotImplementedError


class MemoryRecordStore(RecordStore):
    """In-process store. Rooms past ``expires_at`` read as absent and are
    dropped lazily, the same way a TTL-enabled table would hide them. Dropping a
    room takes its players and answers with it, and every new room sweeps the
    rest of the expired ones.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._room_codes: dict[str, str] = {}
        self._players: dict[str, Player] = {}
        self._answers: dict[str, Answer] = {}

    def _live_room_locked(self, room_id: str) -> Room | None:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        if room.expires_at and room.expires_at <= self._clock():
            self._drop_room_locked(room_id)
            return None
        return room

    def _drop_room_locked(self, room_id: str) -> bool:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return False
        if self._room_codes.get(room.room_code) == room_id:
            del self._room_codes[room.room_code]
        for player_id in [k for k, p in self._players.items() if p.room_id == room_id]:
            del self._players[player_id]
        for answer_id in [k for k, a in self._answers.items() if a.room_id == room_id]:
            del self._answers[answer_id]
        return True

    def _sweep_expired_locked(self) -> int:
        now = self._clock()
        expired = [k for k, r in self._rooms.items() if r.expires_at and r.expires_at <= now]
        for room_id in expired:
            self._drop_room_locked(room_id)
        return len(expired)

    # Rooms

    def put_room(self, room: Room) -> None:
        with self._lock:
            self._sweep_expired_locked()
            previous = self._rooms.get(room.room_id)
            if previous is not None and previous.room_code != room.room_code:
                self._room_codes.pop(previous.room_code, None)
            self._rooms[room.room_id] = copy.deepcopy(room)
            self._room_codes[room.room_code] = room.room_id

    def get_room(self, room_id: str) -> Room | None:
        with self._lock:
            room = self._live_room_locked(room_id)
            return copy.deepcopy(room) if room else None

    def get_room_by_code(self, room_code: str) -> Room | None:
        with self._lock:
            room_id = self._room_codes.get(room_code)
            if room_id is None:
                return None
            room = self._live_room_locked(room_id)
            return copy.deepcopy(room) if room else None

    def update_room(self, room_id: str, expect: dict[str, Any] | None = None, **changes: Any) -> Room | None:
        """Apply ``changes`` to one room atomically.

        With ``expect``, the write only happens while every named field still
        holds the given value. Returns None when the room is gone or an
        expectation fails.
        """
        unknown = (set(changes) | set(expect or ())) - _ROOM_FIELDS
        if unknown:
            raise KeyError(f"unknown room fields: {sorted(unknown)}")
        if "room_id" in changes or "room_code" in changes:
            raise KeyError("room identity cannot be updated")

        with self._lock:
            room = self._live_room_locked(room_id)
            if room is None:
                return None
            if expect and any(getattr(room, name) != value for name, value in expect.items()):
                return None
            for name, value in changes.items():
                setattr(room, name, copy.deepcopy(value))
            return copy.deepcopy(room)

    def delete_room(self, room_id: str) -> bool:
        with self._lock:
            return self._drop_room_locked(room_id)

    def list_rooms(self) -> list[Room]:
        with self._lock:
            rooms = []
            for room_id in list(self._rooms.keys()):
                room = self._live_room_locked(room_id)
                if room is not None:
                    rooms.append(copy.deepcopy(room))
            return rooms

    # Players

    def put_player(self, player: Player) -> None:
        with self._lock:
            self._players[player.player_id] = copy.deepcopy(player)

    def get_player(self, player_id: str) -> Player | None:
        with self._lock:
            player = self._players.get(player_id)
            return copy.deepcopy(player) if player else None

    def update_player(self, player_id: str, **changes: Any) -> Player | None:
        unknown = set(changes) - _PLAYER_FIELDS
        if unknown:
            raise KeyError(f"unknown player fields: {sorted(unknown)}")

        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                return None
            for name, value in changes.items():
                setattr(player, name, value)
            return copy.deepcopy(player)

    def delete_player(self, player_id: str) -> bool:
        with self._lock:
            return self._players.pop(player_id, None) is not None

    def list_players(self, room_id: str) -> list[Player]:
        with self._lock:
            players = [copy.deepcopy(p) for p in self._players.values() if p.room_id == room_id]
        # Insertion order breaks ties between equal timestamps.
        return sorted(players, key=lambda p: p.joined_at)

    # Answers

    def put_answer(self, answer: Answer) -> None:
        with self._lock:
            self._answers[answer.answer_id] = copy.deepcopy(answer)

    def list_answers(self, room_id: str) -> list[Answer]:
        with self._lock:
            answers = [copy.deepcopy(a) for a in self._answers.values() if a.room_id == room_id]
        return sorted(answers, key=lambda a: a.submitted_at)

    def delete_answer(self, answer_id: str) -> bool:
        with self._lock:
            return self._answers.pop(answer_id, None) is not None

    def purge(self) -> dict[str, int]:
        with self._lock:
            counts = {
                "rooms": len(self._rooms),
                "players": len(self._players),
                "answers": len(self._answers),
            }
            self._rooms.clear()
            self._room_codes.clear()
            self._players.clear()
            self._answers.clear()
            return counts
