from __future__ import annotations

import logging
import random
import string
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from ..config import Config
from ..realtime.events import Notifier
from .errors import ForbiddenError, GameError, InvalidStateError, NotFoundError, UpstreamError, ValidationError
from .models import ANSWER_TYPES, Answer, CommentBatch, JudgeResult, Player, Room
from .store import RecordStore


logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_ATTEMPTS = 20
UNKNOWN_PLAYER_NAME = "Unknown"
MAX_NAME_LENGTH = 16


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def generate_room_code(length: int | None = None) -> str:
    return "".join(random.choices(ROOM_CODE_ALPHABET, k=length or Config.ROOM_CODE_LENGTH))


def normalize_room_code(code: str) -> str:
    return (code or "").strip().upper()


def validate_name(name: str) -> str:
    n = (name or "").strip()
    if not n:
        raise ValidationError("name is required", code="invalid_name")
    if len(n) > MAX_NAME_LENGTH:
        raise ValidationError(f"name must be at most {MAX_NAME_LENGTH} characters", code="invalid_name")
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        raise ValidationError("name contains forbidden characters", code="invalid_name")
    for ch in n:
        if ord(ch) < 32:
            raise ValidationError("name contains control characters", code="invalid_name")
    return n


def _spawn_thread(target: Callable[..., Any], *args: Any) -> threading.Thread:
    t = threading.Thread(target=target, args=args, daemon=True)
    t.start()
    return t


def player_public(player: Player) -> dict:
    return {
        "playerId": player.player_id,
        "roomId": player.room_id,
        "name": player.name,
        "role": player.role,
        "connected": player.connected,
        "joinedAt": player.joined_at,
    }


def answer_public(answer: Answer) -> dict:
    return {
        "answerId": answer.answer_id,
        "roomId": answer.room_id,
        "playerId": answer.player_id,
        "playerName": answer.player_name,
        "answerType": answer.answer_type,
        "textAnswer": answer.text_answer,
        "drawingData": answer.drawing_data,
        "submittedAt": answer.submitted_at,
    }


def judge_result_public(result: JudgeResult) -> dict:
    # "judgedAt" here is the decision time, unrelated to the room's judgedAt.
    return {
        "roomId": result.room_id,
        "isMatch": result.is_match,
        "judgedAt": result.decided_at,
    }


def comment_batch_public(batch: CommentBatch) -> dict:
    return {
        "roomId": batch.room_id,
        "comments": list(batch.comments),
        "generatedAt": batch.generated_at,
    }


def answer_progress(players: Sequence[Player], answers: Sequence[Answer]) -> dict:
    """Who has answered this round. Repeated submissions count once."""
    player_ids = [p.player_id for p in players]
    answered = {a.player_id for a in answers}
    answered_count = sum(1 for pid in player_ids if pid in answered)
    return {
        "answered": answered_count,
        "total": len(player_ids),
        "allAnswered": bool(player_ids) and answered_count == len(player_ids),
        "waitingFor": [pid for pid in player_ids if pid not in answered],
    }


def room_view(room: Room, players: Sequence[Player], answers: Sequence[Answer]) -> dict:
    return {
        "roomId": room.room_id,
        "roomCode": room.room_code,
        "hostPlayerId": room.host_player_id,
        "state": room.state,
        "currentTopic": room.current_topic,
        "topicPool": list(room.topic_pool),
        "usedTopics": list(room.used_topics),
        "lastJudgeResult": room.last_judge_result,
        # Comment completion time, kept under the historical key.
        "judgedAt": room.comments_at,
        "comments": list(room.comments),
        "createdAt": room.created_at,
        "updatedAt": room.updated_at,
        "expiresAt": room.expires_at,
        "players": [player_public(p) for p in players],
        "answers": [answer_public(a) for a in answers],
        "progress": answer_progress(players, answers),
    }


class GameService:
    """Room lifecycle: WAITING -> ANSWERING -> JUDGING -> (ANSWERING | WAITING).

    Every operation re-reads the records it needs from ``store`` and writes
    back only the fields it owns. Comment generation runs detached through
    ``spawn`` and only ever writes ``comments``/``comments_at``.
    """

    def __init__(
        self,
        store: RecordStore,
        topic_supplier,
        comment_generator,
        spawn: Callable[..., Any] | None = None,
        notifier: Notifier | None = None,
        room_ttl_sec: int | None = None,
        topic_batch_size: int | None = None,
        topic_low_water_mark: int | None = None,
        comment_batch_size: int | None = None,
    ) -> None:
        self.store = store
        self.topic_supplier = topic_supplier
        self.comment_generator = comment_generator
        self.spawn = spawn or _spawn_thread
        self.notifier = notifier or Notifier()
        self.room_ttl_sec = room_ttl_sec or Config.ROOM_TTL_SEC
        self.topic_batch_size = topic_batch_size or Config.TOPIC_BATCH_SIZE
        self.topic_low_water_mark = (
            topic_low_water_mark if topic_low_water_mark is not None else Config.TOPIC_LOW_WATER_MARK
        )
        self.comment_batch_size = comment_batch_size or Config.COMMENT_BATCH_SIZE

    # Helpers

    def _notify(self, method: str, *args: Any) -> None:
        try:
            getattr(self.notifier, method)(*args)
        except Exception:
            logger.warning("notifier %s failed", method, exc_info=True)

    def _require_room(self, room_id: str) -> Room:
        room = self.store.get_room(room_id) if room_id else None
        if room is None:
            raise NotFoundError(f"room {room_id!r} not found", code="room_not_found")
        return room

    @staticmethod
    def _require_state(room: Room, action: str, *states: str) -> None:
        if room.state not in states:
            raise InvalidStateError(
                f"cannot {action} while room is {room.state}",
                code=f"invalid_state_for_{action}",
            )

    def _compose(self, room: Room) -> dict:
        players = self.store.list_players(room.room_id)
        answers = self.store.list_answers(room.room_id)
        return room_view(room, players, answers)

    def _refreshed_view(self, room_id: str) -> dict:
        room = self._require_room(room_id)
        view = self._compose(room)
        self._notify("room_updated", view)
        return view

    def _allocate_room_code(self) -> str:
        for _ in range(ROOM_CODE_ATTEMPTS):
            code = generate_room_code()
            if self.store.get_room_by_code(code) is None:
                return code
        raise GameError("could not allocate a free room code", code="room_code_unavailable", status=503)

    def _fetch_topics(self, used_topics: Sequence[str]) -> list[str]:
        try:
            topics = self.topic_supplier.generate_topics(list(used_topics))
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(f"topic supplier failed: {e}", code="topic_generation_failed") from e

        topics = [t.strip() for t in (topics or []) if t and t.strip()][: self.topic_batch_size]
        if not topics:
            raise UpstreamError("topic supplier returned no topics", code="topic_generation_failed")
        return topics

    def _delete_answers(self, room_id: str, player_id: str | None = None) -> int:
        deleted = 0
        for answer in self.store.list_answers(room_id):
            if player_id is not None and answer.player_id != player_id:
                continue
            if self.store.delete_answer(answer.answer_id):
                deleted += 1
            else:
                logger.warning("answer %s vanished before delete", answer.answer_id)
        return deleted

    # Rooms and players

    def create_room(self, host_name: str) -> dict:
        name = validate_name(host_name)

        stamp = now_iso()
        room_id = str(uuid.uuid4())
        host = Player(
            player_id=str(uuid.uuid4()),
            room_id=room_id,
            name=name,
            role="HOST",
            connected=True,
            joined_at=stamp,
        )
        room = Room(
            room_id=room_id,
            room_code=self._allocate_room_code(),
            host_player_id=host.player_id,
            state="WAITING",
            created_at=stamp,
            updated_at=stamp,
            expires_at=int(time.time()) + self.room_ttl_sec,
        )
        self.store.put_room(room)
        self.store.put_player(host)

        logger.info("room %s created (code=%s, host=%s)", room.room_id, room.room_code, host.player_id)
        return room_view(room, [host], [])

    def join_room(self, room_code: str, player_name: str) -> Player:
        name = validate_name(player_name)
        code = normalize_room_code(room_code)
        if not code:
            raise ValidationError("room code is required", code="invalid_room_code")

        room = self.store.get_room_by_code(code)
        if room is None:
            raise NotFoundError(f"room {code!r} not found", code="room_not_found")

        player = Player(
            player_id=str(uuid.uuid4()),
            room_id=room.room_id,
            name=name,
            role="PLAYER",
            connected=True,
            joined_at=now_iso(),
        )
        self.store.put_player(player)

        logger.info("player %s joined room %s", player.player_id, room.room_id)
        self._notify("player_joined", room.room_id, player_public(player))
        self._notify("room_updated", self._compose(room))
        return player

    def leave_room(self, room_id: str, player_id: str) -> bool:
        player = self.store.get_player(player_id)
        self.store.delete_player(player_id)

        # Host hand-off runs for the room the player actually belonged to.
        if player is not None and player.room_id != room_id:
            logger.warning("player %s left via room %s but belongs to %s", player_id, room_id, player.room_id)
            room_id = player.room_id

        room = self.store.get_room(room_id) if room_id else None
        if room is None:
            return True

        if room.host_player_id == player_id:
            remaining = self.store.list_players(room_id)
            if remaining:
                successor = remaining[0]
                self.store.update_player(successor.player_id, role="HOST")
                self.store.update_room(room_id, host_player_id=successor.player_id, updated_at=now_iso())
                logger.info("host of room %s passed to %s", room_id, successor.player_id)
            else:
                self.store.update_room(room_id, host_player_id=None, updated_at=now_iso())
                logger.info("room %s has no players left", room_id)

        self._refreshed_view(room_id)
        return True

    def kick_player(self, room_id: str, player_id: str, kicked_player_id: str) -> bool:
        room = self._require_room(room_id)
        if room.host_player_id != player_id:
            raise ForbiddenError("only the host can remove players")
        if player_id == kicked_player_id:
            raise ValidationError("the host cannot remove themselves", code="cannot_kick_self")

        kicked = self.store.get_player(kicked_player_id)
        if kicked is None or kicked.room_id != room_id:
            raise NotFoundError(f"player {kicked_player_id!r} not in room", code="player_not_found")

        self.store.delete_player(kicked_player_id)
        removed = self._delete_answers(room_id, player_id=kicked_player_id)
        self.store.update_room(room_id, updated_at=now_iso())

        logger.info("player %s removed from room %s (%d answers dropped)", kicked_player_id, room_id, removed)
        self._refreshed_view(room_id)
        return True

    # Game flow

    def start_game(self, room_id: str) -> dict:
        room = self._require_room(room_id)
        self._require_state(room, "start_game", "WAITING")

        topics = self._fetch_topics(room.used_topics)
        first, rest = topics[0], topics[1:]

        self.store.update_room(
            room_id,
            state="ANSWERING",
            current_topic=first,
            topic_pool=rest,
            used_topics=list(room.used_topics) + [first],
            last_judge_result=None,
            updated_at=now_iso(),
        )
        logger.info("room %s started with topic %r (%d in pool)", room_id, first, len(rest))
        return self._refreshed_view(room_id)

    def submit_answer(
        self,
        room_id: str,
        player_id: str,
        answer_type: str,
        text: str | None = None,
        drawing: str | None = None,
    ) -> Answer:
        kind = (answer_type or "").strip().upper()
        if kind not in ANSWER_TYPES:
            raise ValidationError(f"unknown answer type {answer_type!r}", code="invalid_answer_type")
        if kind == "TEXT":
            if not (text or "").strip() or drawing:
                raise ValidationError("a TEXT answer needs textAnswer only", code="invalid_answer")
            text, drawing = text.strip(), None
        else:
            if not drawing or (text or "").strip():
                raise ValidationError("a DRAWING answer needs drawingData only", code="invalid_answer")
            text = None

        room = self._require_room(room_id)
        self._require_state(room, "submit_answer", "ANSWERING")

        # Display name only; a missing player does not block the answer.
        player = self.store.get_player(player_id)
        player_name = player.name if player is not None else UNKNOWN_PLAYER_NAME

        answer = Answer(
            answer_id=str(uuid.uuid4()),
            room_id=room_id,
            player_id=player_id,
            player_name=player_name,
            answer_type=kind,
            text_answer=text,
            drawing_data=drawing,
            submitted_at=now_iso(),
        )
        self.store.put_answer(answer)

        logger.info("answer %s submitted in room %s by %s", answer.answer_id, room_id, player_id)
        self._notify("answer_submitted", room_id, answer_public(answer))
        return answer

    def start_judging(self, room_id: str) -> dict:
        room = self._require_room(room_id)
        self._require_state(room, "start_judging", "ANSWERING")

        self.store.update_room(room_id, state="JUDGING", updated_at=now_iso())
        view = self._refreshed_view(room_id)

        # Previous comments stay visible until the new batch lands.
        topic = room.current_topic or ""
        answers = self.store.list_answers(room_id)
        self.spawn(self._comment_task, room_id, topic, answers)
        logger.info("room %s judging; comment generation dispatched", room_id)
        return view

    def _generate_comments(self, topic: str, answers: Sequence[Answer]) -> list[str]:
        try:
            comments = self.comment_generator.generate_comments(topic, answers)
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(f"comment generator failed: {e}", code="comment_generation_failed") from e

        comments = [c for c in (comments or []) if c][: self.comment_batch_size]
        if not comments:
            raise UpstreamError("comment generator returned nothing", code="comment_generation_failed")
        return comments

    def generate_judging_comments(self, room_id: str) -> CommentBatch:
        room = self._require_room(room_id)
        comments = self._generate_comments(room.current_topic or "", self.store.list_answers(room_id))

        stamp = now_iso()
        if self.store.update_room(room_id, comments=comments, comments_at=stamp, updated_at=stamp) is None:
            raise NotFoundError(f"room {room_id!r} disappeared", code="room_not_found")

        logger.info("room %s received %d comments", room_id, len(comments))
        self._refreshed_view(room_id)
        return CommentBatch(room_id=room_id, comments=comments, generated_at=stamp)

    def _comment_task(self, room_id: str, topic: str, answers: Sequence[Answer]) -> None:
        # The batch belongs to the judging phase that dispatched it.
        phase = {"state": "JUDGING", "current_topic": topic}
        try:
            room = self.store.get_room(room_id)
            if room is None or room.state != "JUDGING" or (room.current_topic or "") != topic:
                logger.info("room %s left the judging phase for %r; comments skipped", room_id, topic)
                return

            comments = self._generate_comments(topic, answers)
            stamp = now_iso()
            if self.store.update_room(room_id, expect=phase, comments=comments, comments_at=stamp, updated_at=stamp) is None:
                logger.info("room %s moved on before comments for %r landed; batch dropped", room_id, topic)
                return

            logger.info("room %s received %d comments", room_id, len(comments))
            self._refreshed_view(room_id)
        except GameError as e:
            logger.warning("comment generation for room %s gave up: %s", room_id, e.message)
        except Exception:
            logger.exception("comment generation for room %s crashed", room_id)

    def judge_answers(self, room_id: str, is_match: bool) -> JudgeResult:
        if not isinstance(is_match, bool):
            raise ValidationError("isMatch must be a boolean", code="invalid_judgement")

        room = self._require_room(room_id)
        self._require_state(room, "judge_answers", "JUDGING")

        stamp = now_iso()
        self.store.update_room(room_id, last_judge_result=is_match, updated_at=stamp)

        result = JudgeResult(room_id=room_id, is_match=is_match, decided_at=stamp)
        logger.info("room %s judged: match=%s", room_id, is_match)
        self._notify("judge_result", room_id, judge_result_public(result))
        return result

    def next_round(self, room_id: str) -> dict:
        room = self._require_room(room_id)
        self._require_state(room, "next_round", "JUDGING")

        pool = list(room.topic_pool)
        used = list(room.used_topics)
        if len(pool) <= self.topic_low_water_mark:
            logger.info("room %s topic pool low (%d), replenishing", room_id, len(pool))
            pool.extend(self._fetch_topics(used))

        removed = self._delete_answers(room_id)

        topic = pool.pop(0)
        used.append(topic)
        self.store.update_room(
            room_id,
            state="ANSWERING",
            current_topic=topic,
            topic_pool=pool,
            used_topics=used,
            last_judge_result=None,
            comments_at=None,
            updated_at=now_iso(),
        )
        logger.info("room %s next round: %r (%d answers cleared, %d in pool)", room_id, topic, removed, len(pool))
        return self._refreshed_view(room_id)

    def end_game(self, room_id: str) -> dict:
        self._require_room(room_id)

        # Pool, history, comments and answers are intentionally kept.
        self.store.update_room(
            room_id,
            state="WAITING",
            current_topic=None,
            last_judge_result=None,
            updated_at=now_iso(),
        )
        logger.info("room %s back to waiting", room_id)
        return self._refreshed_view(room_id)

    # Queries

    def get_room(self, room_id: str) -> dict | None:
        room = self.store.get_room(room_id) if room_id else None
        return self._compose(room) if room else None

    def get_room_by_code(self, room_code: str) -> dict | None:
        room = self.store.get_room_by_code(normalize_room_code(room_code))
        return self._compose(room) if room else None

    def list_players(self, room_id: str) -> list[Player]:
        return self.store.list_players(room_id)

    def list_answers(self, room_id: str) -> list[Answer]:
        return self.store.list_answers(room_id)

    def answer_progress(self, room_id: str) -> dict:
        self._require_room(room_id)
        return answer_progress(self.store.list_players(room_id), self.store.list_answers(room_id))

    # Administration

    def list_rooms(self) -> list[dict]:
        return [self._compose(r) for r in self.store.list_rooms()]

    def purge_all(self) -> dict[str, int]:
        counts = self.store.purge()
        logger.warning("all data purged: %s", counts)
        return counts
