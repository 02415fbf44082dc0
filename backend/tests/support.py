from __future__ import annotations

from typing import Any, Callable, Sequence

from mindsync.ai.generators import CommentGenerator, TopicSupplier
from mindsync.game.errors import UpstreamError
from mindsync.game.models import Answer
from mindsync.game.service import GameService
from mindsync.game.store import MemoryRecordStore
from mindsync.realtime.events import Notifier


class FakeTopicSupplier(TopicSupplier):
    def __init__(self, batch_size: int = 10) -> None:
        self.batch_size = batch_size
        self.calls: list[list[str]] = []
        self.fail = False
        self.batch: list[str] | None = None
        self._counter = 0

    def generate_topics(self, used_topics: Sequence[str]) -> list[str]:
        self.calls.append(list(used_topics))
        if self.fail:
            raise UpstreamError("topic service unavailable")
        if self.batch is not None:
            return list(self.batch)
        topics = []
        for _ in range(self.batch_size):
            self._counter += 1
            topics.append(f"topic-{self._counter}")
        return topics


class FakeCommentGenerator(CommentGenerator):
    def __init__(self, batch_size: int = 30) -> None:
        self.batch_size = batch_size
        self.calls: list[tuple[str, list[Answer]]] = []
        self.fail = False
        self.prefix = "comment"
        self.before_reply: Callable[[], Any] | None = None

    def generate_comments(self, topic: str, answers: Sequence[Answer]) -> list[str]:
        self.calls.append((topic, list(answers)))
        if self.fail:
            raise UpstreamError("comment service unavailable")
        if self.before_reply is not None:
            self.before_reply()
        return [f"{self.prefix}-{i}" for i in range(self.batch_size)]


class InlineSpawner:
    """Runs detached work immediately on the calling thread."""

    def __init__(self) -> None:
        self.spawned = 0

    def __call__(self, target: Callable[..., Any], *args: Any) -> None:
        self.spawned += 1
        target(*args)


class DeferredSpawner:
    """Holds detached work until the test decides to run it."""

    def __init__(self) -> None:
        self.pending: list[tuple[Callable[..., Any], tuple]] = []

    def __call__(self, target: Callable[..., Any], *args: Any) -> None:
        self.pending.append((target, args))

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for target, args in pending:
            target(*args)


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def room_updated(self, view: dict) -> None:
        self.events.append(("room_updated", view))

    def player_joined(self, room_id: str, player: dict) -> None:
        self.events.append(("player_joined", player))

    def answer_submitted(self, room_id: str, answer: dict) -> None:
        self.events.append(("answer_submitted", answer))

    def judge_result(self, room_id: str, result: dict) -> None:
        self.events.append(("judge_result", result))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def make_service(spawn=None, notifier=None, store=None) -> GameService:
    return GameService(
        store=store or MemoryRecordStore(),
        topic_supplier=FakeTopicSupplier(),
        comment_generator=FakeCommentGenerator(),
        spawn=spawn or InlineSpawner(),
        notifier=notifier,
        room_ttl_sec=86400,
        topic_batch_size=10,
        topic_low_water_mark=3,
        comment_batch_size=30,
    )
