from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


RoomState = Literal["WAITING", "ANSWERING", "JUDGING"]
PlayerRole = Literal["HOST", "PLAYER"]
AnswerType = Literal["TEXT", "DRAWING"]

ROOM_STATES: tuple[str, ...] = ("WAITING", "ANSWERING", "JUDGING")
ANSWER_TYPES: tuple[str, ...] = ("TEXT", "DRAWING")


@dataclass
class Player:
    player_id: str
    room_id: str
    name: str
    role: PlayerRole = "PLAYER"
    connected: bool = True
    joined_at: str = ""


@dataclass
class Answer:
    answer_id: str
    room_id: str
    player_id: str
    player_name: str
    answer_type: AnswerType = "TEXT"
    text_answer: str | None = None
    drawing_data: str | None = None
    submitted_at: str = ""


@dataclass
class Room:
    room_id: str
    room_code: str
    host_player_id: str | None
    state: RoomState = "WAITING"
    current_topic: str | None = None
    topic_pool: list[str] = field(default_factory=list)
    used_topics: list[str] = field(default_factory=list)
    last_judge_result: bool | None = None
    # Set only when a comment batch lands; not the judge decision time.
    comments_at: str | None = None
    comments: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    expires_at: int = 0


@dataclass
class JudgeResult:
    room_id: str
    is_match: bool = False
    decided_at: str = ""


@dataclass
class CommentBatch:
    room_id: str
    comments: list[str] = field(default_factory=list)
    generated_at: str = ""
