from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from openai import OpenAI

from ..config import Config
from ..game.errors import UpstreamError
from ..game.models import Answer


logger = logging.getLogger(__name__)

_LIST_MARKER_RE = re.compile(r"^(?:[-*•・]+|\d+[.)、:]|\(\d+\))\s*")

TOPIC_SYSTEM_PROMPT = """You write prompts for a party game where every player tries to give the SAME answer as everyone else.

Rules for a good prompt:
- The answers should converge on one to three obvious candidates.
- Be concrete but general: pick one category and narrow it with "classic", "famous" or "typical".
- Stay inside common knowledge. If you name something specific, name exactly one thing.
- Never stack two qualifiers ("a famous artist's famous song") and never be abstract ("summer?").

Good examples:
- A classic summer sport?
- A typical egg dish?
- A supercar manufacturer?
- A drink every convenience store sells?
- The most famous castle in the country?

Output one prompt per line, with no numbering or bullets."""

TOPIC_USER_PROMPT = "Generate {count} prompts whose answers converge on one to three common candidates."

COMMENT_PROMPT = """Prompt: {topic}

Below are the players' answers. Write {count} short live-chat style reactions, the kind that scroll across a video.

Every player ({names}) must get at least one reaction.

Style:
- Short, roughly 2 to 8 words each.
- Mix empathy, teasing, surprise and jokes; avoid repeating yourself.
- Internet slang is welcome, laughter like "lol" in moderation.
- If everyone gave the same answer, lean into celebrating.
- Include a few reactions that compare the answers with each other.

Answers:
{answers}

Output one reaction per line, with no numbering or bullets."""


def split_lines(text: str, limit: int | None = None) -> list[str]:
    """Turn a model reply into a clean list, one entry per non-empty line."""
    results: list[str] = []
    for raw in (text or "").splitlines():
        line = _LIST_MARKER_RE.sub("", raw.strip()).strip()
        if line:
            results.append(line)
    if limit is not None:
        results = results[:limit]
    return results


def describe_answer(answer: Answer) -> str:
    if answer.answer_type == "DRAWING":
        return "(answered with a drawing)" if answer.drawing_data else "(no answer)"
    return answer.text_answer or "(no answer)"


class TopicSupplier:
    """Produces a batch of candidate topics, steering away from ``used_topics``.

    Avoiding repeats is best effort; callers must not rely on uniqueness.
    """

    def generate_topics(self, used_topics: Sequence[str]) -> list[str]:
        raise NotImplementedError


class CommentGenerator:
    """Produces short reaction strings for a topic and the round's answers."""

    def generate_comments(self, topic: str, answers: Sequence[Answer]) -> list[str]:
        raise NotImplementedError


class _ChatCompletionsMixin:
    def __init__(
        self,
        client: Any = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self.model = model or Config.OPENAI_MODEL
        self.timeout = timeout if timeout is not None else Config.OPENAI_TIMEOUT_SEC

    @property
    def client(self) -> Any:
        if self._client is None:
            if not Config.OPENAI_API_KEY:
                raise UpstreamError("OPENAI_API_KEY is not configured", code="generator_not_configured")
            self._client = OpenAI(
                api_key=Config.OPENAI_API_KEY,
                base_url=Config.OPENAI_BASE_URL or None,
            )
        return self._client

    def _complete(self, messages: list[dict], temperature: float, max_tokens: int) -> str:
        client = self.client
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.timeout,
            )
        except Exception as e:
            raise UpstreamError(f"text generation request failed: {e}") from e

        if not response.choices:
            raise UpstreamError("text generation returned no choices")
        return (response.choices[0].message.content or "").strip()


class OpenAITopicSupplier(_ChatCompletionsMixin, TopicSupplier):
    def __init__(self, client: Any = None, model: str | None = None, timeout: float | None = None,
                 batch_size: int | None = None) -> None:
        super().__init__(client=client, model=model, timeout=timeout)
        self.batch_size = batch_size or Config.TOPIC_BATCH_SIZE

    def generate_topics(self, used_topics: Sequence[str]) -> list[str]:
        system_prompt = TOPIC_SYSTEM_PROMPT
        if used_topics:
            system_prompt += "\n\nAlready used (do not repeat any of these):\n" + "\n".join(used_topics)

        text = self._complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": TOPIC_USER_PROMPT.format(count=self.batch_size)},
            ],
            temperature=0.9,
            max_tokens=600,
        )
        topics = split_lines(text, limit=self.batch_size)
        logger.info("generated %d topics", len(topics))
        return topics


class OpenAICommentGenerator(_ChatCompletionsMixin, CommentGenerator):
    def __init__(self, client: Any = None, model: str | None = None, timeout: float | None = None,
                 batch_size: int | None = None) -> None:
        super().__init__(
            client=client,
            model=model,
            timeout=timeout if timeout is not None else Config.COMMENT_TIMEOUT_SEC,
        )
        self.batch_size = batch_size or Config.COMMENT_BATCH_SIZE

    def generate_comments(self, topic: str, answers: Sequence[Answer]) -> list[str]:
        names = ", ".join(a.player_name for a in answers)
        lines = "\n".join(f"{a.player_name}: {describe_answer(a)}" for a in answers)
        prompt = COMMENT_PROMPT.format(
            topic=topic,
            count=self.batch_size,
            names=names,
            answers=lines or "(nobody answered)",
        )

        text = self._complete(
            [{"role": "user", "content": prompt}],
            temperature=0.9,
            max_tokens=1000,
        )
        comments = split_lines(text, limit=self.batch_size)
        logger.info("generated %d comments", len(comments))
        return comments
