from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest import mock

from mindsync.ai.generators import (
    OpenAICommentGenerator,
    OpenAITopicSupplier,
    describe_answer,
    split_lines,
)
from mindsync.config import Config
from mindsync.game.errors import UpstreamError
from mindsync.game.models import Answer


class FakeCompletions:
    def __init__(self, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class SplitLinesTests(unittest.TestCase):
    def test_strips_blank_lines_and_markers(self) -> None:
        text = "1. Classic egg dish?\n\n- Famous castle?\n・ Winter sport?\n3x3 basketball rules?\n"
        self.assertEqual(
            split_lines(text),
            ["Classic egg dish?", "Famous castle?", "Winter sport?", "3x3 basketball rules?"],
        )

    def test_limit(self) -> None:
        self.assertEqual(split_lines("a\nb\nc", limit=2), ["a", "b"])


class TopicSupplierTests(unittest.TestCase):
    def test_generates_at_most_batch_size(self) -> None:
        completions = FakeCompletions("\n".join(f"topic {i}" for i in range(12)))
        supplier = OpenAITopicSupplier(client=fake_client(completions), model="test-model", batch_size=10)

        topics = supplier.generate_topics([])

        self.assertEqual(len(topics), 10)
        self.assertEqual(completions.requests[0]["model"], "test-model")
        self.assertIn("timeout", completions.requests[0])

    def test_used_topics_are_sent(self) -> None:
        completions = FakeCompletions("new one")
        supplier = OpenAITopicSupplier(client=fake_client(completions))

        supplier.generate_topics(["old one", "older one"])

        system_prompt = completions.requests[0]["messages"][0]["content"]
        self.assertIn("old one", system_prompt)
        self.assertIn("older one", system_prompt)

    def test_transport_failure_is_upstream_error(self) -> None:
        supplier = OpenAITopicSupplier(client=fake_client(FakeCompletions(error=RuntimeError("boom"))))
        with self.assertRaises(UpstreamError):
            supplier.generate_topics([])

    def test_missing_api_key_is_upstream_error(self) -> None:
        with mock.patch.object(Config, "OPENAI_API_KEY", ""):
            supplier = OpenAITopicSupplier()
            with self.assertRaises(UpstreamError) as ctx:
                supplier.generate_topics([])
        self.assertEqual(ctx.exception.code, "generator_not_configured")


class CommentGeneratorTests(unittest.TestCase):
    def test_mixed_answers_reach_prompt(self) -> None:
        completions = FakeCompletions("\n".join(f"lol {i}" for i in range(40)))
        generator = OpenAICommentGenerator(client=fake_client(completions), batch_size=30)
        answers = [
            Answer(answer_id="1", room_id="r", player_id="a", player_name="Alice", text_answer="cat"),
            Answer(
                answer_id="2",
                room_id="r",
                player_id="b",
                player_name="Bob",
                answer_type="DRAWING",
                drawing_data="data:image/png;base64,AAAA",
            ),
        ]

        comments = generator.generate_comments("A pet?", answers)

        self.assertEqual(len(comments), 30)
        prompt = completions.requests[0]["messages"][0]["content"]
        self.assertIn("A pet?", prompt)
        self.assertIn("Alice: cat", prompt)
        self.assertIn("Bob: (answered with a drawing)", prompt)

    def test_empty_choices_is_upstream_error(self) -> None:
        class NoChoices(FakeCompletions):
            def create(self, **kwargs):
                return SimpleNamespace(choices=[])

        generator = OpenAICommentGenerator(client=fake_client(NoChoices()))
        with self.assertRaises(UpstreamError):
            generator.generate_comments("topic", [])

    def test_describe_answer_placeholders(self) -> None:
        blank = Answer(answer_id="1", room_id="r", player_id="a", player_name="A")
        self.assertEqual(describe_answer(blank), "(no answer)")


if __name__ == "__main__":
    unittest.main()
