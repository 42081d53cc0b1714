"""
Unit tests for story exchange orchestration.

The model client is replaced with a scripted fake; storage is a real
temporary SQLite database.
"""

import json
import os
import shutil
import tempfile

import pytest

from five_lines_story.core.accounting import UsageAccountant
from five_lines_story.core.orchestrator import StoryOrchestrator, story_title
from five_lines_story.core.pricing import DEFAULT_MODEL
from five_lines_story.core.token_counter import TokenUsage
from five_lines_story.errors import (
    ForbiddenError,
    ModelClientError,
    NotFoundError,
    ResponseParseError,
    ResponseSchemaError,
)
from five_lines_story.sdk.base import ModelReply
from five_lines_story.storage.repository import ConversationStore, UsageLedger, initialize_schema

LINES = {f"line{n}": f"Line {n} of a pivot story" for n in range(1, 6)}
STORY_REPLY = json.dumps({
    "story": LINES,
    "metadata": {"language": "en", "tone": "inspirational", "themes": ["grit"]},
})


class ScriptedModelClient:
    """Returns queued replies and remembers every request."""

    model = DEFAULT_MODEL

    def __init__(self, *replies, usage=TokenUsage(100, 200)):
        self.replies = list(replies)
        self.usage = usage
        self.calls = []

    def complete(self, system_prompt, user_message, output_schema=None):
        self.calls.append((system_prompt, user_message, output_schema))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ModelReply(text=reply, usage=self.usage, model=self.model)


class TestStoryOrchestrator:
    """Test suggest / generate / refine exchanges."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.conversations = ConversationStore(self.db_path)
        self.ledger = UsageLedger(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _orchestrator(self, client):
        return StoryOrchestrator(client, self.conversations, UsageAccountant(self.ledger))

    def test_suggest_paths_records_usage_only(self):
        client = ScriptedModelClient(
            'Here are some paths: {"paths":[{"id":1,"title":"Grit",'
            '"description":"...","focus":"resilience"}]}'
        )

        result = self._orchestrator(client).suggest_paths("user_1", "a startup pivot {{x}}")

        assert result.payload.paths[0].title == "Grit"
        assert result.language == "en"
        assert result.conversation is None
        assert client.calls[0][1] == "a startup pivot"
        assert self.conversations.list_recent("user_1") == []
        events = self.ledger.fetch_recent_events(user_id="user_1")
        assert [e.prompt_type for e in events] == ["suggest_paths"]

    def test_generate_story_persists_and_links_event(self):
        client = ScriptedModelClient(STORY_REPLY)

        result = self._orchestrator(client).generate_story(
            "user_1", "a startup pivot", selected_path={"title": "Grit", "focus": "resilience"}
        )

        stored = self.conversations.get(result.conversation.id)
        assert stored.ai_response == LINES
        assert stored.title == "Grit"
        assert stored.prompt_type == "generate_story"
        assert stored.tokens_used == 300
        event = self.ledger.fetch_recent_events(user_id="user_1")[0]
        assert event.conversation_id == stored.id
        assert result.usage_dict() == {
            "input_tokens": 100,
            "output_tokens": 200,
            "total_tokens": 300,
            "cost_usd": pytest.approx(100 / 1e6 * 3.0 + 200 / 1e6 * 15.0),
        }

    def test_generate_sends_output_schema(self):
        client = ScriptedModelClient(STORY_REPLY)
        self._orchestrator(client).generate_story("user_1", "idea")
        schema = client.calls[0][2]
        assert set(schema["required"]) == {"story", "metadata"}

    def test_malformed_reply_writes_nothing(self):
        client = ScriptedModelClient('{"story": {"line1": "oops",, }')

        with pytest.raises(ResponseParseError):
            self._orchestrator(client).generate_story("user_1", "idea")

        assert self.conversations.list_recent("user_1") == []
        assert self.ledger.fetch_recent_events(user_id="user_1") == []

    def test_wrong_shape_reply_writes_nothing(self):
        broken = json.loads(STORY_REPLY)
        del broken["story"]["line3"]
        client = ScriptedModelClient(json.dumps(broken))

        with pytest.raises(ResponseSchemaError):
            self._orchestrator(client).generate_story("user_1", "idea")

        assert self.conversations.list_recent("user_1") == []

    def test_failed_charge_keeps_story_unsaved(self):
        client = ScriptedModelClient(STORY_REPLY)
        client.model = "unpriced-model"

        with pytest.raises(ValueError, match="Unsupported model"):
            self._orchestrator(client).generate_story("user_1", "idea")

        assert self.conversations.list_recent("user_1") == []
        assert self.ledger.fetch_recent_events(user_id="user_1") == []

    def test_model_failure_propagates(self):
        client = ScriptedModelClient(ModelClientError("upstream down"))
        with pytest.raises(ModelClientError):
            self._orchestrator(client).suggest_paths("user_1", "idea")
        assert self.ledger.fetch_recent_events() == []

    def test_refine_without_prior_generate(self):
        """Refining needs no earlier exchange on the server."""
        reply = json.dumps({"story": LINES, "changed_line": 2, "explanation": "Sharper goal"})
        client = ScriptedModelClient(reply)

        result = self._orchestrator(client).refine_line("user_1", LINES, 2, "make it sharper")

        assert result.payload.changed_line == 2
        assert result.conversation.user_input == "make it sharper"
        assert result.conversation.title is None
        assert "LINE TO CHANGE: 2" in client.calls[0][1]

    def test_refine_inherits_title(self):
        client = ScriptedModelClient(
            STORY_REPLY,
            json.dumps({"story": LINES, "changed_line": 5, "explanation": "Happier ending"})
        )
        orchestrator = self._orchestrator(client)
        original = orchestrator.generate_story("user_1", "idea", custom_direction="A quiet comeback")

        refined = orchestrator.refine_line(
            "user_1", LINES, 5, "end on a high", conversation_id=original.conversation.id
        )

        assert refined.conversation.title == "A quiet comeback"
        assert refined.conversation.id != original.conversation.id

    def test_refine_someone_elses_story(self):
        client = ScriptedModelClient(STORY_REPLY)
        orchestrator = self._orchestrator(client)
        original = orchestrator.generate_story("user_1", "idea")

        with pytest.raises(ForbiddenError):
            orchestrator.refine_line(
                "user_2", LINES, 1, "change it", conversation_id=original.conversation.id
            )
        assert len(client.calls) == 1

    def test_refine_unknown_story(self):
        with pytest.raises(NotFoundError):
            self._orchestrator(ScriptedModelClient()).refine_line(
                "user_1", LINES, 1, "change it", conversation_id="missing"
            )

    def test_delete_story(self):
        orchestrator = self._orchestrator(ScriptedModelClient(STORY_REPLY))
        conversation = orchestrator.generate_story("user_1", "idea").conversation

        with pytest.raises(ForbiddenError):
            orchestrator.delete_story("user_2", conversation.id)
        orchestrator.delete_story("user_1", conversation.id)
        with pytest.raises(NotFoundError):
            orchestrator.delete_story("user_1", conversation.id)


class TestStoryTitle:
    """Test title selection for stored stories."""

    def test_path_title_first(self):
        assert story_title("idea", {"title": "Grit"}, "custom") == "Grit"

    def test_custom_direction_truncated(self):
        assert story_title("idea", None, "x" * 150) == "x" * 100

    def test_falls_back_to_input(self):
        assert story_title("a startup pivot") == "a startup pivot"
