"""
Story exchange orchestration.

Each public method runs one stateless exchange:
quota check -> build message -> model call -> normalize -> persist and account.
Nothing is persisted or charged unless the reply normalizes cleanly, and a
stored story is always committed together with its usage charge.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel

from ..errors import ForbiddenError, NotFoundError, ResponseParseError
from ..sdk.base import ModelClient, ModelReply
from ..storage.models import Conversation
from ..storage.repository import ConversationStore, new_conversation
from .accounting import UsageAccountant
from .normalizer import (
    PathsPayload,
    RefinePayload,
    StoryPayload,
    normalize,
    output_schema,
)
from .prompts import (
    PromptType,
    build_generate_message,
    build_refine_message,
    detect_language,
    get_prompt,
    sanitize_for_ai,
)
from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

TITLE_LENGTH = 100
PROMPT_EXCERPT_LENGTH = 500


@dataclass(frozen=True)
class ExchangeResult:
    """Outcome of one successful exchange."""
    payload: BaseModel
    usage: TokenUsage
    cost_usd: float
    model: str
    conversation: Optional[Conversation] = None
    language: Optional[str] = None

    def usage_dict(self) -> Dict[str, Any]:
        return {
            "input_tokens": self.usage.input_tokens,
            "output_tokens": self.usage.output_tokens,
            "total_tokens": self.usage.total_tokens,
            "cost_usd": self.cost_usd,
        }


def story_title(
    user_input: str,
    selected_path: Optional[Mapping[str, Any]] = None,
    custom_direction: Optional[str] = None
) -> str:
    """Title for a generated story: path title, custom direction or input."""
    if selected_path and selected_path.get("title"):
        return str(selected_path["title"])
    if custom_direction:
        return custom_direction[:TITLE_LENGTH]
    return user_input[:TITLE_LENGTH]


class StoryOrchestrator:
    """Runs suggest / generate / refine exchanges for a user.

    The multi-step flow (suggest -> choose -> generate -> refine) is owned by
    the client; every call here stands alone.
    """

    def __init__(
        self,
        model_client: ModelClient,
        conversations: ConversationStore,
        accountant: UsageAccountant
    ):
        self.model_client = model_client
        self.conversations = conversations
        self.accountant = accountant

    def _call_model(
        self,
        user_id: str,
        kind: PromptType,
        user_message: str,
        payload_type: Type[BaseModel]
    ) -> Tuple[str, ModelReply, BaseModel]:
        self.accountant.check_quota(user_id, kind)

        system_prompt = get_prompt(kind)
        reply = self.model_client.complete(
            system_prompt,
            user_message,
            output_schema=output_schema(payload_type)
        )
        try:
            payload = normalize(reply.text, payload_type, reply.structured)
        except ResponseParseError as e:
            logger.warning(
                "Unusable %s reply for user %s: %s", kind.value, user_id, e
            )
            raise
        return system_prompt, reply, payload

    def suggest_paths(self, user_id: str, user_input: str) -> ExchangeResult:
        """Ask the model for three narrative directions for an idea.

        Only a usage event is recorded; paths are not stored as history.
        """
        kind = PromptType.SUGGEST_PATHS
        sanitized = sanitize_for_ai(user_input)
        language = detect_language(sanitized)

        _, reply, payload = self._call_model(user_id, kind, sanitized, PathsPayload)

        event = self.accountant.record(user_id, kind, reply.usage, reply.model)
        return ExchangeResult(
            payload=payload,
            usage=reply.usage,
            cost_usd=event.cost_usd,
            model=reply.model,
            language=language
        )

    def generate_story(
        self,
        user_id: str,
        user_input: str,
        selected_path: Optional[Mapping[str, Any]] = None,
        custom_direction: Optional[str] = None
    ) -> ExchangeResult:
        """Write a five-line story and store it in the user's history."""
        kind = PromptType.GENERATE_STORY
        message = build_generate_message(user_input, selected_path, custom_direction)

        system_prompt, reply, payload = self._call_model(user_id, kind, message, StoryPayload)

        conversation = new_conversation(
            user_id=user_id,
            user_input=user_input,
            ai_response=payload.story.model_dump(),
            prompt_type=kind.value,
            usage=reply.usage,
            title=story_title(user_input, selected_path, custom_direction),
            prompt_used=system_prompt[:PROMPT_EXCERPT_LENGTH]
        )
        event = self.accountant.record(
            user_id, kind, reply.usage, reply.model, conversation=conversation
        )
        return ExchangeResult(
            payload=payload,
            usage=reply.usage,
            cost_usd=event.cost_usd,
            model=reply.model,
            conversation=conversation
        )

    def refine_line(
        self,
        user_id: str,
        story: Mapping[str, str],
        line_number: int,
        suggestion: str,
        conversation_id: Optional[str] = None
    ) -> ExchangeResult:
        """Rewrite one line of a story and store the refined story.

        ``conversation_id`` names the stored story being refined; it must
        belong to the caller and its title carries over to the new row.

        Raises:
            NotFoundError: If conversation_id names no conversation
            ForbiddenError: If the conversation belongs to another user
        """
        kind = PromptType.REFINE_LINE

        source = None
        if conversation_id:
            source = self.conversations.get(conversation_id)
            if source is None:
                raise NotFoundError("Story not found")
            if source.user_id != user_id:
                raise ForbiddenError("Unauthorized to refine this story")

        message = build_refine_message(story, line_number, suggestion)
        system_prompt, reply, payload = self._call_model(user_id, kind, message, RefinePayload)

        if payload.changed_line != line_number:
            logger.info(
                "Model changed line %d although line %d was requested",
                payload.changed_line, line_number
            )

        conversation = new_conversation(
            user_id=user_id,
            user_input=suggestion,
            ai_response=payload.story.model_dump(),
            prompt_type=kind.value,
            usage=reply.usage,
            title=source.title if source else None,
            prompt_used=system_prompt[:PROMPT_EXCERPT_LENGTH]
        )
        event = self.accountant.record(
            user_id, kind, reply.usage, reply.model, conversation=conversation
        )
        return ExchangeResult(
            payload=payload,
            usage=reply.usage,
            cost_usd=event.cost_usd,
            model=reply.model,
            conversation=conversation
        )

    def delete_story(self, user_id: str, conversation_id: str) -> None:
        """Remove a stored story owned by the user.

        Raises:
            NotFoundError: If the conversation does not exist
            ForbiddenError: If it belongs to another user
        """
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Story not found")
        if conversation.user_id != user_id:
            raise ForbiddenError("Unauthorized to delete this story")
        self.conversations.delete(user_id, conversation_id)
