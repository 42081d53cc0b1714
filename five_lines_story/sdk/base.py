"""
Shared types for model client adapters.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from ..core.token_counter import TokenUsage


@dataclass(frozen=True)
class ModelReply:
    """Raw reply of one model call."""
    text: str
    usage: TokenUsage
    model: str
    structured: Optional[Dict[str, Any]] = None  # Tool/function-call arguments, if any
    request_id: Optional[str] = None


class ModelClient(Protocol):
    """Anything that can run one system + user message exchange."""

    model: str

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        output_schema: Optional[Dict[str, Any]] = None
    ) -> ModelReply:
        ...
