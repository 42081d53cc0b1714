"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

STORY_LINES = ("line1", "line2", "line3", "line4", "line5")


@dataclass(frozen=True)
class Story:
    """Five ordered story lines.

    No emptiness or length rules are applied here; the reply schema decides
    what a well-formed story is.
    """
    line1: str
    line2: str
    line3: str
    line4: str
    line5: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Story":
        """Build a Story from a ``{"line1": ..., ..., "line5": ...}`` mapping."""
        return cls(**{name: data[name] for name in STORY_LINES})

    def line(self, number: int) -> str:
        """Return line ``number`` (1-based)."""
        if not 1 <= number <= 5:
            raise ValueError("line number must be between 1 and 5")
        return getattr(self, STORY_LINES[number - 1])

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class Conversation:
    """One persisted story exchange.

    Created on every successful story-producing exchange and never updated.
    """
    id: str
    user_id: str
    user_input: str
    ai_response: Dict[str, Any]
    prompt_type: str
    input_tokens: int
    output_tokens: int
    tokens_used: int
    created_at: datetime
    title: Optional[str] = None
    prompt_used: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class UserLimits:
    """Per-user monthly quota counters.

    Created lazily with plan defaults, mutated only by additive updates and
    the monthly rollover.
    """
    user_id: str
    plan_type: str
    monthly_story_limit: int
    tokens_limit_monthly: int
    stories_used_this_month: int
    tokens_used_this_month: int
    limit_reset_date: datetime


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one AI call for cost tracking.

    Append-only events that create an auditable ledger of AI costs.
    Once written, these records must never be modified.
    """
    id: str
    user_id: str
    prompt_type: str
    model: str
    input_tokens: int
    output_tokens: int
    tokens_used: int
    cost_usd: float
    created_at: datetime
    conversation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class User:
    """Row of the standalone users table."""
    id: str
    name: str
    email: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data
