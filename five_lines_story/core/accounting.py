"""
Usage accounting.

Prices each model call, applies it to the user's monthly counters and
appends it to the usage ledger.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..errors import QuotaExceededError
from ..storage.models import Conversation, UsageEvent, UserLimits
from ..storage.repository import UsageLedger
from ..timeutils import month_start, utc_now
from .pricing import PRICING_TABLE, PricingTable, cost_for_usage
from .prompts import PromptType, as_prompt_type
from .quota import QuotaAction, evaluate_quota
from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

RECENT_EVENTS_LIMIT = 100


@dataclass(frozen=True)
class UsageSummary:
    """Current-period counters, limits and spend for one user."""
    plan_type: str
    stories_used: int
    stories_limit: int
    tokens_used: int
    tokens_limit: int
    cost_usd: float
    limit_reset_date: datetime
    recent_events: List[UsageEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_type": self.plan_type,
            "stories_used": self.stories_used,
            "stories_limit": self.stories_limit,
            "tokens_used": self.tokens_used,
            "tokens_limit": self.tokens_limit,
            "cost_usd": self.cost_usd,
            "limit_reset_date": self.limit_reset_date.isoformat(),
            "recent_events": [event.to_dict() for event in self.recent_events],
        }


class UsageAccountant:
    """Charges model calls to users.

    Args:
        ledger: Storage for counters and usage events
        pricing: Price table used to cost each call
        enforce_limits: Whether exhausted monthly limits reject requests
    """

    def __init__(
        self,
        ledger: UsageLedger,
        pricing: PricingTable = PRICING_TABLE,
        enforce_limits: bool = False
    ):
        self.ledger = ledger
        self.pricing = pricing
        self.enforce_limits = enforce_limits

    def cost(self, usage: TokenUsage, model: str) -> float:
        """USD cost of one call."""
        return cost_for_usage(usage, model, self.pricing)

    def check_quota(self, user_id: str, prompt_type: Union[PromptType, str]) -> UserLimits:
        """Ensure the user's limits row exists and check it for the next call.

        Raises:
            QuotaExceededError: If a limit is exhausted and enforcement is on
        """
        kind = as_prompt_type(prompt_type)
        limits = self.ledger.ensure_limits(user_id)
        try:
            action, message = evaluate_quota(limits, kind, self.enforce_limits)
        except QuotaExceededError:
            logger.warning("Quota exhausted for user %s (%s)", user_id, kind.value)
            raise
        if action is QuotaAction.WARN:
            logger.warning("Quota warning for user %s: %s", user_id, message)
        return limits

    def record(
        self,
        user_id: str,
        prompt_type: Union[PromptType, str],
        usage: TokenUsage,
        model: str,
        conversation: Optional[Conversation] = None
    ) -> UsageEvent:
        """Charge one successful call to the user.

        ``conversation`` is stored together with the charge. Only
        generate_story counts towards the monthly story counter.
        """
        kind = as_prompt_type(prompt_type)
        cost_usd = self.cost(usage, model)
        event = self.ledger.record(
            user_id=user_id,
            prompt_type=kind.value,
            model=model,
            usage=usage,
            cost_usd=cost_usd,
            count_story=kind is PromptType.GENERATE_STORY,
            conversation=conversation
        )
        logger.info(
            "Recorded %s for user %s: %d in / %d out tokens, $%.6f",
            kind.value, user_id, usage.input_tokens, usage.output_tokens, cost_usd
        )
        return event

    def summary(self, user_id: str, now: Optional[datetime] = None) -> UsageSummary:
        """Counters for the current month plus the month's cost and usage events."""
        now = now or utc_now()
        limits = self.ledger.ensure_limits(user_id, now)
        since = month_start(now)
        return UsageSummary(
            plan_type=limits.plan_type,
            stories_used=limits.stories_used_this_month,
            stories_limit=limits.monthly_story_limit,
            tokens_used=limits.tokens_used_this_month,
            tokens_limit=limits.tokens_limit_monthly,
            cost_usd=self.ledger.total_cost(user_id, since=since),
            limit_reset_date=limits.limit_reset_date,
            recent_events=self.ledger.fetch_recent_events(
                user_id=user_id, limit=RECENT_EVENTS_LIMIT, since=since
            )
        )
