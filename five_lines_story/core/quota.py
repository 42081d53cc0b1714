"""
Monthly quota checks.

Decides whether a user's next exchange may proceed given their counters.
Enforcement is opt-in: with enforcement off, an exhausted limit is reported
as a warning and the request goes through.

Check order:
1. Monthly token limit - applies to every exchange kind
2. Monthly story limit - applies only to generate_story
"""

from enum import Enum, auto
from typing import Tuple

from ..errors import QuotaExceededError
from ..storage.models import UserLimits
from .prompts import PromptType

# Fraction of a limit at which a warning is raised
WARN_RATIO = 0.9


class QuotaAction(Enum):
    """Outcome of a quota check in order of severity."""
    ALLOW = auto()  # Well within limits
    WARN = auto()   # Near or over a limit, request still allowed
    BLOCK = auto()  # Over a limit with enforcement on


def _usage_ratio(used: int, limit: int) -> float:
    if limit <= 0:
        return float("inf")
    return used / limit


def evaluate_quota(
    limits: UserLimits,
    prompt_type: PromptType,
    enforce: bool
) -> Tuple[QuotaAction, str]:
    """Evaluate the user's counters for the coming exchange.

    Args:
        limits: Current counters and limits for the user
        prompt_type: Kind of exchange about to run
        enforce: Whether exhausted limits block the request

    Returns:
        The most severe action and a message describing it
    """
    action = QuotaAction.ALLOW
    message = ""

    checks = [(
        "tokens_limit_monthly",
        limits.tokens_used_this_month,
        limits.tokens_limit_monthly,
        "tokens"
    )]
    if prompt_type is PromptType.GENERATE_STORY:
        checks.append((
            "monthly_story_limit",
            limits.stories_used_this_month,
            limits.monthly_story_limit,
            "stories"
        ))

    for limit_name, used, limit, unit in checks:
        ratio = _usage_ratio(used, limit)
        if ratio >= 1:
            new_action = QuotaAction.BLOCK if enforce else QuotaAction.WARN
            new_message = (
                f"Monthly limit of {limit} {unit} reached "
                f"({used} used on plan '{limits.plan_type}')"
            )
        elif ratio >= WARN_RATIO:
            new_action = QuotaAction.WARN
            new_message = f"{used} of {limit} monthly {unit} used"
        else:
            continue

        if new_action.value > action.value:
            action = new_action
            message = new_message
            if action is QuotaAction.BLOCK:
                raise QuotaExceededError(message, limit_name)

    return action, message
