"""
Pricing calculations and rate management.

Handles cost computations for the hosted models the service can call.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from .token_counter import TokenUsage

DEFAULT_MODEL = "claude-sonnet-4-20250514"

ONE_MILLION = 1_000_000


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_per_million: Decimal  # USD per 1M input tokens
    output_per_million: Decimal  # USD per 1M output tokens

    def __post_init__(self):
        """Validate prices are not negative."""
        if self.input_per_million < 0 or self.output_per_million < 0:
            raise ValueError("model prices must be >= 0")


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]

    def merged(self, extra: Dict[str, ModelPricing]) -> "PricingTable":
        """Return a new table with ``extra`` entries added or replaced."""
        prices = dict(self.prices)
        prices.update(extra)
        return PricingTable(prices)


# Fixed pricing table - configuration may add or override entries
PRICING_TABLE = PricingTable({
    DEFAULT_MODEL: ModelPricing(
        input_per_million=Decimal("3.00"),
        output_per_million=Decimal("15.00")
    ),
    "gpt-4o": ModelPricing(
        input_per_million=Decimal("2.50"),
        output_per_million=Decimal("10.00")
    ),
    "gpt-4o-mini": ModelPricing(
        input_per_million=Decimal("0.15"),
        output_per_million=Decimal("0.60")
    )
})


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    model: str = DEFAULT_MODEL,
    table: Optional[PricingTable] = None
) -> float:
    """Calculate the USD cost of one model call.

    cost = input_tokens / 1M * input price + output_tokens / 1M * output price.
    The value is not rounded; callers format it for display.

    Args:
        input_tokens: Prompt tokens reported by the provider
        output_tokens: Completion tokens reported by the provider
        model: Model identifier
        table: Pricing table to use (defaults to PRICING_TABLE)

    Returns:
        Total cost in USD

    Raises:
        ValueError: If model is not supported or counts are negative
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError("token counts must be >= 0")

    pricing = (table or PRICING_TABLE).get_pricing(model)

    input_cost = input_tokens / ONE_MILLION * float(pricing.input_per_million)
    output_cost = output_tokens / ONE_MILLION * float(pricing.output_per_million)
    return input_cost + output_cost


def cost_for_usage(
    usage: TokenUsage,
    model: str = DEFAULT_MODEL,
    table: Optional[PricingTable] = None
) -> float:
    """Calculate cost from a TokenUsage record."""
    return calculate_cost(usage.input_tokens, usage.output_tokens, model, table)
