"""
Token usage reported by the model provider.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one model call.

    Contains the exact counts reported by the provider, never estimates.
    """
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        """Reject negative counts."""
        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError("token counts must be >= 0")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens
