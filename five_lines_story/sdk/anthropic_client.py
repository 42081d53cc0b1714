"""
Anthropic Messages API adapter.

Sends one system prompt + user message and returns the reply text with the
token usage the API reports. Calls are not retried.
"""

from typing import Any, Dict, Optional

import anthropic
from anthropic import Anthropic

from ..core.pricing import DEFAULT_MODEL
from ..core.token_counter import TokenUsage
from ..errors import ModelClientError
from .base import ModelReply

OUTPUT_TOOL_NAME = "submit_result"


class AnthropicModelClient:
    """Claude chat client used for every story exchange.

    When ``use_tools`` is on and the caller passes an output schema, the
    model is forced to answer through a single tool whose input is that
    schema; the tool input comes back as ``ModelReply.structured``.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        use_tools: bool = False,
        api_key: Optional[str] = None
    ):
        """Initialize the client.

        Args:
            model: Claude model identifier (required)
            max_tokens: Reply token ceiling
            temperature: Sampling temperature
            timeout: Request timeout in seconds (SDK default when None)
            use_tools: Request structured output through a forced tool
            api_key: API key (read from ANTHROPIC_API_KEY when None)

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.use_tools = use_tools

        client_kwargs: Dict[str, Any] = {"max_retries": 0}
        if api_key:
            client_kwargs["api_key"] = api_key
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        self.client = Anthropic(**client_kwargs)

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        output_schema: Optional[Dict[str, Any]] = None
    ) -> ModelReply:
        """Run one exchange.

        Raises:
            ValueError: If user_message is empty
            ModelClientError: If the API call fails or reports no usage
        """
        if not user_message:
            raise ValueError("user_message is required and cannot be empty")

        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_message}],
        }
        if self.use_tools and output_schema is not None:
            request["tools"] = [{
                "name": OUTPUT_TOOL_NAME,
                "description": "Submit the result in the required JSON structure.",
                "input_schema": output_schema,
            }]
            request["tool_choice"] = {"type": "tool", "name": OUTPUT_TOOL_NAME}

        try:
            message = self.client.messages.create(**request)
        except anthropic.APIError as e:
            raise ModelClientError(f"Anthropic request failed: {e}") from e

        usage = message.usage
        if not usage:
            raise ModelClientError("Anthropic response missing usage information")

        text_parts = []
        structured = None
        for block in message.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use" and structured is None:
                structured = dict(block.input)

        return ModelReply(
            text="".join(text_parts),
            usage=TokenUsage(
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens
            ),
            model=self.model,
            structured=structured,
            request_id=message.id
        )
