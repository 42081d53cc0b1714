"""
OpenAI chat completions adapter.

Alternative provider with the same ``complete`` contract as the Anthropic
adapter. Calls are not retried.
"""

from typing import Any, Dict, Optional

import openai
from openai import OpenAI

from ..core.token_counter import TokenUsage
from ..errors import ModelClientError
from .base import ModelReply


class OpenAIModelClient:
    """OpenAI chat client.

    With ``use_tools`` on, JSON mode is requested so the reply text is a
    bare JSON object; the normalizer parses it like any other reply.
    """

    def __init__(
        self,
        model: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        use_tools: bool = False,
        api_key: Optional[str] = None
    ):
        """Initialize the client.

        Args:
            model: OpenAI model name (required)
            max_tokens: Reply token ceiling
            temperature: Sampling temperature
            timeout: Request timeout in seconds (SDK default when None)
            use_tools: Request JSON-mode output
            api_key: API key (read from OPENAI_API_KEY when None)

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
        self.client = OpenAI(**client_kwargs)

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
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.use_tools and output_schema is not None:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            raise ModelClientError(f"OpenAI request failed: {e}") from e

        usage = response.usage
        if not usage:
            raise ModelClientError("OpenAI response missing usage information")

        content = response.choices[0].message.content or ""
        return ModelReply(
            text=content,
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens
            ),
            model=self.model,
            request_id=response.id
        )
