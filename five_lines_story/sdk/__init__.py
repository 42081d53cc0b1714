"""
Model client adapters.

Wrap hosted chat-completion APIs behind one ``complete`` call that returns
the reply text and exact token usage.
"""

from .anthropic_client import AnthropicModelClient
from .base import ModelClient, ModelReply
from .openai_client import OpenAIModelClient

__all__ = ["AnthropicModelClient", "ModelClient", "ModelReply", "OpenAIModelClient"]
