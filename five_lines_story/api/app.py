"""
FastAPI application factory.

Wires configuration, storage, the model client and the routers together.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.loader import AppConfig, ModelConfig, ModelProvider, get_config
from ..core.accounting import UsageAccountant
from ..core.orchestrator import StoryOrchestrator
from ..sdk import AnthropicModelClient, ModelClient, OpenAIModelClient
from ..storage.repository import ConversationStore, UsageLedger, UserStore, initialize_schema
from .auth import TokenVerifier
from .responses import register_exception_handlers
from .routes import ai, health, users

logger = logging.getLogger(__name__)


def build_model_client(config: ModelConfig) -> ModelClient:
    """Create the model client named by the configuration."""
    client_class = {
        ModelProvider.ANTHROPIC: AnthropicModelClient,
        ModelProvider.OPENAI: OpenAIModelClient,
    }[config.provider]
    return client_class(
        model=config.name,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout=config.timeout_seconds,
        use_tools=config.use_tools
    )


def create_app(
    config: Optional[AppConfig] = None,
    model_client: Optional[ModelClient] = None
) -> FastAPI:
    """Build the application.

    Args:
        config: Service configuration (resolved from file/env when None)
        model_client: Model client to use instead of the configured provider

    Returns:
        Configured FastAPI app with the schema initialized
    """
    config = config or get_config()
    initialize_schema(config.database_path)

    if model_client is None:
        model_client = build_model_client(config.model)

    conversations = ConversationStore(config.database_path)
    accountant = UsageAccountant(
        UsageLedger(config.database_path, config.plan),
        pricing=config.pricing,
        enforce_limits=config.enforce_quota
    )

    app = FastAPI(title="5 Lines Story", version=__version__, debug=config.debug)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.conversations = conversations
    app.state.accountant = accountant
    app.state.users = UserStore(config.database_path)
    app.state.orchestrator = StoryOrchestrator(model_client, conversations, accountant)
    app.state.token_verifier = TokenVerifier(config.auth)

    register_exception_handlers(app, debug=config.debug)
    app.include_router(health.router)
    app.include_router(ai.router)
    app.include_router(users.router)

    logger.info(
        "5 Lines Story API ready (model=%s, db=%s, quota enforcement=%s)",
        model_client.model, config.database_path, config.enforce_quota
    )
    return app
