"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ..core.pricing import DEFAULT_MODEL, PRICING_TABLE, ModelPricing, PricingTable
from ..storage.db import DEFAULT_DB_PATH
from ..storage.repository import HISTORY_LIMIT, PlanDefaults

CONFIG_ENV_VAR = "FIVE_LINES_CONFIG"
AUTH_SECRET_ENV_VAR = "FIVE_LINES_AUTH_SECRET"
DB_PATH_ENV_VAR = "FIVE_LINES_DB_PATH"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ModelProvider(Enum):
    """Hosted model APIs the service can call."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass(frozen=True)
class ModelConfig:
    """Model call settings."""
    provider: ModelProvider = ModelProvider.ANTHROPIC
    name: str = DEFAULT_MODEL
    max_tokens: int = 2000
    temperature: float = 0.7
    timeout_seconds: Optional[float] = None
    use_tools: bool = False

    def __post_init__(self):
        """Validate model settings."""
        if not self.name or not self.name.strip():
            raise ValueError("model.name cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("model.max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("model.temperature must be between 0 and 2")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("model.timeout_seconds must be > 0")


@dataclass(frozen=True)
class AuthConfig:
    """Bearer token verification settings.

    RS256 tokens are checked against ``jwks_url``; HS256 tokens against
    ``secret``.
    """
    issuer: Optional[str] = None
    audience: Optional[str] = None
    jwks_url: Optional[str] = None
    secret: Optional[str] = None
    algorithms: Tuple[str, ...] = ("RS256",)

    def __post_init__(self):
        """Validate algorithm list."""
        if not self.algorithms:
            raise ValueError("auth.algorithms cannot be empty")


@dataclass(frozen=True)
class AppConfig:
    """Complete service configuration."""
    database_path: str = DEFAULT_DB_PATH
    model: ModelConfig = field(default_factory=ModelConfig)
    pricing: PricingTable = PRICING_TABLE
    plan: PlanDefaults = field(default_factory=PlanDefaults)
    enforce_quota: bool = False
    history_limit: int = HISTORY_LIMIT
    auth: AuthConfig = field(default_factory=AuthConfig)
    debug: bool = False
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate cross-section settings."""
        if not 1 <= self.history_limit <= HISTORY_LIMIT:
            raise ValueError(f"history.limit must be between 1 and {HISTORY_LIMIT}")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {list(LOG_LEVELS)}")
        # Every call is priced, so the configured model must have a price
        self.pricing.get_pricing(self.model.name)


_TOP_KEYS = {"database", "model", "pricing", "plan", "quota", "history", "auth", "debug", "log_level"}


def _section(raw: Dict[str, Any], name: str, allowed: set) -> Dict[str, Any]:
    """Return a validated sub-dictionary of the raw config (empty if absent)."""
    data = raw.get(name, {})
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown = set(data.keys()) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in {name}: {unknown}")
    return data


def _require_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{path}' must be true or false")
    return value


def _require_int(value: Any, path: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"'{path}' must be an integer >= {minimum}")
    return value


def _parse_price(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"'{path}' must be a number")
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if price < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return price


def _parse_model(raw: Dict[str, Any]) -> ModelConfig:
    data = _section(raw, "model", {
        "provider", "name", "max_tokens", "temperature", "timeout_seconds", "use_tools"
    })
    defaults = ModelConfig()

    provider = defaults.provider
    if "provider" in data:
        try:
            provider = ModelProvider(str(data["provider"]).lower())
        except ValueError:
            valid = [p.value for p in ModelProvider]
            raise ValueError(f"'model.provider' must be one of: {valid}")

    temperature = data.get("temperature", defaults.temperature)
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        raise ValueError("'model.temperature' must be a number")

    timeout = data.get("timeout_seconds", defaults.timeout_seconds)
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float))):
        raise ValueError("'model.timeout_seconds' must be a number")

    name = data.get("name", defaults.name)
    if not isinstance(name, str):
        raise ValueError("'model.name' must be a string")

    return ModelConfig(
        provider=provider,
        name=name,
        max_tokens=_require_int(data.get("max_tokens", defaults.max_tokens), "model.max_tokens", 1),
        temperature=float(temperature),
        timeout_seconds=float(timeout) if timeout is not None else None,
        use_tools=_require_bool(data.get("use_tools", defaults.use_tools), "model.use_tools")
    )


def _parse_pricing(raw: Dict[str, Any]) -> PricingTable:
    data = raw.get("pricing", {}) or {}
    if not isinstance(data, dict):
        raise ValueError("'pricing' must be a dictionary")

    extra = {}
    for model_name, prices in data.items():
        path = f"pricing.{model_name}"
        if not isinstance(prices, dict):
            raise ValueError(f"'{path}' must be a dictionary")
        unknown = set(prices.keys()) - {"input_per_million", "output_per_million"}
        if unknown:
            raise ValueError(f"Unknown keys in {path}: {unknown}")
        for key in ("input_per_million", "output_per_million"):
            if key not in prices:
                raise ValueError(f"Missing required '{key}' in {path}")
        extra[str(model_name)] = ModelPricing(
            input_per_million=_parse_price(prices["input_per_million"], f"{path}.input_per_million"),
            output_per_million=_parse_price(prices["output_per_million"], f"{path}.output_per_million")
        )
    return PRICING_TABLE.merged(extra)


def _parse_plan(raw: Dict[str, Any]) -> PlanDefaults:
    data = _section(raw, "plan", {"type", "monthly_story_limit", "tokens_limit_monthly"})
    defaults = PlanDefaults()

    plan_type = data.get("type", defaults.plan_type)
    if not isinstance(plan_type, str) or not plan_type.strip():
        raise ValueError("'plan.type' must be a non-empty string")

    return PlanDefaults(
        plan_type=plan_type,
        monthly_story_limit=_require_int(
            data.get("monthly_story_limit", defaults.monthly_story_limit),
            "plan.monthly_story_limit"
        ),
        tokens_limit_monthly=_require_int(
            data.get("tokens_limit_monthly", defaults.tokens_limit_monthly),
            "plan.tokens_limit_monthly"
        )
    )


def _parse_auth(raw: Dict[str, Any]) -> AuthConfig:
    data = _section(raw, "auth", {"issuer", "audience", "jwks_url", "secret", "algorithms"})

    for key in ("issuer", "audience", "jwks_url", "secret"):
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ValueError(f"'auth.{key}' must be a string")

    algorithms = data.get("algorithms", list(AuthConfig.algorithms))
    if not isinstance(algorithms, list) or not all(isinstance(a, str) for a in algorithms):
        raise ValueError("'auth.algorithms' must be a list of strings")

    return AuthConfig(
        issuer=data.get("issuer"),
        audience=data.get("audience"),
        jwks_url=data.get("jwks_url"),
        secret=data.get("secret"),
        algorithms=tuple(algorithms)
    )


def parse_config(raw: Dict[str, Any]) -> AppConfig:
    """Validate a raw configuration mapping into an AppConfig.

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(raw, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw.keys()) - _TOP_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    database = _section(raw, "database", {"path"})
    db_path = database.get("path", DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path:
        raise ValueError("'database.path' must be a non-empty string")

    quota = _section(raw, "quota", {"enforce"})
    history = _section(raw, "history", {"limit"})

    log_level = raw.get("log_level", "INFO")
    if not isinstance(log_level, str):
        raise ValueError("'log_level' must be a string")

    return AppConfig(
        database_path=db_path,
        model=_parse_model(raw),
        pricing=_parse_pricing(raw),
        plan=_parse_plan(raw),
        enforce_quota=_require_bool(quota.get("enforce", False), "quota.enforce"),
        history_limit=_require_int(history.get("limit", HISTORY_LIMIT), "history.limit", 1),
        auth=_parse_auth(raw),
        debug=_require_bool(raw.get("debug", False), "debug"),
        log_level=log_level.upper()
    )


def load_config(path: str) -> AppConfig:
    """Load and validate configuration from a YAML file.

    Strict validation ensures no silent misconfigurations: unknown keys and
    out-of-range values are rejected.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")

    return parse_config(raw_config)


def apply_env_overrides(config: AppConfig, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """Apply secrets and paths taken from the environment."""
    environ = os.environ if environ is None else environ

    secret = environ.get(AUTH_SECRET_ENV_VAR)
    if secret:
        config = replace(config, auth=replace(config.auth, secret=secret))

    db_path = environ.get(DB_PATH_ENV_VAR)
    if db_path:
        config = replace(config, database_path=db_path)
    return config


def get_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """Resolve the service configuration.

    Uses ``path``, else the file named by FIVE_LINES_CONFIG, else built-in
    defaults, then applies environment overrides.
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(CONFIG_ENV_VAR)
    config = load_config(path) if path else AppConfig()
    return apply_env_overrides(config, environ)
