"""
Unit tests for configuration loading and validation.

Tests strict validation, defaults and environment overrides.
"""

import os
import shutil
import tempfile
from decimal import Decimal

import pytest
import yaml

from five_lines_story.config.loader import (
    AUTH_SECRET_ENV_VAR,
    CONFIG_ENV_VAR,
    DB_PATH_ENV_VAR,
    AppConfig,
    ModelConfig,
    ModelProvider,
    apply_env_overrides,
    get_config,
    load_config,
    parse_config,
)
from five_lines_story.core.pricing import DEFAULT_MODEL


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data: dict, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        config_path = self._write_config({
            "database": {"path": "stories.db"},
            "model": {
                "provider": "openai",
                "name": "gpt-4o",
                "max_tokens": 1500,
                "temperature": 0.3,
                "timeout_seconds": 20,
                "use_tools": True,
            },
            "plan": {"type": "free", "monthly_story_limit": 10, "tokens_limit_monthly": 50000},
            "quota": {"enforce": True},
            "history": {"limit": 20},
            "auth": {"issuer": "https://auth.example.com/", "algorithms": ["HS256"], "secret": "s"},
            "debug": True,
            "log_level": "debug",
        })

        config = load_config(config_path)

        assert config.database_path == "stories.db"
        assert config.model.provider == ModelProvider.OPENAI
        assert config.model.name == "gpt-4o"
        assert config.model.timeout_seconds == 20.0
        assert config.model.use_tools is True
        assert config.plan.monthly_story_limit == 10
        assert config.enforce_quota is True
        assert config.history_limit == 20
        assert config.auth.algorithms == ("HS256",)
        assert config.debug is True
        assert config.log_level == "DEBUG"

    def test_defaults(self):
        config = parse_config({"debug": False})

        assert config.model.provider == ModelProvider.ANTHROPIC
        assert config.model.name == DEFAULT_MODEL
        assert config.enforce_quota is False
        assert config.history_limit == 50
        assert config.plan.plan_type == "unlimited"

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "nope.yaml"))

    def test_empty_file(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("")
        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_config(config_path)

    def test_invalid_yaml(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("model: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_config(config_path)

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            parse_config({"budget": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown keys in model"):
            parse_config({"model": {"name": DEFAULT_MODEL, "top_p": 0.9}})

    def test_invalid_provider(self):
        with pytest.raises(ValueError, match="model.provider"):
            parse_config({"model": {"provider": "local"}})

    def test_temperature_range(self):
        with pytest.raises(ValueError, match="temperature"):
            parse_config({"model": {"temperature": 3}})

    def test_history_limit_capped(self):
        with pytest.raises(ValueError, match="history.limit"):
            parse_config({"history": {"limit": 100}})

    def test_quota_enforce_must_be_bool(self):
        with pytest.raises(ValueError, match="quota.enforce"):
            parse_config({"quota": {"enforce": "yes"}})

    def test_unpriced_model_rejected(self):
        with pytest.raises(ValueError, match="Unsupported model: house-model"):
            parse_config({"model": {"name": "house-model"}})

    def test_pricing_adds_model(self):
        config = parse_config({
            "model": {"name": "house-model"},
            "pricing": {"house-model": {"input_per_million": 1.25, "output_per_million": "4"}},
        })

        pricing = config.pricing.get_pricing("house-model")
        assert pricing.input_per_million == Decimal("1.25")
        assert pricing.output_per_million == Decimal("4")
        assert config.pricing.get_pricing(DEFAULT_MODEL).input_per_million == Decimal("3.00")

    def test_pricing_requires_both_prices(self):
        with pytest.raises(ValueError, match="output_per_million"):
            parse_config({"pricing": {"m": {"input_per_million": 1}}})

    def test_negative_price(self):
        with pytest.raises(ValueError, match=">= 0"):
            parse_config({"pricing": {"m": {"input_per_million": -1, "output_per_million": 1}}})

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="log_level"):
            parse_config({"log_level": "chatty"})


class TestModelConfig:
    """Test model settings validation."""

    def test_empty_name(self):
        with pytest.raises(ValueError, match="model.name cannot be empty"):
            ModelConfig(name="  ")

    def test_max_tokens_positive(self):
        with pytest.raises(ValueError, match="max_tokens"):
            ModelConfig(max_tokens=0)


class TestEnvironment:
    """Test configuration taken from the environment."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_overrides(self):
        config = apply_env_overrides(AppConfig(), {
            AUTH_SECRET_ENV_VAR: "from-env",
            DB_PATH_ENV_VAR: "/tmp/other.db",
        })
        assert config.auth.secret == "from-env"
        assert config.database_path == "/tmp/other.db"

    def test_no_overrides(self):
        assert apply_env_overrides(AppConfig(), {}) == AppConfig()

    def test_get_config_reads_env_path(self):
        config_path = os.path.join(self.temp_dir, "config.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump({"history": {"limit": 10}}, f)

        config = get_config(environ={CONFIG_ENV_VAR: config_path})

        assert config.history_limit == 10

    def test_get_config_defaults_without_file(self):
        assert get_config(environ={}) == AppConfig()
