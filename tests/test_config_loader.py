"""
Tests for config.loader and config.schema modules.
"""

import pytest
import yaml

from multi_ai.config.loader import (
    CONFIG_ENV_VAR,
    default_config_path,
    load_config,
    reset_config,
    save_config,
    update_config_value,
)
from multi_ai.config.schema import MultiAIConfig
from multi_ai.exceptions import ConfigValidationError


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config_path = tmp_path / "nope.yaml"

        config = load_config(config_path)

        assert config == MultiAIConfig()
        assert not config_path.exists()

    def test_empty_file_returns_defaults(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("", encoding="utf-8")

        assert load_config(config_path).services == ["chatgpt", "claude", "gemini"]

    def test_partial_file_merges_with_defaults(self, tmp_path):
        config_path = write_yaml(
            tmp_path / "config.yaml",
            {"services": ["Grok", "deepseek"], "browser": {"headless": True}},
        )

        config = load_config(config_path)

        assert config.services == ["grok", "deepseek"]
        assert config.browser.headless is True
        assert config.browser.viewport_width == 1280
        assert config.output.format == "table"

    def test_invalid_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("services: [chatgpt\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="Invalid YAML syntax"):
            load_config(config_path)

    def test_non_mapping_rejected(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("- chatgpt\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="must contain a mapping"):
            load_config(config_path)

    def test_unknown_service_rejected(self, tmp_path):
        config_path = write_yaml(tmp_path / "config.yaml", {"services": ["bard"]})

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(config_path)

        assert "Unknown services: bard" in str(exc_info.value)
        assert "services" in str(exc_info.value)

    def test_duplicate_service_rejected(self, tmp_path):
        config_path = write_yaml(
            tmp_path / "config.yaml", {"services": ["claude", "Claude"]}
        )

        with pytest.raises(ConfigValidationError, match="Duplicate services"):
            load_config(config_path)

    @pytest.mark.parametrize("value", [0, 21])
    def test_max_concurrent_bounds(self, tmp_path, value):
        config_path = write_yaml(tmp_path / "config.yaml", {"max_concurrent": value})

        with pytest.raises(ConfigValidationError, match="between 1 and 20"):
            load_config(config_path)

    def test_unknown_output_format_rejected(self, tmp_path):
        config_path = write_yaml(tmp_path / "config.yaml", {"output": {"format": "xml"}})

        with pytest.raises(ConfigValidationError):
            load_config(config_path)

    def test_env_var_overrides_default_path(self, tmp_path, monkeypatch):
        config_path = write_yaml(tmp_path / "env.yaml", {"max_concurrent": 3})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config_path))

        assert default_config_path() == config_path
        assert load_config().max_concurrent == 3

    def test_default_path_without_env_var(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        path = default_config_path()

        assert path.name == "config.yaml"
        assert path.parent.name == ".multi-ai"


class TestSaveAndReset:
    """Tests for save_config() and reset_config()."""

    def test_save_then_load(self, tmp_path):
        config_path = tmp_path / "nested" / "config.yaml"
        config = MultiAIConfig(services=["perplexity"], max_concurrent=2)

        written = save_config(config, config_path)

        assert written == config_path
        assert load_config(config_path) == config

    def test_reset_overwrites_file(self, tmp_path):
        config_path = write_yaml(tmp_path / "config.yaml", {"max_concurrent": 3})

        config = reset_config(config_path)

        assert config == MultiAIConfig()
        assert load_config(config_path).max_concurrent == 7


class TestUpdateConfigValue:
    """Tests for update_config_value()."""

    def test_nested_boolean(self):
        config = update_config_value(MultiAIConfig(), "browser.headless", "true")
        assert config.browser.headless is True

    def test_integer_from_string(self):
        config = update_config_value(MultiAIConfig(), "response_timeout_ms", "90000")
        assert config.response_timeout_ms == 90000

    def test_comma_separated_services(self):
        config = update_config_value(MultiAIConfig(), "services", "chatgpt, claude")
        assert config.services == ["chatgpt", "claude"]

    def test_original_is_not_modified(self):
        original = MultiAIConfig()

        update_config_value(original, "max_concurrent", "2")

        assert original.max_concurrent == 7

    @pytest.mark.parametrize("key", ["browser.colour", "nope", "browser.headless.x", ""])
    def test_unknown_key(self, key):
        with pytest.raises(ConfigValidationError):
            update_config_value(MultiAIConfig(), key, "1")

    def test_invalid_value(self):
        with pytest.raises(ConfigValidationError, match="max_concurrent"):
            update_config_value(MultiAIConfig(), "max_concurrent", "50")
