"""
Configuration loader for multi-ai.

This module loads the YAML configuration file, validates it with Pydantic
models, and writes it back when the CLI changes a setting.

Functions:
    default_config_path: Where config.yaml lives unless overridden
    load_config: Main entrypoint to load and validate config.yaml
    save_config: Persist a MultiAIConfig as YAML
    update_config_value: Set one dot-path value and re-validate
    reset_config: Overwrite the file with defaults
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from multi_ai.exceptions import ConfigValidationError

from .schema import MultiAIConfig

CONFIG_ENV_VAR = "MULTI_AI_CONFIG"
DEFAULT_CONFIG_DIR = Path.home() / ".multi-ai"


def default_config_path() -> Path:
    """
    Return the configuration file path.

    Uses $MULTI_AI_CONFIG when set, otherwise ~/.multi-ai/config.yaml.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_DIR / "config.yaml"


def _format_validation_error(e: ValidationError, source: str) -> str:
    error_messages = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        error_messages.append(f"  - {loc}: {error['msg']}")
    return f"Configuration validation failed in {source}:\n" + "\n".join(
        error_messages
    )


def load_config(config_path: str | Path | None = None) -> MultiAIConfig:
    """
    Load config.yaml and validate it.

    A missing file is not an error: defaults are returned so a first run
    works without any setup. An empty file also yields defaults.

    Args:
        config_path: Path to config file (defaults to default_config_path())

    Returns:
        MultiAIConfig: Validated configuration

    Raises:
        ConfigValidationError: If YAML is invalid or config validation fails

    Example:
        >>> config = load_config("~/.multi-ai/config.yaml")
        >>> config.services
        ['chatgpt', 'claude', 'gemini']

    Security:
        - Uses yaml.safe_load() to prevent code injection
    """
    config_path = (
        Path(config_path).expanduser() if config_path else default_config_path()
    )

    if not config_path.exists():
        return MultiAIConfig()

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        return MultiAIConfig()

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration file must contain a mapping: {config_path}"
        )

    try:
        return MultiAIConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            _format_validation_error(e, str(config_path))
        ) from e


def save_config(config: MultiAIConfig, config_path: str | Path | None = None) -> Path:
    """
    Write configuration as YAML, creating parent directories as needed.

    Args:
        config: Configuration to persist
        config_path: Destination (defaults to default_config_path())

    Returns:
        Path: The file that was written

    Raises:
        ConfigValidationError: If the file cannot be written
    """
    config_path = (
        Path(config_path).expanduser() if config_path else default_config_path()
    )
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(config.model_dump(), f, sort_keys=False)
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to save configuration to {config_path}: {e}"
        ) from e
    return config_path


def _coerce_scalar(value: Any) -> Any:
    """Parse CLI strings like "false", "90000" or "[a, b]" as YAML scalars."""
    if isinstance(value, str):
        try:
            return yaml.safe_load(value)
        except yaml.YAMLError:
            return value
    return value


def update_config_value(config: MultiAIConfig, key_path: str, value: Any) -> MultiAIConfig:
    """
    Return a new config with one dot-path value replaced.

    String values are parsed as YAML, so "false" becomes False and
    "chatgpt,claude" for ``services`` becomes a list.

    Args:
        config: Current configuration
        key_path: Dot-separated path (e.g., "browser.headless")
        value: New value

    Returns:
        MultiAIConfig: Re-validated configuration

    Raises:
        ConfigValidationError: If the path is unknown or the value is invalid

    Example:
        >>> config = update_config_value(MultiAIConfig(), "browser.headless", "true")
        >>> config.browser.headless
        True
    """
    keys = [k for k in key_path.split(".") if k]
    if not keys:
        raise ConfigValidationError("Configuration key cannot be empty")

    data = config.model_dump()
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            raise ConfigValidationError(f"Unknown configuration key: {key_path}")
        current = current[key]

    if keys[-1] not in current:
        raise ConfigValidationError(f"Unknown configuration key: {key_path}")

    parsed = _coerce_scalar(value)
    if keys == ["services"] and isinstance(parsed, str):
        parsed = [s.strip() for s in parsed.split(",")]
    current[keys[-1]] = parsed

    try:
        return MultiAIConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(_format_validation_error(e, key_path)) from e


def reset_config(config_path: str | Path | None = None) -> MultiAIConfig:
    """Overwrite the configuration file with defaults and return them."""
    config = MultiAIConfig()
    save_config(config, config_path)
    return config
