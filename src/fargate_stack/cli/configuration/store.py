"""CLI configuration persistence helpers."""

import json
from pathlib import Path

from pydantic import ValidationError

from fargate_stack.cli.configuration.models import StackConfig
from fargate_stack.config.paths import stack_config_path


class ConfigError(RuntimeError):
    """Configuration related errors."""


def load_config(path: Path | None = None) -> StackConfig:
    """Load stack configuration from disk.

    Args:
        path: Optional file to read instead of the user config file.

    Returns:
        The loaded configuration object, or defaults when the file is absent.
    """
    path = path or stack_config_path()
    if not path.exists():
        return StackConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid configuration file: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a JSON object.")

    try:
        return StackConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def save_config(config: StackConfig, path: Path | None = None) -> Path:
    """Save stack configuration to disk.

    Args:
        config: Configuration object to save.
        path: Optional file to write instead of the user config file.

    Returns:
        The saved configuration file path.
    """
    path = path or stack_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(mode="json"), indent=2), encoding="utf-8")
    return path
