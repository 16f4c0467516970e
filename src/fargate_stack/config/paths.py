"""Shared filesystem paths for user configuration."""

from pathlib import Path

from platformdirs import user_config_dir

APP_NAME = "fargate-stack"
STACK_CONFIG_FILENAME = "config.json"
ENV_FILENAME = ".env"


def config_dir() -> Path:
    """Return the user configuration directory.

    Returns:
        The user configuration directory path.
    """
    return Path(user_config_dir(APP_NAME))


def stack_config_path() -> Path:
    """Return the stack configuration file path.

    Returns:
        The stack configuration file path.
    """
    return config_dir() / STACK_CONFIG_FILENAME


def env_path() -> Path:
    """Return the user env file path.

    Returns:
        The user env file path.
    """
    return config_dir() / ENV_FILENAME
