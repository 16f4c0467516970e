"""Configuration models and persistence for the CLI."""

from fargate_stack.cli.configuration.models import DeploymentState, StackConfig
from fargate_stack.cli.configuration.store import ConfigError, load_config, save_config

__all__ = ["ConfigError", "DeploymentState", "StackConfig", "load_config", "save_config"]
