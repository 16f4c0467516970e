"""fargate-stack core modules."""

from fargate_stack.core.settings import (
    AWSSettings,
    BuildSettings,
    RuntimeSettings,
    get_settings,
)

__all__ = [
    "AWSSettings",
    "BuildSettings",
    "RuntimeSettings",
    "get_settings",
]
