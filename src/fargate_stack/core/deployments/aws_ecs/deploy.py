"""Deployment entrypoint for ECS: build, push, render, roll out, wait."""

from collections.abc import Callable
from dataclasses import dataclass

from boto3.session import Session

from fargate_stack.core.deployments.aws_ecs.images import (
    ImageBuildConfig,
    build_and_push_image,
)
from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig
from fargate_stack.core.deployments.aws_ecs.rollout import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    RolloutResult,
    roll_out_image,
)
from fargate_stack.core.deployments.aws_ecs.session import get_identity


@dataclass(frozen=True)
class DeployOptions:
    """Knobs for one pipeline run."""

    skip_build: bool = False
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS


def deploy_service(
    session: Session,
    config: EcsDeploymentConfig,
    image_config: ImageBuildConfig,
    reporter: Callable[[str], None],
    options: DeployOptions | None = None,
) -> RolloutResult:
    """Roll a new image out to the ECS service.

    Steps run in order and the first failure aborts the rest.
    """
    options = options or DeployOptions()

    reporter("Checking AWS credentials")
    identity = get_identity(session)
    reporter(f"Using AWS account {identity['Account']} ({identity['Arn']})")

    if options.skip_build:
        reporter(f"Skipping build; deploying existing image {image_config.image_uri}")
        image_uri = image_config.image_uri
    else:
        image_uri = build_and_push_image(session, image_config, reporter)

    return roll_out_image(
        session,
        config.cluster_name,
        config.service_name,
        config.task_family,
        config.container_name,
        image_uri,
        reporter,
        timeout_seconds=options.timeout_seconds,
        poll_interval_seconds=options.poll_interval_seconds,
    )
