"""Tests for the build-then-roll-out pipeline."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from fargate_stack.core.deployments.aws_ecs.deploy import DeployOptions, deploy_service
from fargate_stack.core.deployments.aws_ecs.images import ImageBuildConfig
from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig

REPOSITORY_URI = "123456789012.dkr.ecr.us-east-1.amazonaws.com/nodejs-app"


@pytest.fixture
def image_config() -> ImageBuildConfig:
    """Return the image to deploy."""
    return ImageBuildConfig(
        repository_uri=REPOSITORY_URI,
        image_tag="abc1234-1690000000",
        build_context=Path("app"),
    )


@pytest.fixture(autouse=True)
def identity(aws_client: MagicMock) -> None:
    """Make the credential check succeed."""
    aws_client.get_caller_identity.return_value = {
        "Account": "123456789012",
        "Arn": "arn:aws:iam::123456789012:user/ci",
    }


@patch("fargate_stack.core.deployments.aws_ecs.deploy.roll_out_image")
@patch(
    "fargate_stack.core.deployments.aws_ecs.deploy.build_and_push_image",
    side_effect=RuntimeError("docker build failed with exit code 1."),
)
def test_failed_build_stops_before_rollout(
    _mock_build: MagicMock,
    mock_roll_out: MagicMock,
    session: MagicMock,
    ecs_config: EcsDeploymentConfig,
    image_config: ImageBuildConfig,
) -> None:
    """The service is never touched when the image cannot be built."""
    with pytest.raises(RuntimeError, match="docker build failed"):
        deploy_service(session, ecs_config, image_config, lambda _: None)

    mock_roll_out.assert_not_called()


@patch("fargate_stack.core.deployments.aws_ecs.deploy.roll_out_image")
@patch("fargate_stack.core.deployments.aws_ecs.deploy.build_and_push_image")
def test_built_image_is_rolled_out(
    mock_build: MagicMock,
    mock_roll_out: MagicMock,
    session: MagicMock,
    ecs_config: EcsDeploymentConfig,
    image_config: ImageBuildConfig,
) -> None:
    """The pushed URI and the rollout limits reach the rollout."""
    mock_build.return_value = image_config.image_uri
    options = DeployOptions(timeout_seconds=120, poll_interval_seconds=5)

    result = deploy_service(session, ecs_config, image_config, lambda _: None, options)

    assert result is mock_roll_out.return_value
    args = mock_roll_out.call_args
    assert args.args[1:6] == (
        "nodejs-app-cluster",
        "nodejs-app-service",
        "nodejs-app",
        "nodejs-app",
        f"{REPOSITORY_URI}:abc1234-1690000000",
    )
    assert args.kwargs == {"timeout_seconds": 120, "poll_interval_seconds": 5}


@patch("fargate_stack.core.deployments.aws_ecs.deploy.roll_out_image")
@patch("fargate_stack.core.deployments.aws_ecs.deploy.build_and_push_image")
def test_skip_build_deploys_given_tag(
    mock_build: MagicMock,
    mock_roll_out: MagicMock,
    session: MagicMock,
    ecs_config: EcsDeploymentConfig,
    image_config: ImageBuildConfig,
) -> None:
    """An existing tag is deployed without building."""
    deploy_service(
        session, ecs_config, image_config, lambda _: None, DeployOptions(skip_build=True)
    )

    mock_build.assert_not_called()
    assert mock_roll_out.call_args.args[5] == f"{REPOSITORY_URI}:abc1234-1690000000"


@patch("fargate_stack.core.deployments.aws_ecs.deploy.roll_out_image")
@patch("fargate_stack.core.deployments.aws_ecs.deploy.build_and_push_image")
def test_bad_credentials_stop_before_build(
    mock_build: MagicMock,
    mock_roll_out: MagicMock,
    session: MagicMock,
    aws_client: MagicMock,
    client_error: Any,
    ecs_config: EcsDeploymentConfig,
    image_config: ImageBuildConfig,
) -> None:
    """A failed identity check aborts the pipeline at the first step."""
    aws_client.get_caller_identity.side_effect = client_error("InvalidClientTokenId")

    with pytest.raises(RuntimeError, match="Failed to read AWS identity"):
        deploy_service(session, ecs_config, image_config, lambda _: None)

    mock_build.assert_not_called()
    mock_roll_out.assert_not_called()
