"""Tests for AWS session selection."""

from unittest.mock import MagicMock, patch

from pydantic import SecretStr

from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig
from fargate_stack.core.deployments.aws_ecs.session import create_session
from fargate_stack.core.settings import AWSSettings


@patch("fargate_stack.core.deployments.aws_ecs.session.boto3.session.Session")
def test_static_keys_take_precedence(
    mock_session: MagicMock, ecs_config: EcsDeploymentConfig
) -> None:
    """A complete key pair wins over the configured profile."""
    ecs_config.aws_profile = "dev"
    settings = AWSSettings.model_construct(
        access_key_id=SecretStr("AKIAEXAMPLE"),
        secret_access_key=SecretStr("secret"),
    )

    create_session(ecs_config, settings)

    mock_session.assert_called_once_with(
        aws_access_key_id="AKIAEXAMPLE",
        aws_secret_access_key="secret",
        aws_session_token=None,
        region_name="us-east-1",
    )


@patch("fargate_stack.core.deployments.aws_ecs.session.boto3.session.Session")
def test_half_a_key_pair_falls_back_to_profile(
    mock_session: MagicMock, ecs_config: EcsDeploymentConfig
) -> None:
    """An access key without its secret is ignored."""
    ecs_config.aws_profile = "dev"
    settings = AWSSettings.model_construct(access_key_id=SecretStr("AKIAEXAMPLE"))

    create_session(ecs_config, settings)

    mock_session.assert_called_once_with(profile_name="dev", region_name="us-east-1")


@patch("fargate_stack.core.deployments.aws_ecs.session.boto3.session.Session")
def test_default_chain_uses_region_override(
    mock_session: MagicMock, ecs_config: EcsDeploymentConfig
) -> None:
    """Without keys or a profile the default chain is used in the chosen region."""
    settings = AWSSettings.model_construct(region="eu-west-1")

    create_session(ecs_config, settings)

    mock_session.assert_called_once_with(region_name="eu-west-1")
