"""AWS session helpers."""

from typing import cast

import boto3
from botocore.exceptions import ClientError
from pydantic import SecretStr

from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig
from fargate_stack.core.settings import AWSSettings


def create_session(
    config: EcsDeploymentConfig,
    aws_settings: AWSSettings | None = None,
) -> boto3.session.Session:
    """Create a boto3 session.

    Static keys from the environment take precedence over the configured
    profile; otherwise the default credential chain is used.
    """
    settings = aws_settings or AWSSettings.model_construct()
    region = settings.region or config.aws_region

    if settings.has_static_credentials():
        token = settings.session_token
        return boto3.session.Session(
            aws_access_key_id=cast(SecretStr, settings.access_key_id).get_secret_value(),
            aws_secret_access_key=cast(SecretStr, settings.secret_access_key).get_secret_value(),
            aws_session_token=token.get_secret_value() if token else None,
            region_name=region,
        )

    profile = settings.profile or config.aws_profile
    if profile:
        return boto3.session.Session(profile_name=profile, region_name=region)

    return boto3.session.Session(region_name=region)


def get_identity(session: boto3.session.Session) -> dict[str, str]:
    """Fetch the current AWS identity."""
    client = session.client("sts")
    try:
        response = client.get_caller_identity()
    except ClientError as exc:
        raise RuntimeError(f"Failed to read AWS identity: {exc}") from exc

    return {
        "Account": str(response.get("Account", "")),
        "Arn": str(response.get("Arn", "")),
        "UserId": str(response.get("UserId", "")),
    }
