"""Tests for the load balancer and service security groups."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from fargate_stack.core.deployments.aws_ecs.security_groups import (
    allow_ingress_from_anywhere,
    allow_ingress_from_group,
    ensure_security_group,
)


def test_ensure_security_group_reuses_existing_group(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """A group with the same name in the VPC is returned as is."""
    aws_client.describe_security_groups.return_value = {
        "SecurityGroups": [{"GroupId": "sg-alb", "Description": "existing"}]
    }

    group = ensure_security_group(session, "vpc-123", "nodejs-app-alb", "Load balancer", {})

    assert group.group_id == "sg-alb"
    assert group.description == "existing"
    aws_client.create_security_group.assert_not_called()


def test_ensure_security_group_creates_and_tags(session: MagicMock, aws_client: MagicMock) -> None:
    """A new group is created in the VPC and given a Name tag."""
    aws_client.describe_security_groups.return_value = {"SecurityGroups": []}
    aws_client.create_security_group.return_value = {"GroupId": "sg-new"}

    group = ensure_security_group(
        session, "vpc-123", "nodejs-app-service", "ECS tasks", {"Project": "nodejs-app"}
    )

    assert group.group_id == "sg-new"
    aws_client.create_security_group.assert_called_once_with(
        VpcId="vpc-123", GroupName="nodejs-app-service", Description="ECS tasks"
    )
    aws_client.create_tags.assert_called_once_with(
        Resources=["sg-new"],
        Tags=[
            {"Key": "Name", "Value": "nodejs-app-service"},
            {"Key": "Project", "Value": "nodejs-app"},
        ],
    )


def test_service_group_only_opens_to_load_balancer_group(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """The container port is reachable from the ALB group and no CIDR range."""
    allow_ingress_from_group(session, "sg-svc", "sg-alb", 3000)

    kwargs = aws_client.authorize_security_group_ingress.call_args.kwargs
    assert kwargs["GroupId"] == "sg-svc"
    (permission,) = kwargs["IpPermissions"]
    assert permission["FromPort"] == permission["ToPort"] == 3000
    assert permission["UserIdGroupPairs"] == [{"GroupId": "sg-alb"}]
    assert "IpRanges" not in permission


def test_load_balancer_group_opens_listener_port_to_internet(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """The ALB group accepts the listener port from anywhere."""
    allow_ingress_from_anywhere(session, "sg-alb", 80)

    (permission,) = aws_client.authorize_security_group_ingress.call_args.kwargs[
        "IpPermissions"
    ]
    assert permission["FromPort"] == 80
    assert permission["IpRanges"][0]["CidrIp"] == "0.0.0.0/0"


def test_duplicate_rule_is_tolerated(
    session: MagicMock, aws_client: MagicMock, client_error: Any
) -> None:
    """Re-running provisioning does not fail on an existing rule."""
    aws_client.authorize_security_group_ingress.side_effect = client_error(
        "InvalidPermission.Duplicate"
    )

    allow_ingress_from_group(session, "sg-svc", "sg-alb", 3000)


def test_other_ingress_errors_are_raised(
    session: MagicMock, aws_client: MagicMock, client_error: Any
) -> None:
    """Any other authorisation failure surfaces as RuntimeError."""
    aws_client.authorize_security_group_ingress.side_effect = client_error(
        "RulesPerSecurityGroupLimitExceeded"
    )

    with pytest.raises(RuntimeError, match="Failed to authorise ingress on sg-svc"):
        allow_ingress_from_group(session, "sg-svc", "sg-alb", 3000)
