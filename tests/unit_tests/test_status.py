"""Tests for stack outputs, live status checks and teardown."""

from typing import Any
from unittest.mock import MagicMock

from fargate_stack.core.deployments.aws_ecs.cleanup import cleanup_resources
from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig
from fargate_stack.core.deployments.aws_ecs.status import check_deployment, stack_outputs


def test_stack_outputs_are_flat_strings(ecs_config: EcsDeploymentConfig) -> None:
    """Outputs join subnet lists and keep every value a string."""
    outputs = stack_outputs(ecs_config)

    assert outputs["vpc_id"] == "vpc-123"
    assert outputs["private_subnet_ids"] == "subnet-priv-a,subnet-priv-b"
    assert outputs["public_subnet_ids"] == "subnet-pub-a,subnet-pub-b"
    assert outputs["load_balancer_dns_name"] == "nodejs-app-alb-1.us-east-1.elb.amazonaws.com"
    assert all(isinstance(value, str) for value in outputs.values())


def test_stack_outputs_before_provisioning(ecs_config: EcsDeploymentConfig) -> None:
    """Unprovisioned identifiers are empty strings rather than None."""
    ecs_config.vpc_id = None
    ecs_config.private_subnet_ids = []

    outputs = stack_outputs(ecs_config)

    assert outputs["vpc_id"] == ""
    assert outputs["private_subnet_ids"] == ""
    assert outputs["cluster_name"] == "nodejs-app-cluster"


def test_check_deployment_reports_service_counts(
    session: MagicMock,
    aws_client: MagicMock,
    client_error: Any,
    ecs_config: EcsDeploymentConfig,
) -> None:
    """Each resource gets a status string; missing items are flagged."""
    aws_client.describe_vpcs.return_value = {"Vpcs": [{"State": "available"}]}
    aws_client.describe_subnets.return_value = {"Subnets": [{"SubnetId": "s"}]}
    aws_client.describe_repositories.side_effect = client_error("RepositoryNotFoundException")
    aws_client.describe_log_groups.return_value = {
        "logGroups": [{"logGroupName": "/ecs/nodejs-app"}]
    }
    aws_client.describe_load_balancers.return_value = {
        "LoadBalancers": [{"State": {"Code": "active"}}]
    }
    aws_client.describe_target_health.return_value = {
        "TargetHealthDescriptions": [
            {"TargetHealth": {"State": "healthy"}},
            {"TargetHealth": {"State": "draining"}},
        ]
    }
    aws_client.describe_task_definition.return_value = {"taskDefinition": {"status": "ACTIVE"}}
    aws_client.describe_clusters.return_value = {"clusters": [{"status": "ACTIVE"}]}
    aws_client.describe_services.return_value = {
        "services": [{"status": "ACTIVE", "runningCount": 1, "desiredCount": 2}]
    }

    results = check_deployment(session, ecs_config)

    assert results["VPC"] == "present"
    assert results["ECR repository"] == "missing"
    assert results["Log group"] == "present"
    assert results["Target group"] == "present (1/2 healthy)"
    assert results["ECS service"] == "present (1/2 running)"


def test_cleanup_skips_missing_resources(
    session: MagicMock,
    aws_client: MagicMock,
    client_error: Any,
    ecs_config: EcsDeploymentConfig,
) -> None:
    """Already-deleted resources are skipped silently and the sweep continues."""
    ecs_config.vpc_id = None
    aws_client.deregister_scalable_target.side_effect = client_error("ObjectNotFoundException")
    aws_client.update_service.side_effect = client_error("ServiceNotFoundException")
    aws_client.delete_load_balancer.side_effect = client_error("LoadBalancerNotFound")
    aws_client.delete_target_group.side_effect = client_error("TargetGroupNotFound")
    aws_client.get_paginator.return_value.paginate.return_value = [
        {"taskDefinitionArns": ["arn:td:1", "arn:td:2"]}
    ]
    aws_client.delete_cluster.side_effect = client_error("ClusterNotFoundException")
    aws_client.delete_log_group.side_effect = client_error("ResourceNotFoundException")
    aws_client.list_attached_role_policies.side_effect = client_error("NoSuchEntity")
    aws_client.list_role_policies.side_effect = client_error("NoSuchEntity")
    aws_client.delete_role.side_effect = client_error("NoSuchEntity")
    reports: list[str] = []

    cleanup_resources(session, ecs_config, reports.append)

    assert not [line for line in reports if line.startswith("Failed")]
    assert aws_client.deregister_task_definition.call_count == 2
    aws_client.delete_service.assert_not_called()
    aws_client.delete_repository.assert_not_called()


def test_cleanup_reports_failures_and_continues(
    session: MagicMock,
    aws_client: MagicMock,
    client_error: Any,
    ecs_config: EcsDeploymentConfig,
) -> None:
    """An unexpected error is reported without stopping later steps."""
    ecs_config.vpc_id = None
    aws_client.delete_cluster.side_effect = client_error("ClusterContainsServicesException")
    aws_client.get_paginator.return_value.paginate.return_value = []
    aws_client.list_attached_role_policies.return_value = {"AttachedPolicies": []}
    aws_client.list_role_policies.return_value = {"PolicyNames": []}
    reports: list[str] = []

    cleanup_resources(session, ecs_config, reports.append, delete_repository=True)

    assert any(line.startswith("Failed to delete cluster") for line in reports)
    aws_client.delete_log_group.assert_called_once_with(logGroupName="/ecs/nodejs-app")
    aws_client.delete_repository.assert_called_once_with(repositoryName="nodejs-app", force=True)
    assert aws_client.delete_role.call_count == 2


def test_cleanup_vpc_sweep_continues_after_nat_gateway_error(
    session: MagicMock,
    aws_client: MagicMock,
    client_error: Any,
    ecs_config: EcsDeploymentConfig,
) -> None:
    """A refused NAT gateway delete is reported and the VPC is still attempted."""
    aws_client.get_paginator.return_value.paginate.return_value = []
    aws_client.list_attached_role_policies.return_value = {"AttachedPolicies": []}
    aws_client.list_role_policies.return_value = {"PolicyNames": []}
    aws_client.describe_nat_gateways.return_value = {
        "NatGateways": [
            {
                "NatGatewayId": "nat-1",
                "State": "available",
                "NatGatewayAddresses": [{"AllocationId": "eipalloc-1"}],
            }
        ]
    }
    aws_client.delete_nat_gateway.side_effect = client_error("UnauthorizedOperation")
    aws_client.describe_internet_gateways.return_value = {
        "InternetGateways": [{"InternetGatewayId": "igw-1"}]
    }
    aws_client.describe_route_tables.side_effect = client_error("RequestLimitExceeded")
    aws_client.describe_subnets.return_value = {"Subnets": [{"SubnetId": "subnet-pub-a"}]}
    aws_client.describe_security_groups.return_value = {
        "SecurityGroups": [
            {"GroupId": "sg-default", "GroupName": "default"},
            {"GroupId": "sg-svc", "GroupName": "nodejs-app-service"},
        ]
    }
    reports: list[str] = []

    cleanup_resources(session, ecs_config, reports.append)

    assert any(line.startswith("Failed to delete NAT gateway nat-1") for line in reports)
    assert any(line.startswith("Failed to list route tables") for line in reports)
    aws_client.release_address.assert_not_called()
    aws_client.delete_internet_gateway.assert_called_once_with(InternetGatewayId="igw-1")
    aws_client.delete_subnet.assert_called_once_with(SubnetId="subnet-pub-a")
    aws_client.delete_security_group.assert_called_once_with(GroupId="sg-svc")
    aws_client.delete_vpc.assert_called_once_with(VpcId="vpc-123")


def test_cleanup_reports_task_definition_listing_failure(
    session: MagicMock,
    aws_client: MagicMock,
    client_error: Any,
    ecs_config: EcsDeploymentConfig,
) -> None:
    """A failed task definition listing does not stop the cluster delete."""
    ecs_config.vpc_id = None
    aws_client.get_paginator.return_value.paginate.side_effect = client_error(
        "AccessDeniedException"
    )
    aws_client.list_attached_role_policies.return_value = {"AttachedPolicies": []}
    aws_client.list_role_policies.return_value = {"PolicyNames": []}
    reports: list[str] = []

    cleanup_resources(session, ecs_config, reports.append)

    assert any(line.startswith("Failed to list task definitions") for line in reports)
    aws_client.delete_cluster.assert_called_once_with(cluster="nodejs-app-cluster")
