"""Tests for task sizing, capacity bounds, services and autoscaling."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig, ScalingConfig
from fargate_stack.core.deployments.aws_ecs.workload import (
    CPU_METRIC,
    MEMORY_METRIC,
    CapacityError,
    TaskSizeError,
    build_task_definition,
    configure_autoscaling,
    ensure_service,
    set_desired_count,
    validate_capacity,
    validate_task_size,
)


@pytest.mark.parametrize(
    ("min_capacity", "desired", "max_capacity"),
    [(1, 2, 4), (0, 0, 0), (2, 2, 2), (1, 4, 4)],
)
def test_validate_capacity_accepts_ordered_bounds(
    min_capacity: int, desired: int, max_capacity: int
) -> None:
    """Counts with min <= desired <= max pass."""
    validate_capacity(min_capacity, desired, max_capacity)


@pytest.mark.parametrize(
    ("min_capacity", "desired", "max_capacity"),
    [(1, 5, 4), (2, 1, 4), (-1, 0, 2), (3, 3, 2)],
)
def test_validate_capacity_rejects_out_of_range(
    min_capacity: int, desired: int, max_capacity: int
) -> None:
    """Counts outside the bounds raise CapacityError."""
    with pytest.raises(CapacityError):
        validate_capacity(min_capacity, desired, max_capacity)


def test_set_desired_count_validates_before_calling_ecs(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """A desired count above the maximum never reaches the ECS API."""
    with pytest.raises(CapacityError):
        set_desired_count(session, "cluster", "service", 9, ScalingConfig(max_capacity=4))

    aws_client.update_service.assert_not_called()


def test_set_desired_count_updates_service(session: MagicMock, aws_client: MagicMock) -> None:
    """A count inside the bounds is applied to the service."""
    set_desired_count(session, "cluster", "service", 3, ScalingConfig())

    aws_client.update_service.assert_called_once_with(
        cluster="cluster", service="service", desiredCount=3
    )


def test_validate_task_size() -> None:
    """Only CPU/memory pairs from the Fargate table are accepted."""
    validate_task_size(256, 512)
    validate_task_size(1024, 8192)
    with pytest.raises(TaskSizeError, match="Unsupported Fargate CPU"):
        validate_task_size(300, 512)
    with pytest.raises(TaskSizeError, match="not valid with 256"):
        validate_task_size(256, 4096)


def test_build_task_definition(ecs_config: EcsDeploymentConfig) -> None:
    """The request describes one awsvpc Fargate container with logs and env."""
    request = build_task_definition(ecs_config, "repo:abc1234-1690000000")

    assert request["family"] == "nodejs-app"
    assert request["networkMode"] == "awsvpc"
    assert request["requiresCompatibilities"] == ["FARGATE"]
    assert request["cpu"] == "256"
    assert request["memory"] == "512"
    (container,) = request["containerDefinitions"]
    assert container["name"] == "nodejs-app"
    assert container["image"] == "repo:abc1234-1690000000"
    assert container["portMappings"][0]["containerPort"] == 3000
    assert container["environment"] == [
        {"name": "LOG_LEVEL", "value": "info"},
        {"name": "NODE_ENV", "value": "production"},
    ]
    assert container["logConfiguration"]["options"]["awslogs-group"] == "/ecs/nodejs-app"
    assert request["tags"] == [{"key": "Project", "value": "nodejs-app"}]


def test_build_task_definition_requires_roles(ecs_config: EcsDeploymentConfig) -> None:
    """Roles must exist before a definition can reference them."""
    ecs_config.task_role_arn = None

    with pytest.raises(RuntimeError, match="Task roles"):
        build_task_definition(ecs_config, "repo:tag")


def test_ensure_service_creates_private_service(
    session: MagicMock, aws_client: MagicMock, ecs_config: EcsDeploymentConfig
) -> None:
    """A new service runs in private subnets behind the target group."""
    aws_client.describe_services.return_value = {"services": [], "failures": []}
    aws_client.create_service.return_value = {"service": {"serviceArn": "arn:service"}}

    arn = ensure_service(session, ecs_config, lambda _: None)

    assert arn == "arn:service"
    request = aws_client.create_service.call_args.kwargs
    assert "launchType" not in request
    assert request["desiredCount"] == 2
    network = request["networkConfiguration"]["awsvpcConfiguration"]
    assert network["subnets"] == ["subnet-priv-a", "subnet-priv-b"]
    assert network["assignPublicIp"] == "DISABLED"
    assert request["loadBalancers"][0]["containerName"] == "nodejs-app"
    circuit_breaker = request["deploymentConfiguration"]["deploymentCircuitBreaker"]
    assert circuit_breaker == {"enable": False, "rollback": False}


def test_ensure_service_rejects_bad_capacity_first(
    session: MagicMock, aws_client: MagicMock, ecs_config: EcsDeploymentConfig
) -> None:
    """Invalid scaling bounds stop service creation before any call."""
    ecs_config.scaling = ScalingConfig(desired_count=10, max_capacity=4)

    with pytest.raises(CapacityError):
        ensure_service(session, ecs_config, lambda _: None)

    session.client.assert_not_called()


def test_configure_autoscaling_tracks_cpu_and_memory(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """Two target-tracking policies are attached to the scalable target."""
    aws_client.put_scaling_policy.side_effect = [
        {"PolicyARN": "arn:policy/cpu"},
        {"PolicyARN": "arn:policy/memory"},
    ]
    scaling = ScalingConfig(min_capacity=1, desired_count=2, max_capacity=6)

    arns = configure_autoscaling(session, "cluster", "service", scaling, lambda _: None)

    assert arns == ["arn:policy/cpu", "arn:policy/memory"]
    target = aws_client.register_scalable_target.call_args.kwargs
    assert target["ResourceId"] == "service/cluster/service"
    assert (target["MinCapacity"], target["MaxCapacity"]) == (1, 6)
    policies: list[dict[str, Any]] = [
        call.kwargs["TargetTrackingScalingPolicyConfiguration"]
        for call in aws_client.put_scaling_policy.call_args_list
    ]
    assert [p["PredefinedMetricSpecification"]["PredefinedMetricType"] for p in policies] == [
        CPU_METRIC,
        MEMORY_METRIC,
    ]
    assert policies[0]["TargetValue"] == 70.0
    assert policies[0]["ScaleInCooldown"] == 300
    assert policies[0]["ScaleOutCooldown"] == 60
