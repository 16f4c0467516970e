"""Task definition, service and autoscaling helpers."""

import logging
from collections.abc import Callable
from typing import Any, cast

from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.cluster import ecs_tags
from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig, ScalingConfig

logger = logging.getLogger(__name__)

SCALABLE_DIMENSION = "ecs:service:DesiredCount"
CPU_METRIC = "ECSServiceAverageCPUUtilization"
MEMORY_METRIC = "ECSServiceAverageMemoryUtilization"


def _memory_range(start: int, stop: int, step: int) -> tuple[int, ...]:
    return tuple(range(start, stop + 1, step))


# Valid Fargate CPU units mapped to the memory sizes (MiB) allowed with them.
FARGATE_TASK_SIZES: dict[int, tuple[int, ...]] = {
    256: (512, 1024, 2048),
    512: _memory_range(1024, 4096, 1024),
    1024: _memory_range(2048, 8192, 1024),
    2048: _memory_range(4096, 16384, 1024),
    4096: _memory_range(8192, 30720, 1024),
    8192: _memory_range(16384, 61440, 4096),
    16384: _memory_range(32768, 122880, 8192),
}


class TaskSizeError(ValueError):
    """Raised when a CPU/memory pair is not a Fargate task size."""


class CapacityError(ValueError):
    """Raised when a desired count falls outside the scaling bounds."""


def validate_task_size(cpu: int, memory: int) -> None:
    """Check a CPU/memory pair against the Fargate size table."""
    allowed = FARGATE_TASK_SIZES.get(cpu)
    if allowed is None:
        choices = ", ".join(str(value) for value in FARGATE_TASK_SIZES)
        raise TaskSizeError(f"Unsupported Fargate CPU value {cpu}. Use one of: {choices}.")
    if memory not in allowed:
        raise TaskSizeError(
            f"Memory {memory} MiB is not valid with {cpu} CPU units "
            f"(allowed {allowed[0]}-{allowed[-1]} MiB)."
        )


def validate_capacity(min_capacity: int, desired_count: int, max_capacity: int) -> None:
    """Check that ``0 <= min <= desired <= max``."""
    if min_capacity < 0:
        raise CapacityError(f"Minimum capacity cannot be negative, got {min_capacity}.")
    if min_capacity > max_capacity:
        raise CapacityError(
            f"Minimum capacity {min_capacity} exceeds maximum capacity {max_capacity}."
        )
    if not min_capacity <= desired_count <= max_capacity:
        raise CapacityError(
            f"Desired count {desired_count} is outside the scaling range "
            f"{min_capacity}-{max_capacity}."
        )


def normalise_cpu_architecture(value: str) -> str:
    """Return a validated ECS CPU architecture."""
    architecture = value.strip().upper()
    if architecture in {"X86_64", "ARM64"}:
        return architecture
    raise RuntimeError(f"Unsupported ECS CPU architecture '{value}'. Use X86_64 or ARM64.")


def ensure_log_group(session: Any, log_group_name: str) -> None:
    """Ensure a CloudWatch log group exists."""
    logs = session.client("logs")
    try:
        logs.create_log_group(logGroupName=log_group_name)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "ResourceAlreadyExistsException":
            raise RuntimeError(f"Failed to create log group: {exc}") from exc


def build_task_definition(config: EcsDeploymentConfig, image_uri: str) -> dict[str, Any]:
    """Return a ``register_task_definition`` request for the service container."""
    validate_task_size(config.task_cpu, config.task_memory)
    if not config.exec_role_arn or not config.task_role_arn:
        raise RuntimeError("Task roles must be created before registering the task definition.")

    container = {
        "name": config.container_name,
        "image": image_uri,
        "essential": True,
        "portMappings": [
            {
                "containerPort": config.container_port,
                "hostPort": config.container_port,
                "protocol": "tcp",
            }
        ],
        "environment": [
            {"name": name, "value": value} for name, value in sorted(config.environment.items())
        ],
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": config.log_group_name,
                "awslogs-region": config.aws_region,
                "awslogs-stream-prefix": config.container_name,
            },
        },
    }

    request: dict[str, Any] = {
        "family": config.task_family,
        "networkMode": "awsvpc",
        "requiresCompatibilities": ["FARGATE"],
        "runtimePlatform": {
            "cpuArchitecture": normalise_cpu_architecture(config.task_cpu_architecture),
            "operatingSystemFamily": "LINUX",
        },
        "cpu": str(config.task_cpu),
        "memory": str(config.task_memory),
        "executionRoleArn": config.exec_role_arn,
        "taskRoleArn": config.task_role_arn,
        "containerDefinitions": [container],
    }
    if config.tags:
        request["tags"] = ecs_tags(config.tags)
    return request


def register_task_definition(
    session: Any,
    config: EcsDeploymentConfig,
    image_uri: str,
    reporter: Callable[[str], None],
) -> str:
    """Register the service task definition and return its ARN."""
    request = build_task_definition(config, image_uri)

    reporter("Ensuring CloudWatch log group for task logs")
    ensure_log_group(session, config.log_group_name)

    reporter(f"Registering task definition {config.task_family}")
    ecs = session.client("ecs")
    response = ecs.register_task_definition(**request)
    return cast(str, response["taskDefinition"]["taskDefinitionArn"])


def ensure_service(
    session: Any,
    config: EcsDeploymentConfig,
    reporter: Callable[[str], None],
) -> str:
    """Create the ECS service behind the target group, or update it if present."""
    scaling = config.scaling
    validate_capacity(scaling.min_capacity, scaling.desired_count, scaling.max_capacity)
    if not config.task_definition_arn:
        raise RuntimeError("Task definition is missing. Register it before creating the service.")
    if not config.target_group_arn:
        raise RuntimeError("Target group is missing. Create the load balancer first.")
    if not config.private_subnet_ids or not config.service_security_group_id:
        raise RuntimeError(
            "Network configuration is missing. Configure subnets and security group."
        )

    ecs = session.client("ecs")
    existing = _describe_service(ecs, config.cluster_name, config.service_name)
    if existing is not None and existing.get("status") == "ACTIVE":
        reporter(f"Updating ECS service {config.service_name}")
        response = ecs.update_service(
            cluster=config.cluster_name,
            service=config.service_name,
            taskDefinition=config.task_definition_arn,
            desiredCount=scaling.desired_count,
            healthCheckGracePeriodSeconds=config.health_check_grace_period,
        )
        return cast(str, response["service"]["serviceArn"])

    reporter(f"Creating ECS service {config.service_name}")
    request: dict[str, Any] = {
        "cluster": config.cluster_name,
        "serviceName": config.service_name,
        "taskDefinition": config.task_definition_arn,
        "desiredCount": scaling.desired_count,
        "networkConfiguration": {
            "awsvpcConfiguration": {
                "subnets": config.private_subnet_ids,
                "securityGroups": [config.service_security_group_id],
                "assignPublicIp": "DISABLED",
            }
        },
        "loadBalancers": [
            {
                "targetGroupArn": config.target_group_arn,
                "containerName": config.container_name,
                "containerPort": config.container_port,
            }
        ],
        "healthCheckGracePeriodSeconds": config.health_check_grace_period,
        "deploymentConfiguration": {
            "minimumHealthyPercent": 100,
            "maximumPercent": 200,
            "deploymentCircuitBreaker": {"enable": False, "rollback": False},
        },
        "propagateTags": "SERVICE",
    }
    if config.tags:
        request["tags"] = ecs_tags(config.tags)
    try:
        response = ecs.create_service(**request)
    except ClientError as exc:
        raise RuntimeError(f"Failed to create ECS service {config.service_name}: {exc}") from exc
    return cast(str, response["service"]["serviceArn"])


def configure_autoscaling(
    session: Any,
    cluster_name: str,
    service_name: str,
    scaling: ScalingConfig,
    reporter: Callable[[str], None],
) -> list[str]:
    """Register the service as a scalable target with CPU and memory tracking."""
    validate_capacity(scaling.min_capacity, scaling.desired_count, scaling.max_capacity)
    autoscaling = session.client("application-autoscaling")
    resource_id = service_resource_id(cluster_name, service_name)

    reporter(
        f"Registering scalable target {resource_id} "
        f"({scaling.min_capacity}-{scaling.max_capacity} tasks)"
    )
    autoscaling.register_scalable_target(
        ServiceNamespace="ecs",
        ResourceId=resource_id,
        ScalableDimension=SCALABLE_DIMENSION,
        MinCapacity=scaling.min_capacity,
        MaxCapacity=scaling.max_capacity,
    )

    policy_arns = []
    for suffix, metric, target in (
        ("cpu", CPU_METRIC, scaling.cpu_target_value),
        ("memory", MEMORY_METRIC, scaling.memory_target_value),
    ):
        policy_name = f"{service_name}-{suffix}-target-tracking"
        reporter(f"Putting target-tracking policy {policy_name} ({target:g}%)")
        response = autoscaling.put_scaling_policy(
            PolicyName=policy_name,
            ServiceNamespace="ecs",
            ResourceId=resource_id,
            ScalableDimension=SCALABLE_DIMENSION,
            PolicyType="TargetTrackingScaling",
            TargetTrackingScalingPolicyConfiguration={
                "TargetValue": target,
                "PredefinedMetricSpecification": {"PredefinedMetricType": metric},
                "ScaleInCooldown": scaling.scale_in_cooldown,
                "ScaleOutCooldown": scaling.scale_out_cooldown,
            },
        )
        policy_arns.append(cast(str, response["PolicyARN"]))
    return policy_arns


def set_desired_count(
    session: Any,
    cluster_name: str,
    service_name: str,
    desired_count: int,
    scaling: ScalingConfig,
) -> None:
    """Change the desired task count after checking it against the scaling bounds."""
    validate_capacity(scaling.min_capacity, desired_count, scaling.max_capacity)
    ecs = session.client("ecs")
    try:
        ecs.update_service(
            cluster=cluster_name,
            service=service_name,
            desiredCount=desired_count,
        )
    except ClientError as exc:
        raise RuntimeError(f"Failed to scale service {service_name}: {exc}") from exc
    logger.info("Set desired count of %s to %d", service_name, desired_count)


def service_resource_id(cluster_name: str, service_name: str) -> str:
    """Return the Application Auto Scaling resource ID of a service."""
    return f"service/{cluster_name}/{service_name}"


def _describe_service(ecs: Any, cluster_name: str, service_name: str) -> dict[str, Any] | None:
    """Return a service description, or None when it does not exist."""
    try:
        response = ecs.describe_services(cluster=cluster_name, services=[service_name])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "ClusterNotFoundException":
            return None
        raise RuntimeError(f"Failed to read ECS service {service_name}: {exc}") from exc
    services = response.get("services", [])
    return services[0] if services else None
