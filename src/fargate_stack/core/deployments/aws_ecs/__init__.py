"""AWS ECS Fargate provisioning and deployment helpers."""

from fargate_stack.core.deployments.aws_ecs.cleanup import cleanup_resources
from fargate_stack.core.deployments.aws_ecs.cluster import (
    DEFAULT_CAPACITY_PROVIDERS,
    PlacementStrategyError,
    ensure_cluster,
    expected_placement,
    validate_strategy,
)
from fargate_stack.core.deployments.aws_ecs.deploy import DeployOptions, deploy_service
from fargate_stack.core.deployments.aws_ecs.ecr import ensure_repository, latest_image_tag
from fargate_stack.core.deployments.aws_ecs.edge import create_edge
from fargate_stack.core.deployments.aws_ecs.iam import ensure_roles, ensure_service_linked_role
from fargate_stack.core.deployments.aws_ecs.images import (
    ImageBuildConfig,
    build_and_push_image,
    make_image_tag,
    resolve_commit,
)
from fargate_stack.core.deployments.aws_ecs.models import (
    CapacityProviderWeight,
    EcsDeploymentConfig,
    EdgeSelection,
    HealthCheckConfig,
    NetworkConfig,
    NetworkSelection,
    ScalingConfig,
    SecurityGroupInfo,
)
from fargate_stack.core.deployments.aws_ecs.network import (
    NetworkLayoutError,
    create_network,
    plan_subnets,
)
from fargate_stack.core.deployments.aws_ecs.rollout import (
    DeploymentError,
    RolloutFailedError,
    RolloutResult,
    RolloutTimeoutError,
    TaskDefinitionRenderError,
    render_task_definition,
    render_task_definition_file,
    roll_out_image,
)
from fargate_stack.core.deployments.aws_ecs.security_groups import ensure_security_group
from fargate_stack.core.deployments.aws_ecs.session import create_session, get_identity
from fargate_stack.core.deployments.aws_ecs.status import check_deployment, stack_outputs
from fargate_stack.core.deployments.aws_ecs.workload import (
    CapacityError,
    TaskSizeError,
    configure_autoscaling,
    ensure_log_group,
    ensure_service,
    register_task_definition,
    set_desired_count,
)

__all__ = [
    "DEFAULT_CAPACITY_PROVIDERS",
    "CapacityError",
    "CapacityProviderWeight",
    "DeployOptions",
    "DeploymentError",
    "EcsDeploymentConfig",
    "EdgeSelection",
    "HealthCheckConfig",
    "ImageBuildConfig",
    "NetworkConfig",
    "NetworkLayoutError",
    "NetworkSelection",
    "PlacementStrategyError",
    "RolloutFailedError",
    "RolloutResult",
    "RolloutTimeoutError",
    "ScalingConfig",
    "SecurityGroupInfo",
    "TaskDefinitionRenderError",
    "TaskSizeError",
    "build_and_push_image",
    "check_deployment",
    "cleanup_resources",
    "configure_autoscaling",
    "create_edge",
    "create_network",
    "create_session",
    "deploy_service",
    "ensure_cluster",
    "ensure_log_group",
    "ensure_repository",
    "ensure_roles",
    "ensure_security_group",
    "ensure_service",
    "ensure_service_linked_role",
    "expected_placement",
    "get_identity",
    "latest_image_tag",
    "make_image_tag",
    "plan_subnets",
    "register_task_definition",
    "render_task_definition",
    "render_task_definition_file",
    "resolve_commit",
    "roll_out_image",
    "set_desired_count",
    "stack_outputs",
    "validate_strategy",
]
