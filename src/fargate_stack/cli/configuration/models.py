"""CLI configuration models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fargate_stack.core.deployments.aws_ecs.cluster import DEFAULT_CAPACITY_PROVIDERS


class AwsConfig(BaseModel):
    """AWS configuration values for the stack."""

    region: str = "us-east-1"
    profile: str | None = None


class NetworkSettings(BaseModel):
    """VPC layout values."""

    vpc_cidr: str = "10.0.0.0/16"
    availability_zones: list[str] = Field(default_factory=list)
    az_count: int = 2
    public_subnet_cidrs: list[str] = Field(default_factory=list)
    private_subnet_cidrs: list[str] = Field(default_factory=list)
    enable_nat_gateway: bool = True
    single_nat_gateway: bool = True


class CapacityProviderSettings(BaseModel):
    """One capacity provider entry of the cluster default strategy."""

    name: str
    weight: int
    base: int = 0


def _default_capacity_providers() -> list[CapacityProviderSettings]:
    return [
        CapacityProviderSettings(name=item.name, weight=item.weight, base=item.base)
        for item in DEFAULT_CAPACITY_PROVIDERS
    ]


class ClusterSettings(BaseModel):
    """ECS cluster values."""

    name: str = "nodejs-app-cluster"
    capacity_providers: list[CapacityProviderSettings] = Field(
        default_factory=_default_capacity_providers
    )


class ServiceSettings(BaseModel):
    """ECS service, task definition and image values."""

    project_name: str = "nodejs-app"
    name: str = "nodejs-app-service"
    task_family: str = "nodejs-app"
    container_name: str = "nodejs-app"
    container_port: int = 3000
    task_cpu: int = 256
    task_memory: int = 512
    task_cpu_architecture: str = "X86_64"
    ecr_repository: str = "nodejs-app"
    log_group_name: str = "/ecs/nodejs-app"
    health_check_grace_period: int = 60
    build_context: str = "app"
    dockerfile: str = "Dockerfile"
    platform: str = "linux/amd64"
    publish_latest: bool = False
    environment: dict[str, str] = Field(default_factory=lambda: {"NODE_ENV": "production"})
    task_role_statements: list[dict[str, Any]] = Field(default_factory=list)


class ScalingSettings(BaseModel):
    """Service size bounds and target-tracking values."""

    desired_count: int = 2
    min_capacity: int = 1
    max_capacity: int = 4
    cpu_target_value: float = 70.0
    memory_target_value: float = 80.0
    scale_in_cooldown: int = 300
    scale_out_cooldown: int = 60


class EdgeSettings(BaseModel):
    """Load balancer, listener and health check values."""

    listener_port: int = 80
    health_check_path: str = "/health"
    health_check_interval: int = 30
    health_check_timeout: int = 5
    healthy_threshold: int = 3
    unhealthy_threshold: int = 3
    health_check_matcher: str = "200"


class DeploymentState(BaseModel):
    """Runtime deployment state discovered or created by the CLI."""

    vpc_id: str | None = None
    public_subnet_ids: list[str] = Field(default_factory=list)
    private_subnet_ids: list[str] = Field(default_factory=list)
    alb_security_group_id: str | None = None
    service_security_group_id: str | None = None
    exec_role_arn: str | None = None
    task_role_arn: str | None = None
    repository_uri: str | None = None
    image_uri: str | None = None
    task_definition_arn: str | None = None
    cluster_arn: str | None = None
    service_arn: str | None = None
    load_balancer_arn: str | None = None
    load_balancer_dns_name: str | None = None
    target_group_arn: str | None = None
    listener_arn: str | None = None


class StackConfig(BaseModel):
    """Stack configuration and deployment state."""

    model_config = ConfigDict(extra="ignore")

    aws: AwsConfig = Field(default_factory=AwsConfig)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    cluster: ClusterSettings = Field(default_factory=ClusterSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    scaling: ScalingSettings = Field(default_factory=ScalingSettings)
    edge: EdgeSettings = Field(default_factory=EdgeSettings)
    tags: dict[str, str] = Field(
        default_factory=lambda: {"Project": "nodejs-app", "ManagedBy": "fargate-stack"}
    )
    deployment: DeploymentState = Field(default_factory=DeploymentState)
