"""Data models for the ECS Fargate stack."""

from dataclasses import dataclass, field


@dataclass
class NetworkConfig:
    """VPC layout inputs."""

    vpc_cidr: str = "10.0.0.0/16"
    availability_zones: list[str] = field(default_factory=list)
    az_count: int = 2
    public_subnet_cidrs: list[str] = field(default_factory=list)
    private_subnet_cidrs: list[str] = field(default_factory=list)
    enable_nat_gateway: bool = True
    single_nat_gateway: bool = True


@dataclass(frozen=True)
class CapacityProviderWeight:
    """One entry of a capacity provider strategy."""

    name: str
    weight: int
    base: int = 0


@dataclass
class HealthCheckConfig:
    """Target group health check settings."""

    path: str = "/health"
    interval_seconds: int = 30
    timeout_seconds: int = 5
    healthy_threshold: int = 3
    unhealthy_threshold: int = 3
    matcher: str = "200"


@dataclass
class ScalingConfig:
    """Service size bounds and target-tracking settings."""

    desired_count: int = 2
    min_capacity: int = 1
    max_capacity: int = 4
    cpu_target_value: float = 70.0
    memory_target_value: float = 80.0
    scale_in_cooldown: int = 300
    scale_out_cooldown: int = 60


@dataclass
class EcsDeploymentConfig:
    """Configuration for provisioning and deploying the ECS stack."""

    aws_region: str
    aws_profile: str | None
    project_name: str
    cluster_name: str
    service_name: str
    task_family: str
    container_name: str
    container_port: int
    listener_port: int
    task_cpu: int
    task_memory: int
    task_cpu_architecture: str
    ecr_repository: str
    log_group_name: str
    health_check_grace_period: int
    network: NetworkConfig = field(default_factory=NetworkConfig)
    capacity_providers: list[CapacityProviderWeight] = field(default_factory=list)
    health_check: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    scaling: ScalingConfig = field(default_factory=ScalingConfig)
    environment: dict[str, str] = field(default_factory=dict)
    task_role_statements: list[dict[str, object]] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    image_uri: str | None = None
    vpc_id: str | None = None
    public_subnet_ids: list[str] = field(default_factory=list)
    private_subnet_ids: list[str] = field(default_factory=list)
    alb_security_group_id: str | None = None
    service_security_group_id: str | None = None
    exec_role_arn: str | None = None
    task_role_arn: str | None = None
    repository_uri: str | None = None
    task_definition_arn: str | None = None
    cluster_arn: str | None = None
    service_arn: str | None = None
    load_balancer_arn: str | None = None
    load_balancer_dns_name: str | None = None
    target_group_arn: str | None = None
    listener_arn: str | None = None


@dataclass(frozen=True)
class SubnetLayout:
    """Validated per-AZ subnet CIDRs."""

    availability_zones: list[str]
    public_cidrs: list[str]
    private_cidrs: list[str]


@dataclass
class NetworkSelection:
    """Identifiers of a provisioned network."""

    vpc_id: str
    public_subnet_ids: list[str] = field(default_factory=list)
    private_subnet_ids: list[str] = field(default_factory=list)
    nat_gateway_ids: list[str] = field(default_factory=list)


@dataclass
class SecurityGroupInfo:
    """Representation of a security group."""

    group_id: str
    name: str
    description: str


@dataclass
class EdgeSelection:
    """Identifiers of the load balancer, target group and listener."""

    load_balancer_arn: str
    load_balancer_dns_name: str
    target_group_arn: str
    listener_arn: str
