"""Provisioning and deployment step helpers for the CLI."""

import logging
from pathlib import Path

from boto3.session import Session

from fargate_stack.cli.configuration.models import DeploymentState, StackConfig
from fargate_stack.cli.configuration.store import save_config
from fargate_stack.cli.ui import console, report_step
from fargate_stack.core.deployments.aws_ecs import (
    CapacityProviderWeight,
    DeployOptions,
    EcsDeploymentConfig,
    HealthCheckConfig,
    ImageBuildConfig,
    NetworkConfig,
    RolloutResult,
    ScalingConfig,
    build_and_push_image,
    cleanup_resources,
    configure_autoscaling,
    create_edge,
    create_network,
    deploy_service,
    ensure_cluster,
    ensure_repository,
    ensure_roles,
    ensure_security_group,
    ensure_service,
    ensure_service_linked_role,
    latest_image_tag,
    make_image_tag,
    register_task_definition,
    resolve_commit,
    set_desired_count,
)
from fargate_stack.core.deployments.aws_ecs.iam import role_names
from fargate_stack.core.deployments.aws_ecs.security_groups import (
    allow_ingress_from_anywhere,
    allow_ingress_from_group,
)

logger = logging.getLogger(__name__)


def ecs_config_from_cli(config: StackConfig) -> EcsDeploymentConfig:
    """Build an ECS deployment config from CLI config.

    Args:
        config: CLI configuration values.

    Returns:
        The ECS deployment configuration.
    """
    service = config.service
    edge = config.edge
    state = config.deployment
    return EcsDeploymentConfig(
        aws_region=config.aws.region,
        aws_profile=config.aws.profile,
        project_name=service.project_name,
        cluster_name=config.cluster.name,
        service_name=service.name,
        task_family=service.task_family,
        container_name=service.container_name,
        container_port=service.container_port,
        listener_port=edge.listener_port,
        task_cpu=service.task_cpu,
        task_memory=service.task_memory,
        task_cpu_architecture=service.task_cpu_architecture,
        ecr_repository=service.ecr_repository,
        log_group_name=service.log_group_name,
        health_check_grace_period=service.health_check_grace_period,
        network=NetworkConfig(**config.network.model_dump()),
        capacity_providers=[
            CapacityProviderWeight(name=item.name, weight=item.weight, base=item.base)
            for item in config.cluster.capacity_providers
        ],
        health_check=HealthCheckConfig(
            path=edge.health_check_path,
            interval_seconds=edge.health_check_interval,
            timeout_seconds=edge.health_check_timeout,
            healthy_threshold=edge.healthy_threshold,
            unhealthy_threshold=edge.unhealthy_threshold,
            matcher=edge.health_check_matcher,
        ),
        scaling=ScalingConfig(**config.scaling.model_dump()),
        environment=dict(service.environment),
        task_role_statements=list(service.task_role_statements),
        tags=dict(config.tags),
        image_uri=state.image_uri,
        vpc_id=state.vpc_id,
        public_subnet_ids=list(state.public_subnet_ids),
        private_subnet_ids=list(state.private_subnet_ids),
        alb_security_group_id=state.alb_security_group_id,
        service_security_group_id=state.service_security_group_id,
        exec_role_arn=state.exec_role_arn,
        task_role_arn=state.task_role_arn,
        repository_uri=state.repository_uri,
        task_definition_arn=state.task_definition_arn,
        cluster_arn=state.cluster_arn,
        service_arn=state.service_arn,
        load_balancer_arn=state.load_balancer_arn,
        load_balancer_dns_name=state.load_balancer_dns_name,
        target_group_arn=state.target_group_arn,
        listener_arn=state.listener_arn,
    )


def run_provision(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Provision the whole stack, saving state after every step.

    Steps that already have saved identifiers are skipped. When the
    repository holds no image yet, provisioning stops after the repository
    so that ``build`` can push a first image.
    """
    config = run_network_step(session, config, path)
    config = run_security_group_step(session, config, path)
    config = run_cluster_step(session, config, path)
    config = run_iam_step(session, config, path)
    config = run_edge_step(session, config, path)
    config = run_ecr_step(session, config, path)

    image_uri = resolve_service_image(session, config)
    if image_uri is None:
        console.print(
            "[yellow]The repository has no image yet. Run 'fargate-stack build' and then "
            "'fargate-stack provision' again to create the service.[/yellow]"
        )
        return config

    config = run_task_definition_step(session, config, path, image_uri)
    config = run_service_step(session, config, path)
    return run_autoscaling_step(session, config)


def run_network_step(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Create the VPC, subnets, gateways and routes."""
    if config.deployment.vpc_id:
        report_step(f"Using existing VPC {config.deployment.vpc_id}")
        return config

    console.print("[cyan]Starting network setup...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    network = create_network(
        session,
        ecs_config.project_name,
        ecs_config.network,
        ecs_config.tags,
        report_step,
    )
    config.deployment.vpc_id = network.vpc_id
    config.deployment.public_subnet_ids = network.public_subnet_ids
    config.deployment.private_subnet_ids = network.private_subnet_ids
    return _save_config_and_report(config, path, "Saved network configuration to {path}")


def run_security_group_step(
    session: Session, config: StackConfig, path: Path | None
) -> StackConfig:
    """Create the load balancer and service security groups."""
    vpc_id = _require(config.deployment.vpc_id, "VPC")
    project_name = config.service.project_name

    console.print("[cyan]Setting up security groups...[/cyan]")
    report_step(f"Ensuring load balancer security group (port {config.edge.listener_port})")
    alb_group = ensure_security_group(
        session,
        vpc_id,
        f"{project_name}-alb",
        f"Load balancer for {project_name}",
        config.tags,
    )
    allow_ingress_from_anywhere(session, alb_group.group_id, config.edge.listener_port)

    report_step(f"Ensuring service security group (port {config.service.container_port})")
    service_group = ensure_security_group(
        session,
        vpc_id,
        f"{project_name}-service",
        f"ECS tasks for {project_name}",
        config.tags,
    )
    allow_ingress_from_group(
        session,
        service_group.group_id,
        alb_group.group_id,
        config.service.container_port,
    )

    config.deployment.alb_security_group_id = alb_group.group_id
    config.deployment.service_security_group_id = service_group.group_id
    return _save_config_and_report(config, path, "Saved security groups to {path}")


def run_cluster_step(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Ensure the ECS cluster exists with its capacity provider strategy."""
    console.print("[cyan]Ensuring ECS cluster...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    config.deployment.cluster_arn = ensure_cluster(
        session,
        ecs_config.cluster_name,
        ecs_config.capacity_providers,
        ecs_config.tags,
        report_step,
    )
    return _save_config_and_report(config, path, "Saved cluster ARN to {path}")


def run_iam_step(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Create IAM roles for ECS tasks."""
    console.print("[cyan]Setting up IAM roles...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    ensure_service_linked_role(session, report_step)
    exec_role_arn, task_role_arn = ensure_roles(
        session,
        ecs_config.project_name,
        ecs_config.aws_region,
        ecs_config.log_group_name,
        ecs_config.task_role_statements,
        ecs_config.tags,
        report_step,
    )
    config.deployment.exec_role_arn = exec_role_arn
    config.deployment.task_role_arn = task_role_arn
    return _save_config_and_report(config, path, "Saved IAM role configuration to {path}")


def run_edge_step(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Create the load balancer, target group and listener."""
    console.print("[cyan]Setting up load balancer...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    edge = create_edge(
        session,
        ecs_config.project_name,
        _require(ecs_config.vpc_id, "VPC"),
        ecs_config.public_subnet_ids,
        _require(ecs_config.alb_security_group_id, "Load balancer security group"),
        ecs_config.container_port,
        ecs_config.listener_port,
        ecs_config.health_check,
        ecs_config.tags,
        report_step,
    )
    config.deployment.load_balancer_arn = edge.load_balancer_arn
    config.deployment.load_balancer_dns_name = edge.load_balancer_dns_name
    config.deployment.target_group_arn = edge.target_group_arn
    config.deployment.listener_arn = edge.listener_arn
    return _save_config_and_report(config, path, "Saved load balancer configuration to {path}")


def run_ecr_step(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Create the ECR repository for service images."""
    console.print("[cyan]Setting up ECR repository...[/cyan]")
    report_step(f"Ensuring repository {config.service.ecr_repository}")
    config.deployment.repository_uri = ensure_repository(
        session, config.service.ecr_repository, config.tags
    )
    return _save_config_and_report(config, path, "Saved ECR repository to {path}")


def run_task_definition_step(
    session: Session,
    config: StackConfig,
    path: Path | None,
    image_uri: str,
) -> StackConfig:
    """Register the service task definition."""
    console.print("[cyan]Registering ECS task definition...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    config.deployment.task_definition_arn = register_task_definition(
        session, ecs_config, image_uri, report_step
    )
    config.deployment.image_uri = image_uri
    return _save_config_and_report(config, path, "Saved task definition ARN to {path}")


def run_service_step(session: Session, config: StackConfig, path: Path | None) -> StackConfig:
    """Create or update the ECS service."""
    console.print("[cyan]Ensuring ECS service...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    config.deployment.service_arn = ensure_service(session, ecs_config, report_step)
    return _save_config_and_report(config, path, "Saved service ARN to {path}")


def run_autoscaling_step(session: Session, config: StackConfig) -> StackConfig:
    """Attach target-tracking autoscaling to the service."""
    console.print("[cyan]Configuring autoscaling...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    configure_autoscaling(
        session,
        ecs_config.cluster_name,
        ecs_config.service_name,
        ecs_config.scaling,
        report_step,
    )
    return config


def resolve_service_image(session: Session, config: StackConfig) -> str | None:
    """Return the image the service should run: saved, or newest in the repository."""
    if config.deployment.image_uri:
        return config.deployment.image_uri
    repository_uri = config.deployment.repository_uri
    if not repository_uri:
        return None
    tag = latest_image_tag(session, config.service.ecr_repository)
    if tag is None:
        return None
    return f"{repository_uri}:{tag}"


def image_config_for(
    session: Session,
    config: StackConfig,
    image_tag: str | None,
    commit: str | None,
    push: bool = True,
) -> ImageBuildConfig:
    """Return image build settings, deriving a fresh tag when none is given.

    Build-only runs use the bare repository name so they need no AWS access.
    """
    repository_uri = config.deployment.repository_uri
    if not repository_uri:
        repository_uri = (
            ensure_repository(session, config.service.ecr_repository, config.tags)
            if push
            else config.service.ecr_repository
        )
    build_context = Path(config.service.build_context)
    if not image_tag:
        image_tag = make_image_tag(resolve_commit(build_context, commit))
    return ImageBuildConfig(
        repository_uri=repository_uri,
        image_tag=image_tag,
        build_context=build_context,
        dockerfile=config.service.dockerfile,
        platform=config.service.platform,
        publish_latest=config.service.publish_latest,
    )


def run_build_step(
    session: Session,
    config: StackConfig,
    path: Path | None,
    image_config: ImageBuildConfig,
    push: bool,
) -> str:
    """Build the image and, unless ``push`` is false, publish it."""
    console.print("[cyan]Building image...[/cyan]")
    image_uri = build_and_push_image(session, image_config, report_step, push=push)
    if push:
        config.deployment.repository_uri = image_config.repository_uri
        _save_config_and_report(config, path, "Saved repository to {path}")
    return image_uri


def run_deploy_step(
    session: Session,
    config: StackConfig,
    path: Path | None,
    image_config: ImageBuildConfig,
    options: DeployOptions,
) -> RolloutResult:
    """Build, push and roll the image out, recording the new revision."""
    console.print(f"[cyan]Deploying {image_config.image_uri}...[/cyan]")
    ecs_config = ecs_config_from_cli(config)
    result = deploy_service(session, ecs_config, image_config, report_step, options)
    config.deployment.image_uri = result.image_uri
    config.deployment.task_definition_arn = result.task_definition_arn
    _save_config_and_report(config, path, "Saved deployed revision to {path}")
    return result


def run_scale_step(
    session: Session, config: StackConfig, path: Path | None, desired_count: int
) -> StackConfig:
    """Change the service desired count within the configured bounds."""
    ecs_config = ecs_config_from_cli(config)
    report_step(f"Scaling {ecs_config.service_name} to {desired_count} tasks")
    set_desired_count(
        session,
        ecs_config.cluster_name,
        ecs_config.service_name,
        desired_count,
        ecs_config.scaling,
    )
    config.scaling.desired_count = desired_count
    return _save_config_and_report(config, path, "Saved desired count to {path}")


def run_cleanup_step(
    session: Session,
    config: StackConfig,
    path: Path | None,
    delete_repository: bool,
) -> StackConfig:
    """Delete the stack and clear saved state."""
    console.print("[cyan]Cleaning up stack resources...[/cyan]")
    cleanup_resources(
        session,
        ecs_config_from_cli(config),
        report_step,
        delete_repository=delete_repository,
    )
    config.deployment = DeploymentState()
    return _save_config_and_report(config, path, "Cleared deployment state in {path}")


def print_cleanup_summary(config: StackConfig, delete_repository: bool) -> None:
    """Print a summary of resources to be cleaned up.

    Args:
        config: CLI configuration values.
        delete_repository: Whether the ECR repository is included.
    """
    state = config.deployment
    console.print("[bold]Resources to clean up:[/bold]")
    console.print(f"- ECS service: {config.service.name} (and its autoscaling target)")
    console.print(f"- Load balancer: {state.load_balancer_arn or 'not set'}")
    console.print(f"- Target group: {state.target_group_arn or 'not set'}")
    console.print(f"- Task definitions: {config.service.task_family} (all revisions)")
    console.print(f"- ECS cluster: {config.cluster.name}")
    console.print(f"- Log group: {config.service.log_group_name}")
    if delete_repository:
        console.print(f"- ECR repo (with images): {config.service.ecr_repository}")
    console.print(f"- IAM roles: {', '.join(role_names(config.service.project_name))}")
    console.print(f"- VPC: {state.vpc_id or 'not set'} (subnets, gateways, security groups)")


def _require(value: str | None, label: str) -> str:
    """Return a saved identifier or stop when an earlier step has not run."""
    if not value:
        raise RuntimeError(f"{label} is missing. Run 'fargate-stack provision' first.")
    return value


def _save_config_and_report(config: StackConfig, path: Path | None, message: str) -> StackConfig:
    """Persist config and print a message containing the saved path."""
    saved_path = save_config(config, path)
    logger.debug("Saved stack state to %s", saved_path)
    console.print(f"[dim]{message.format(path=saved_path)}[/dim]")
    return config
