"""Application Load Balancer, target group and listener helpers."""

import logging
from collections.abc import Callable
from typing import Any, cast

from boto3.session import Session
from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.models import EdgeSelection, HealthCheckConfig

logger = logging.getLogger(__name__)

# Load balancer and target group names are capped by the ELBv2 API.
MAX_ELB_NAME_LENGTH = 32


def elb_name(project_name: str, suffix: str) -> str:
    """Return a load balancer or target group name within the API length limit."""
    stem = project_name[: MAX_ELB_NAME_LENGTH - len(suffix) - 1].rstrip("-")
    return f"{stem}-{suffix}"


def ensure_load_balancer(
    session: Session,
    name: str,
    subnet_ids: list[str],
    security_group_id: str,
    tags: dict[str, str],
) -> tuple[str, str]:
    """Return the ARN and DNS name of an internet-facing ALB."""
    if len(subnet_ids) < 2:
        raise RuntimeError("An application load balancer needs subnets in two or more zones.")

    elbv2 = session.client("elbv2")
    existing = _describe_load_balancer(elbv2, name)
    if existing is not None:
        return cast(str, existing["LoadBalancerArn"]), cast(str, existing["DNSName"])

    try:
        response = elbv2.create_load_balancer(
            Name=name,
            Subnets=subnet_ids,
            SecurityGroups=[security_group_id],
            Scheme="internet-facing",
            Type="application",
            IpAddressType="ipv4",
            **_tag_kwargs(tags),
        )
    except ClientError as exc:
        raise RuntimeError(f"Failed to create load balancer {name}: {exc}") from exc

    load_balancer = response["LoadBalancers"][0]
    arn = cast(str, load_balancer["LoadBalancerArn"])
    elbv2.get_waiter("load_balancer_available").wait(LoadBalancerArns=[arn])
    return arn, cast(str, load_balancer["DNSName"])


def ensure_target_group(
    session: Session,
    name: str,
    vpc_id: str,
    port: int,
    health_check: HealthCheckConfig,
    tags: dict[str, str],
) -> str:
    """Return the ARN of an IP target group probed over HTTP GET."""
    elbv2 = session.client("elbv2")
    try:
        response = elbv2.describe_target_groups(Names=[name])
        groups = response.get("TargetGroups", [])
        if groups:
            return cast(str, groups[0]["TargetGroupArn"])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "TargetGroupNotFound":
            raise RuntimeError(f"Failed to read target group {name}: {exc}") from exc

    response = elbv2.create_target_group(
        Name=name,
        Protocol="HTTP",
        Port=port,
        VpcId=vpc_id,
        TargetType="ip",
        HealthCheckEnabled=True,
        HealthCheckProtocol="HTTP",
        HealthCheckPath=health_check.path,
        HealthCheckIntervalSeconds=health_check.interval_seconds,
        HealthCheckTimeoutSeconds=health_check.timeout_seconds,
        HealthyThresholdCount=health_check.healthy_threshold,
        UnhealthyThresholdCount=health_check.unhealthy_threshold,
        Matcher={"HttpCode": health_check.matcher},
        **_tag_kwargs(tags),
    )
    return cast(str, response["TargetGroups"][0]["TargetGroupArn"])


def ensure_listener(
    session: Session,
    load_balancer_arn: str,
    port: int,
    target_group_arn: str,
) -> str:
    """Return the ARN of an HTTP listener forwarding to the target group."""
    elbv2 = session.client("elbv2")
    response = elbv2.describe_listeners(LoadBalancerArn=load_balancer_arn)
    for listener in response.get("Listeners", []):
        if listener.get("Port") == port:
            return cast(str, listener["ListenerArn"])

    response = elbv2.create_listener(
        LoadBalancerArn=load_balancer_arn,
        Protocol="HTTP",
        Port=port,
        DefaultActions=[{"Type": "forward", "TargetGroupArn": target_group_arn}],
    )
    return cast(str, response["Listeners"][0]["ListenerArn"])


def create_edge(
    session: Session,
    project_name: str,
    vpc_id: str,
    public_subnet_ids: list[str],
    alb_security_group_id: str,
    container_port: int,
    listener_port: int,
    health_check: HealthCheckConfig,
    tags: dict[str, str],
    reporter: Callable[[str], None],
) -> EdgeSelection:
    """Create the load balancer, target group and listener for the service."""
    reporter("Ensuring application load balancer (this can take a few minutes)")
    lb_arn, dns_name = ensure_load_balancer(
        session,
        elb_name(project_name, "alb"),
        public_subnet_ids,
        alb_security_group_id,
        tags,
    )

    reporter(f"Ensuring target group with health check on {health_check.path}")
    tg_arn = ensure_target_group(
        session,
        elb_name(project_name, "tg"),
        vpc_id,
        container_port,
        health_check,
        tags,
    )

    reporter(f"Ensuring listener on port {listener_port}")
    listener_arn = ensure_listener(session, lb_arn, listener_port, tg_arn)

    logger.info("Load balancer %s serving at %s", lb_arn, dns_name)
    return EdgeSelection(
        load_balancer_arn=lb_arn,
        load_balancer_dns_name=dns_name,
        target_group_arn=tg_arn,
        listener_arn=listener_arn,
    )


def _describe_load_balancer(elbv2: Any, name: str) -> dict[str, Any] | None:
    """Return a load balancer by name, or None when it does not exist."""
    try:
        response = elbv2.describe_load_balancers(Names=[name])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "LoadBalancerNotFound":
            return None
        raise RuntimeError(f"Failed to read load balancer {name}: {exc}") from exc
    load_balancers = response.get("LoadBalancers", [])
    return load_balancers[0] if load_balancers else None


def _tag_kwargs(tags: dict[str, str]) -> dict[str, Any]:
    """Return the Tags argument, omitted when there are no tags."""
    if not tags:
        return {}
    return {"Tags": [{"Key": key, "Value": value} for key, value in tags.items()]}
