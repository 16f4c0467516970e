"""Stack outputs and live status checks for ECS."""

from boto3.session import Session
from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.iam import role_names
from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig


def stack_outputs(config: EcsDeploymentConfig) -> dict[str, str]:
    """Return the identifiers other automation consumes, as a flat mapping."""
    return {
        "vpc_id": config.vpc_id or "",
        "public_subnet_ids": ",".join(config.public_subnet_ids),
        "private_subnet_ids": ",".join(config.private_subnet_ids),
        "cluster_name": config.cluster_name,
        "cluster_arn": config.cluster_arn or "",
        "service_name": config.service_name,
        "service_arn": config.service_arn or "",
        "task_definition_arn": config.task_definition_arn or "",
        "load_balancer_arn": config.load_balancer_arn or "",
        "load_balancer_dns_name": config.load_balancer_dns_name or "",
        "target_group_arn": config.target_group_arn or "",
        "repository_uri": config.repository_uri or "",
    }


def check_deployment(session: Session, config: EcsDeploymentConfig) -> dict[str, str]:
    """Check whether deployment resources exist."""
    results: dict[str, str] = {}

    results["VPC"] = _check_vpc(session, config.vpc_id)
    results["Private subnets"] = _check_subnets(session, config.private_subnet_ids)
    results["IAM roles"] = _check_roles(session, config.project_name)
    results["ECR repository"] = _check_ecr_repo(session, config.ecr_repository)
    results["Log group"] = _check_log_group(session, config.log_group_name)
    results["Load balancer"] = _check_load_balancer(session, config.load_balancer_arn)
    results["Target group"] = _check_target_health(session, config.target_group_arn)
    results["Task definition"] = _check_task_definition(session, config.task_definition_arn)
    results["ECS cluster"] = _check_cluster(session, config.cluster_name)
    results["ECS service"] = _check_service(session, config.cluster_name, config.service_name)

    return results


def _check_vpc(session: Session, vpc_id: str | None) -> str:
    if not vpc_id:
        return "not set"
    ec2 = session.client("ec2")
    try:
        response = ec2.describe_vpcs(VpcIds=[vpc_id])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "InvalidVpcID.NotFound":
            return "missing"
        return f"error: {code}"
    vpcs = response.get("Vpcs", [])
    if not vpcs:
        return "missing"
    state = str(vpcs[0].get("State", "")).lower()
    if state and state != "available":
        return f"status {state}"
    return "present"


def _check_subnets(session: Session, subnet_ids: list[str]) -> str:
    if not subnet_ids:
        return "not set"
    ec2 = session.client("ec2")
    missing = 0
    for subnet_id in subnet_ids:
        try:
            response = ec2.describe_subnets(SubnetIds=[subnet_id])
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "InvalidSubnetID.NotFound":
                missing += 1
                continue
            return f"error: {code}"
        if not response.get("Subnets", []):
            missing += 1

    if missing == 0:
        return "present"
    return f"missing {missing}/{len(subnet_ids)}"


def _check_roles(session: Session, project_name: str) -> str:
    iam = session.client("iam")
    names = role_names(project_name)
    missing = 0
    for role_name in names:
        try:
            iam.get_role(RoleName=role_name)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "NoSuchEntity":
                missing += 1
            else:
                return f"error: {code}"
    if missing == 0:
        return "present"
    return f"missing {missing}/{len(names)}"


def _check_ecr_repo(session: Session, name: str) -> str:
    ecr = session.client("ecr")
    try:
        ecr.describe_repositories(repositoryNames=[name])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "RepositoryNotFoundException":
            return "missing"
        return f"error: {code}"
    return "present"


def _check_log_group(session: Session, log_group_name: str) -> str:
    logs = session.client("logs")
    response = logs.describe_log_groups(logGroupNamePrefix=log_group_name)
    groups = [group["logGroupName"] for group in response.get("logGroups", [])]
    return "present" if log_group_name in groups else "missing"


def _check_load_balancer(session: Session, load_balancer_arn: str | None) -> str:
    if not load_balancer_arn:
        return "not set"
    elbv2 = session.client("elbv2")
    try:
        response = elbv2.describe_load_balancers(LoadBalancerArns=[load_balancer_arn])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "LoadBalancerNotFound":
            return "missing"
        return f"error: {code}"
    load_balancers = response.get("LoadBalancers", [])
    if not load_balancers:
        return "missing"
    state = str(load_balancers[0].get("State", {}).get("Code", "")).lower()
    if state and state != "active":
        return f"status {state}"
    return "present"


def _check_target_health(session: Session, target_group_arn: str | None) -> str:
    if not target_group_arn:
        return "not set"
    elbv2 = session.client("elbv2")
    try:
        response = elbv2.describe_target_health(TargetGroupArn=target_group_arn)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "TargetGroupNotFound":
            return "missing"
        return f"error: {code}"
    targets = response.get("TargetHealthDescriptions", [])
    healthy = [
        target for target in targets if target.get("TargetHealth", {}).get("State") == "healthy"
    ]
    return f"present ({len(healthy)}/{len(targets)} healthy)"


def _check_task_definition(session: Session, task_definition_arn: str | None) -> str:
    if not task_definition_arn:
        return "not set"
    ecs = session.client("ecs")
    try:
        response = ecs.describe_task_definition(taskDefinition=task_definition_arn)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in {"ClientException", "InvalidParameterException"}:
            return "missing"
        return f"error: {code}"

    task_definition = response.get("taskDefinition", {})
    status = str(task_definition.get("status", "")).upper()
    if status and status != "ACTIVE":
        return f"status {status}"
    return "present"


def _check_cluster(session: Session, cluster_name: str) -> str:
    ecs = session.client("ecs")
    response = ecs.describe_clusters(clusters=[cluster_name])
    clusters = response.get("clusters", [])
    if not clusters:
        return "missing"
    if clusters[0].get("status") != "ACTIVE":
        return f"status {clusters[0].get('status')}"
    return "present"


def _check_service(session: Session, cluster_name: str, service_name: str) -> str:
    ecs = session.client("ecs")
    try:
        response = ecs.describe_services(cluster=cluster_name, services=[service_name])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "ClusterNotFoundException":
            return "missing"
        return f"error: {code}"
    services = response.get("services", [])
    if not services:
        return "missing"
    service = services[0]
    if service.get("status") != "ACTIVE":
        return f"status {service.get('status')}"
    return f"present ({service.get('runningCount', 0)}/{service.get('desiredCount', 0)} running)"
