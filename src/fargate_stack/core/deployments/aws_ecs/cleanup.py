"""Teardown of the resources created for the ECS stack."""

from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError, WaiterError

from fargate_stack.core.deployments.aws_ecs.iam import role_names
from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig
from fargate_stack.core.deployments.aws_ecs.workload import (
    SCALABLE_DIMENSION,
    service_resource_id,
)


def cleanup_resources(
    session: Any,
    config: EcsDeploymentConfig,
    reporter: Callable[[str], None],
    delete_repository: bool = False,
) -> None:
    """Delete stack resources in reverse dependency order.

    Missing resources are skipped. Other failures are reported and the
    sweep carries on so a partial stack can still be removed.
    """
    reporter("Removing autoscaling target (if any)")
    _deregister_scalable_target(session, config, reporter)

    reporter("Deleting ECS service (if it exists)")
    _delete_service(session, config.cluster_name, config.service_name, reporter)

    if config.load_balancer_arn:
        reporter("Deleting load balancer")
        _delete_load_balancer(session, config.load_balancer_arn, reporter)
    if config.target_group_arn:
        reporter("Deleting target group")
        _delete_target_group(session, config.target_group_arn, reporter)

    reporter("Deregistering task definitions")
    _deregister_task_definitions(session, config.task_family, reporter)

    reporter("Deleting ECS cluster (if it exists)")
    _delete_cluster(session, config.cluster_name, reporter)

    if config.log_group_name:
        reporter("Deleting CloudWatch log group")
        _delete_log_group(session, config.log_group_name, reporter)

    if delete_repository:
        reporter("Deleting ECR repository (if it exists)")
        _delete_ecr_repo(session, config.ecr_repository, reporter)

    reporter("Deleting IAM roles (if they exist)")
    _delete_roles(session, config, reporter)

    if config.vpc_id:
        reporter("Deleting VPC resources")
        cleanup_vpc(session, config.vpc_id, reporter)


def _deregister_scalable_target(
    session: Any,
    config: EcsDeploymentConfig,
    reporter: Callable[[str], None],
) -> None:
    """Remove the service from Application Auto Scaling."""
    autoscaling = session.client("application-autoscaling")
    try:
        autoscaling.deregister_scalable_target(
            ServiceNamespace="ecs",
            ResourceId=service_resource_id(config.cluster_name, config.service_name),
            ScalableDimension=SCALABLE_DIMENSION,
        )
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "ObjectNotFoundException":
            reporter(f"Failed to deregister scalable target: {exc}")


def _delete_service(
    session: Any,
    cluster_name: str,
    service_name: str,
    reporter: Callable[[str], None],
) -> None:
    """Scale the service to zero, delete it and wait until it is inactive."""
    ecs = session.client("ecs")
    try:
        ecs.update_service(cluster=cluster_name, service=service_name, desiredCount=0)
        ecs.delete_service(cluster=cluster_name, service=service_name, force=True)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in {
            "ClusterNotFoundException",
            "ServiceNotFoundException",
            "ServiceNotActiveException",
        }:
            return
        reporter(f"Failed to delete service {service_name}: {exc}")
        return

    try:
        ecs.get_waiter("services_inactive").wait(cluster=cluster_name, services=[service_name])
    except WaiterError as exc:
        reporter(f"Service {service_name} did not drain cleanly: {exc}")


def _delete_load_balancer(
    session: Any,
    load_balancer_arn: str,
    reporter: Callable[[str], None],
) -> None:
    """Delete a load balancer; its listeners go with it."""
    elbv2 = session.client("elbv2")
    try:
        elbv2.delete_load_balancer(LoadBalancerArn=load_balancer_arn)
        elbv2.get_waiter("load_balancers_deleted").wait(LoadBalancerArns=[load_balancer_arn])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "LoadBalancerNotFound":
            reporter(f"Failed to delete load balancer: {exc}")
    except WaiterError as exc:
        reporter(f"Load balancer deletion did not complete: {exc}")


def _delete_target_group(
    session: Any,
    target_group_arn: str,
    reporter: Callable[[str], None],
) -> None:
    """Delete a target group."""
    elbv2 = session.client("elbv2")
    try:
        elbv2.delete_target_group(TargetGroupArn=target_group_arn)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "TargetGroupNotFound":
            reporter(f"Failed to delete target group: {exc}")


def _deregister_task_definitions(
    session: Any,
    family: str,
    reporter: Callable[[str], None],
) -> None:
    """Deregister every active revision of a task definition family."""
    ecs = session.client("ecs")
    paginator = ecs.get_paginator("list_task_definitions")
    try:
        task_definition_arns = [
            arn
            for page in paginator.paginate(familyPrefix=family, status="ACTIVE")
            for arn in page.get("taskDefinitionArns", [])
        ]
    except ClientError as exc:
        reporter(f"Failed to list task definitions for {family}: {exc}")
        return

    for task_definition_arn in task_definition_arns:
        try:
            ecs.deregister_task_definition(taskDefinition=task_definition_arn)
        except ClientError as exc:
            reporter(f"Failed to deregister {task_definition_arn}: {exc}")


def _delete_cluster(session: Any, cluster_name: str, reporter: Callable[[str], None]) -> None:
    """Delete an ECS cluster if it exists."""
    ecs = session.client("ecs")
    try:
        ecs.delete_cluster(cluster=cluster_name)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in {"ClusterNotFoundException"}:
            return
        reporter(f"Failed to delete cluster: {exc}")


def _delete_log_group(session: Any, log_group_name: str, reporter: Callable[[str], None]) -> None:
    """Delete a CloudWatch log group."""
    logs = session.client("logs")
    try:
        logs.delete_log_group(logGroupName=log_group_name)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "ResourceNotFoundException":
            reporter(f"Failed to delete log group: {exc}")


def _delete_ecr_repo(session: Any, name: str, reporter: Callable[[str], None]) -> None:
    """Delete an ECR repository if it exists."""
    if not name:
        return
    ecr = session.client("ecr")
    try:
        ecr.delete_repository(repositoryName=name, force=True)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "RepositoryNotFoundException":
            reporter(f"Failed to delete ECR repo {name}: {exc}")


def _delete_roles(
    session: Any,
    config: EcsDeploymentConfig,
    reporter: Callable[[str], None],
) -> None:
    """Delete IAM roles created for ECS tasks."""
    iam = session.client("iam")
    names = set(role_names(config.project_name))
    for arn in (config.exec_role_arn, config.task_role_arn):
        if arn:
            names.add(arn.split("/")[-1])

    for role_name in sorted(names):
        reporter(f"Removing IAM role {role_name}")
        _detach_managed_policies(iam, role_name, reporter)
        _delete_inline_policies(iam, role_name, reporter)
        try:
            iam.delete_role(RoleName=role_name)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code != "NoSuchEntity":
                reporter(f"Failed to delete role {role_name}: {exc}")


def _detach_managed_policies(iam: Any, role_name: str, reporter: Callable[[str], None]) -> None:
    """Detach managed policies from a role."""
    try:
        response = iam.list_attached_role_policies(RoleName=role_name)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "NoSuchEntity":
            return
        reporter(f"Failed to list attached policies for {role_name}: {exc}")
        return

    for policy in response.get("AttachedPolicies", []):
        policy_arn = policy["PolicyArn"]
        try:
            iam.detach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
        except ClientError as exc:
            reporter(f"Failed to detach policy {policy_arn} from {role_name}: {exc}")


def _delete_inline_policies(iam: Any, role_name: str, reporter: Callable[[str], None]) -> None:
    """Delete inline policies for a role."""
    try:
        response = iam.list_role_policies(RoleName=role_name)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "NoSuchEntity":
            return
        reporter(f"Failed to list inline policies for {role_name}: {exc}")
        return

    for policy_name in response.get("PolicyNames", []):
        try:
            iam.delete_role_policy(RoleName=role_name, PolicyName=policy_name)
        except ClientError as exc:
            reporter(f"Failed to delete policy {policy_name} from {role_name}: {exc}")


def cleanup_vpc(session: Any, vpc_id: str, reporter: Callable[[str], None]) -> None:
    """Delete a VPC and its dependent resources."""
    ec2 = session.client("ec2")

    nat_gateways: list[tuple[str, str | None]] = []
    for nat_gateway_id, allocation_id in _list_nat_gateways(ec2, vpc_id, reporter):
        reporter(f"Deleting NAT gateway {nat_gateway_id}")
        try:
            ec2.delete_nat_gateway(NatGatewayId=nat_gateway_id)
        except ClientError as exc:
            reporter(f"Failed to delete NAT gateway {nat_gateway_id}: {exc}")
            continue
        nat_gateways.append((nat_gateway_id, allocation_id))

    if nat_gateways:
        reporter("Waiting for NAT gateways to delete...")
        try:
            ec2.get_waiter("nat_gateway_deleted").wait(
                NatGatewayIds=[nat_id for nat_id, _ in nat_gateways]
            )
        except WaiterError as exc:
            reporter(f"NAT gateways did not finish deleting: {exc}")

    for _, allocation_id in nat_gateways:
        if not allocation_id:
            continue
        reporter(f"Releasing Elastic IP {allocation_id}")
        try:
            ec2.release_address(AllocationId=allocation_id)
        except ClientError as exc:
            reporter(f"Failed to release Elastic IP {allocation_id}: {exc}")

    for igw_id in _list_internet_gateways(ec2, vpc_id, reporter):
        reporter(f"Detaching and deleting internet gateway {igw_id}")
        try:
            ec2.detach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
            ec2.delete_internet_gateway(InternetGatewayId=igw_id)
        except ClientError as exc:
            reporter(f"Failed to delete internet gateway {igw_id}: {exc}")

    _delete_route_tables(ec2, vpc_id, reporter)
    _delete_subnets(ec2, vpc_id, reporter)
    _delete_security_groups(ec2, vpc_id, reporter)

    reporter(f"Deleting VPC {vpc_id}")
    try:
        ec2.delete_vpc(VpcId=vpc_id)
    except ClientError as exc:
        reporter(f"Failed to delete VPC {vpc_id}: {exc}")


def _list_nat_gateways(
    ec2: Any, vpc_id: str, reporter: Callable[[str], None]
) -> list[tuple[str, str | None]]:
    """Return live NAT gateway IDs with their Elastic IP allocation IDs."""
    try:
        response = ec2.describe_nat_gateways(Filter=[{"Name": "vpc-id", "Values": [vpc_id]}])
    except ClientError as exc:
        reporter(f"Failed to list NAT gateways: {exc}")
        return []
    gateways = []
    for nat_gateway in response.get("NatGateways", []):
        if nat_gateway.get("State") in {"deleting", "deleted"}:
            continue
        allocation_id = None
        for address in nat_gateway.get("NatGatewayAddresses", []):
            allocation_id = address.get("AllocationId")
        gateways.append((nat_gateway["NatGatewayId"], allocation_id))
    return gateways


def _list_internet_gateways(ec2: Any, vpc_id: str, reporter: Callable[[str], None]) -> list[str]:
    """List internet gateways attached to a VPC."""
    try:
        response = ec2.describe_internet_gateways(
            Filters=[{"Name": "attachment.vpc-id", "Values": [vpc_id]}]
        )
    except ClientError as exc:
        reporter(f"Failed to list internet gateways: {exc}")
        return []
    return [igw["InternetGatewayId"] for igw in response.get("InternetGateways", [])]


def _delete_route_tables(ec2: Any, vpc_id: str, reporter: Callable[[str], None]) -> None:
    """Delete non-main route tables."""
    try:
        response = ec2.describe_route_tables(Filters=[{"Name": "vpc-id", "Values": [vpc_id]}])
    except ClientError as exc:
        reporter(f"Failed to list route tables: {exc}")
        return
    for route_table in response.get("RouteTables", []):
        associations = route_table.get("Associations", [])
        is_main = any(assoc.get("Main") for assoc in associations)
        for assoc in associations:
            assoc_id = assoc.get("RouteTableAssociationId")
            if assoc_id and not assoc.get("Main"):
                try:
                    ec2.disassociate_route_table(AssociationId=assoc_id)
                except ClientError as exc:
                    reporter(f"Failed to disassociate route table: {exc}")
        if is_main:
            continue
        try:
            ec2.delete_route_table(RouteTableId=route_table["RouteTableId"])
        except ClientError as exc:
            reporter(f"Failed to delete route table: {exc}")


def _delete_subnets(ec2: Any, vpc_id: str, reporter: Callable[[str], None]) -> None:
    """Delete all subnets in a VPC."""
    try:
        response = ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [vpc_id]}])
    except ClientError as exc:
        reporter(f"Failed to list subnets: {exc}")
        return
    for subnet in response.get("Subnets", []):
        subnet_id = subnet["SubnetId"]
        try:
            ec2.delete_subnet(SubnetId=subnet_id)
        except ClientError as exc:
            reporter(f"Failed to delete subnet {subnet_id}: {exc}")


def _delete_security_groups(ec2: Any, vpc_id: str, reporter: Callable[[str], None]) -> None:
    """Delete non-default security groups in a VPC.

    The service group references the load balancer group, so groups that
    are still referenced are retried once after the first pass.
    """
    try:
        response = ec2.describe_security_groups(
            Filters=[{"Name": "vpc-id", "Values": [vpc_id]}]
        )
    except ClientError as exc:
        reporter(f"Failed to list security groups: {exc}")
        return
    pending = [
        group["GroupId"]
        for group in response.get("SecurityGroups", [])
        if group.get("GroupName") != "default"
    ]
    for attempt in range(2):
        retry = []
        for group_id in pending:
            try:
                ec2.delete_security_group(GroupId=group_id)
            except ClientError as exc:
                code = exc.response.get("Error", {}).get("Code")
                if code == "DependencyViolation" and attempt == 0:
                    retry.append(group_id)
                    continue
                reporter(f"Failed to delete security group {group_id}: {exc}")
        pending = retry
