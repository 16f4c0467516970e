"""Security group management for the load balancer and ECS tasks."""

from typing import Any

from boto3.session import Session
from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.models import SecurityGroupInfo
from fargate_stack.core.deployments.aws_ecs.network import resource_tags


def ensure_security_group(
    session: Session,
    vpc_id: str,
    name: str,
    description: str,
    tags: dict[str, str],
) -> SecurityGroupInfo:
    """Return the named security group in the VPC, creating it when missing."""
    ec2 = session.client("ec2")
    response = ec2.describe_security_groups(
        Filters=[
            {"Name": "group-name", "Values": [name]},
            {"Name": "vpc-id", "Values": [vpc_id]},
        ]
    )
    groups = response.get("SecurityGroups", [])
    if groups:
        return SecurityGroupInfo(
            group_id=str(groups[0]["GroupId"]),
            name=name,
            description=str(groups[0].get("Description", description)),
        )

    try:
        response = ec2.create_security_group(
            VpcId=vpc_id,
            GroupName=name,
            Description=description,
        )
    except ClientError as exc:
        raise RuntimeError(f"Failed to create security group: {exc}") from exc

    group_id = response["GroupId"]
    ec2.create_tags(Resources=[group_id], Tags=resource_tags(name, tags))

    return SecurityGroupInfo(
        group_id=group_id,
        name=name,
        description=description,
    )


def allow_ingress_from_anywhere(session: Session, group_id: str, port: int) -> None:
    """Open a TCP port to the internet."""
    _authorize(
        session.client("ec2"),
        group_id,
        {
            "IpProtocol": "tcp",
            "FromPort": port,
            "ToPort": port,
            "IpRanges": [{"CidrIp": "0.0.0.0/0", "Description": f"Public access on {port}"}],
        },
    )


def allow_ingress_from_group(
    session: Session,
    group_id: str,
    source_group_id: str,
    port: int,
) -> None:
    """Open a TCP port to members of another security group."""
    _authorize(
        session.client("ec2"),
        group_id,
        {
            "IpProtocol": "tcp",
            "FromPort": port,
            "ToPort": port,
            "UserIdGroupPairs": [{"GroupId": source_group_id}],
        },
    )


def _authorize(ec2: Any, group_id: str, permission: dict[str, Any]) -> None:
    """Add an ingress rule, treating an existing identical rule as success."""
    try:
        ec2.authorize_security_group_ingress(GroupId=group_id, IpPermissions=[permission])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "InvalidPermission.Duplicate":
            raise RuntimeError(f"Failed to authorise ingress on {group_id}: {exc}") from exc
