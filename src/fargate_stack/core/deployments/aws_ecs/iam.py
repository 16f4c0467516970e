"""IAM role helpers for ECS deployment."""

import json
from collections.abc import Callable, Sequence
from typing import Any, cast

from botocore.exceptions import ClientError

EXECUTION_ROLE_POLICY_ARN = (
    "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
)


def role_names(project_name: str) -> tuple[str, str]:
    """Return the execution and task role names for a project."""
    return f"{project_name}-task-execution", f"{project_name}-task"


def ensure_roles(
    session: Any,
    project_name: str,
    region: str,
    log_group_name: str,
    task_statements: Sequence[dict[str, Any]],
    tags: dict[str, str],
    reporter: Callable[[str], None],
) -> tuple[str, str]:
    """Ensure execution and task roles exist.

    The execution role lets ECS pull images and ship logs. The task role
    carries the workload's own permissions: log writes to the stack log
    group plus any configured statements.
    """
    iam = session.client("iam")
    exec_role_name, task_role_name = role_names(project_name)

    reporter("Ensuring task execution role")
    exec_role_arn = _ensure_role(iam, exec_role_name, _ecs_trust_policy(), tags)
    _attach_managed_policy(iam, exec_role_name, EXECUTION_ROLE_POLICY_ARN)

    reporter("Ensuring task role")
    task_role_arn = _ensure_role(iam, task_role_name, _ecs_trust_policy(), tags)
    account_id = _get_account_id(session)
    _put_inline_policy(
        iam,
        task_role_name,
        f"{project_name}-workload",
        task_policy(region, account_id, log_group_name, task_statements),
    )

    return exec_role_arn, task_role_arn


def ensure_service_linked_role(session: Any, reporter: Callable[[str], None]) -> None:
    """Ensure the ECS service-linked role exists."""
    iam = session.client("iam")
    role_name = "AWSServiceRoleForECS"
    try:
        iam.get_role(RoleName=role_name)
        reporter("ECS service-linked role already exists")
        return
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "NoSuchEntity":
            raise RuntimeError(f"Failed to read service-linked role: {exc}") from exc

    reporter("Creating ECS service-linked role")
    try:
        iam.create_service_linked_role(AWSServiceName="ecs.amazonaws.com")
    except ClientError as exc:
        raise RuntimeError(f"Failed to create service-linked role: {exc}") from exc


def task_policy(
    region: str,
    account_id: str,
    log_group_name: str,
    extra_statements: Sequence[dict[str, Any]],
) -> dict[str, Any]:
    """Return the inline policy document for the task role."""
    statements: list[dict[str, Any]] = [
        {
            "Effect": "Allow",
            "Action": ["logs:CreateLogStream", "logs:PutLogEvents"],
            "Resource": f"arn:aws:logs:{region}:{account_id}:log-group:{log_group_name}:*",
        }
    ]
    statements.extend(dict(statement) for statement in extra_statements)
    return {"Version": "2012-10-17", "Statement": statements}


def _ensure_role(
    iam: Any,
    role_name: str,
    trust_policy: dict[str, Any],
    tags: dict[str, str],
) -> str:
    """Create a role if needed and return its ARN."""
    try:
        response = iam.get_role(RoleName=role_name)
        return cast(str, response["Role"]["Arn"])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "NoSuchEntity":
            raise RuntimeError(f"Failed to read role {role_name}: {exc}") from exc

    request: dict[str, Any] = {
        "RoleName": role_name,
        "AssumeRolePolicyDocument": json.dumps(trust_policy),
    }
    if tags:
        request["Tags"] = [{"Key": key, "Value": value} for key, value in tags.items()]
    response = iam.create_role(**request)
    return cast(str, response["Role"]["Arn"])


def _attach_managed_policy(iam: Any, role_name: str, policy_arn: str) -> None:
    """Attach a managed policy if it is missing."""
    response = iam.list_attached_role_policies(RoleName=role_name)
    attached = {policy["PolicyArn"] for policy in response.get("AttachedPolicies", [])}
    if policy_arn in attached:
        return
    iam.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)


def _put_inline_policy(
    iam: Any,
    role_name: str,
    policy_name: str,
    policy_doc: dict[str, Any],
) -> None:
    """Attach or update an inline policy."""
    iam.put_role_policy(
        RoleName=role_name,
        PolicyName=policy_name,
        PolicyDocument=json.dumps(policy_doc),
    )


def _ecs_trust_policy() -> dict[str, Any]:
    """Return the ECS task trust policy."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "ecs-tasks.amazonaws.com"},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def _get_account_id(session: Any) -> str:
    """Return the AWS account ID."""
    client = session.client("sts")
    response = client.get_caller_identity()
    return cast(str, response["Account"])
