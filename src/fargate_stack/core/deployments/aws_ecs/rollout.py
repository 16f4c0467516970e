"""Rolling deployment of a new image to an ECS service.

A rollout fetches the live task definition, swaps the image of one
container, registers the result as a new revision, points the service at
it and waits until ECS reports steady state. Any failure stops the run;
nothing is rolled back automatically.
"""

import copy
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, cast

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 900
DEFAULT_POLL_INTERVAL_SECONDS = 15

# Fields returned by describe_task_definition that register_task_definition rejects.
READ_ONLY_FIELDS = (
    "taskDefinitionArn",
    "revision",
    "status",
    "requiresAttributes",
    "compatibilities",
    "registeredAt",
    "registeredBy",
    "deregisteredAt",
)


class DeploymentError(RuntimeError):
    """A deployment step failed and the run must stop."""


class TaskDefinitionRenderError(DeploymentError):
    """The task definition could not be rendered with the new image."""


class RolloutFailedError(DeploymentError):
    """ECS reported the rollout as failed."""


class RolloutTimeoutError(DeploymentError):
    """The service did not reach steady state before the deadline."""


class RolloutState(StrEnum):
    """Rollout progress as observed from outside ECS."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    STEADY = "STEADY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RolloutStatus:
    """One observation of a service rollout."""

    state: RolloutState
    running_count: int = 0
    desired_count: int = 0
    pending_count: int = 0
    other_deployments: int = 0
    message: str = ""


@dataclass(frozen=True)
class RolloutResult:
    """Outcome of a rollout that reached steady state."""

    service_name: str
    task_definition_arn: str
    image_uri: str
    elapsed_seconds: float


def fetch_task_definition(session: Any, task_definition: str) -> dict[str, Any]:
    """Read a live task definition by family, ``family:revision`` or ARN."""
    ecs = session.client("ecs")
    try:
        response = ecs.describe_task_definition(taskDefinition=task_definition)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in {"ClientException", "InvalidParameterException"}:
            raise DeploymentError(
                f"Task definition '{task_definition}' does not exist; refusing to deploy."
            ) from exc
        raise DeploymentError(f"Failed to read task definition '{task_definition}': {exc}") from exc

    definition = response.get("taskDefinition")
    if not definition:
        raise DeploymentError(f"Task definition '{task_definition}' returned no content.")
    return cast(dict[str, Any], definition)


def render_task_definition(
    task_definition: Mapping[str, Any],
    container_name: str,
    image_uri: str,
) -> dict[str, Any]:
    """Return a copy of ``task_definition`` with one container's image replaced.

    Exactly one container must be named ``container_name``. Every other
    field, including key order, is left as it was, and the input is not
    modified.
    """
    if not image_uri.strip():
        raise TaskDefinitionRenderError("Image URI must not be empty.")

    containers = task_definition.get("containerDefinitions")
    if not isinstance(containers, list):
        raise TaskDefinitionRenderError("Task definition has no containerDefinitions list.")

    matches = [
        index
        for index, container in enumerate(containers)
        if isinstance(container, Mapping) and container.get("name") == container_name
    ]
    if not matches:
        names = ", ".join(str(c.get("name")) for c in containers if isinstance(c, Mapping))
        raise TaskDefinitionRenderError(
            f"No container named '{container_name}' in task definition (found: {names or 'none'})."
        )
    if len(matches) > 1:
        raise TaskDefinitionRenderError(
            f"{len(matches)} containers are named '{container_name}'; expected exactly one."
        )

    rendered = copy.deepcopy(dict(task_definition))
    rendered["containerDefinitions"][matches[0]]["image"] = image_uri
    return rendered


def render_task_definition_file(
    source: Path,
    container_name: str,
    image_uri: str,
    output: Path | None = None,
) -> Path:
    """Render a task definition JSON file and write the result.

    Returns:
        The path written, ``<name>.rendered.json`` next to the source by default.
    """
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise TaskDefinitionRenderError(f"Invalid task definition JSON in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise TaskDefinitionRenderError(f"{source} must contain a JSON object.")

    # Accept raw describe_task_definition output as well as the bare definition.
    if "taskDefinition" in data and isinstance(data["taskDefinition"], dict):
        data = data["taskDefinition"]

    rendered = render_task_definition(data, container_name, image_uri)
    target = output or source.with_name(f"{source.stem}.rendered.json")
    target.write_text(
        json.dumps(rendered, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return target


def registration_request(task_definition: Mapping[str, Any]) -> dict[str, Any]:
    """Strip describe-only fields so a definition can be registered again."""
    return {
        key: value
        for key, value in task_definition.items()
        if key not in READ_ONLY_FIELDS and value is not None
    }


def container_image(task_definition: Mapping[str, Any], container_name: str) -> str | None:
    """Return the image of the named container, if present."""
    for container in task_definition.get("containerDefinitions", []):
        if container.get("name") == container_name:
            return cast(str | None, container.get("image"))
    return None


def observe_rollout(service: Mapping[str, Any], task_definition_arn: str) -> RolloutStatus:
    """Classify a ``describe_services`` entry against the revision being rolled out."""
    deployments = list(service.get("deployments", []))
    primary = next((item for item in deployments if item.get("status") == "PRIMARY"), None)
    if primary is None or primary.get("taskDefinition") != task_definition_arn:
        return RolloutStatus(
            state=RolloutState.PENDING,
            message="Waiting for the service to adopt the new task definition",
        )

    running = int(primary.get("runningCount", 0))
    desired = int(primary.get("desiredCount", 0))
    pending = int(primary.get("pendingCount", 0))
    others = len([item for item in deployments if item is not primary])
    rollout_state = primary.get("rolloutState")
    counts = {
        "running_count": running,
        "desired_count": desired,
        "pending_count": pending,
        "other_deployments": others,
    }

    if rollout_state == "FAILED":
        reason = str(primary.get("rolloutStateReason", "rollout failed"))
        return RolloutStatus(state=RolloutState.FAILED, message=reason, **counts)

    if others == 0 and running == desired and pending == 0:
        if rollout_state in (None, "COMPLETED"):
            return RolloutStatus(
                state=RolloutState.STEADY, message="Service reached steady state", **counts
            )

    if running == 0 and pending == 0 and rollout_state in (None, "IN_PROGRESS") and desired > 0:
        return RolloutStatus(
            state=RolloutState.PENDING,
            message="New deployment created, no tasks started yet",
            **counts,
        )

    return RolloutStatus(
        state=RolloutState.IN_PROGRESS,
        message=(
            f"{running}/{desired} new tasks running, {pending} pending, "
            f"{others} old deployment(s) draining"
        ),
        **counts,
    )


def wait_for_steady_state(
    session: Any,
    cluster_name: str,
    service_name: str,
    task_definition_arn: str,
    reporter: Callable[[str], None],
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> RolloutStatus:
    """Poll the service until the new revision is steady.

    Raises:
        RolloutFailedError: ECS marked the deployment as failed.
        RolloutTimeoutError: Steady state was not reached in time.
    """
    ecs = session.client("ecs")
    deadline = clock() + timeout_seconds
    last_message = ""

    while True:
        service = _describe_service(ecs, cluster_name, service_name)
        status = observe_rollout(service, task_definition_arn)
        line = f"[{status.state.value}] {status.message}"
        if line != last_message:
            reporter(line)
            last_message = line

        if status.state is RolloutState.STEADY:
            return status
        if status.state is RolloutState.FAILED:
            raise RolloutFailedError(
                f"Rollout of {task_definition_arn} to {service_name} failed: {status.message}"
            )
        if clock() >= deadline:
            raise RolloutTimeoutError(
                f"Service {service_name} did not reach steady state within "
                f"{timeout_seconds:g} seconds (last state {status.state.value}: {status.message})."
            )
        sleep(poll_interval_seconds)


def submit_rollout(
    session: Any,
    cluster_name: str,
    service_name: str,
    task_definition: Mapping[str, Any],
    reporter: Callable[[str], None],
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Register a rendered definition, switch the service to it and wait.

    Returns:
        The ARN of the new task definition revision.
    """
    ecs = session.client("ecs")

    reporter(f"Registering new revision of {task_definition.get('family', 'task definition')}")
    try:
        response = ecs.register_task_definition(**registration_request(task_definition))
    except ClientError as exc:
        raise DeploymentError(f"Failed to register task definition: {exc}") from exc
    task_definition_arn = cast(str, response["taskDefinition"]["taskDefinitionArn"])
    reporter(f"Registered {task_definition_arn}")

    reporter(f"Updating service {service_name}")
    try:
        ecs.update_service(
            cluster=cluster_name,
            service=service_name,
            taskDefinition=task_definition_arn,
        )
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in {"ServiceNotFoundException", "ServiceNotActiveException"}:
            raise DeploymentError(
                f"ECS service '{service_name}' is missing or inactive in {cluster_name}."
            ) from exc
        raise DeploymentError(f"Failed to update service {service_name}: {exc}") from exc

    reporter(f"Waiting up to {timeout_seconds:g}s for steady state")
    wait_for_steady_state(
        session,
        cluster_name,
        service_name,
        task_definition_arn,
        reporter,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
        clock=clock,
        sleep=sleep,
    )
    return task_definition_arn


def roll_out_image(
    session: Any,
    cluster_name: str,
    service_name: str,
    task_definition: str,
    container_name: str,
    image_uri: str,
    reporter: Callable[[str], None],
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> RolloutResult:
    """Fetch, render and submit: deploy ``image_uri`` to the service."""
    started = clock()

    reporter(f"Fetching task definition {task_definition}")
    current = fetch_task_definition(session, task_definition)
    previous_image = container_image(current, container_name)

    rendered = render_task_definition(current, container_name, image_uri)
    reporter(f"Rendered {container_name}: {previous_image} -> {image_uri}")

    new_arn = submit_rollout(
        session,
        cluster_name,
        service_name,
        rendered,
        reporter,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
        clock=clock,
        sleep=sleep,
    )
    elapsed = clock() - started
    logger.info("Rolled out %s to %s in %.0fs", image_uri, service_name, elapsed)
    return RolloutResult(
        service_name=service_name,
        task_definition_arn=new_arn,
        image_uri=image_uri,
        elapsed_seconds=elapsed,
    )


def _describe_service(ecs: Any, cluster_name: str, service_name: str) -> dict[str, Any]:
    """Return the service description or stop the run when it is gone."""
    try:
        response = ecs.describe_services(cluster=cluster_name, services=[service_name])
    except ClientError as exc:
        raise DeploymentError(f"Failed to read service {service_name}: {exc}") from exc

    services = response.get("services", [])
    if not services or services[0].get("status") != "ACTIVE":
        failures = response.get("failures", [])
        raise DeploymentError(f"ECS service '{service_name}' is not active: {failures}")
    return cast(dict[str, Any], services[0])
