"""ECS cluster and capacity provider helpers."""

import logging
from collections.abc import Callable, Sequence
from typing import Any, cast

from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.models import CapacityProviderWeight

logger = logging.getLogger(__name__)

FARGATE = "FARGATE"
FARGATE_SPOT = "FARGATE_SPOT"

DEFAULT_CAPACITY_PROVIDERS = (
    CapacityProviderWeight(name=FARGATE, weight=1, base=1),
    CapacityProviderWeight(name=FARGATE_SPOT, weight=4, base=0),
)


class PlacementStrategyError(ValueError):
    """Raised when a capacity provider strategy is not accepted by ECS."""


def validate_strategy(strategy: Sequence[CapacityProviderWeight]) -> None:
    """Check a capacity provider strategy against the ECS rules.

    Args:
        strategy: Providers with weight and base.
    """
    if not strategy:
        raise PlacementStrategyError("At least one capacity provider is required.")

    names = [item.name for item in strategy]
    if len(set(names)) != len(names):
        raise PlacementStrategyError(f"Capacity providers must be unique: {names}")

    for item in strategy:
        if item.weight < 0 or item.weight > 1000:
            raise PlacementStrategyError(
                f"Weight for {item.name} must be between 0 and 1000, got {item.weight}."
            )
        if item.base < 0 or item.base > 100000:
            raise PlacementStrategyError(
                f"Base for {item.name} must be between 0 and 100000, got {item.base}."
            )

    if not any(item.weight > 0 for item in strategy):
        raise PlacementStrategyError("At least one capacity provider needs a weight above 0.")

    based = [item.name for item in strategy if item.base > 0]
    if len(based) > 1:
        raise PlacementStrategyError(
            f"Only one capacity provider can define a base, found: {', '.join(based)}"
        )


def expected_placement(
    strategy: Sequence[CapacityProviderWeight],
    task_count: int,
) -> dict[str, int]:
    """Return how many tasks each provider receives for ``task_count`` tasks.

    The provider carrying a base is filled first; the remaining tasks are
    shared by weight. Fractions go to the largest remainders, ties to the
    provider listed first.
    """
    validate_strategy(strategy)
    if task_count < 0:
        raise PlacementStrategyError("Task count cannot be negative.")

    placement = {item.name: 0 for item in strategy}
    remaining = task_count
    for item in strategy:
        if item.base > 0:
            placed = min(item.base, remaining)
            placement[item.name] += placed
            remaining -= placed

    total_weight = sum(item.weight for item in strategy)
    shares = [(item, remaining * item.weight / total_weight) for item in strategy]
    allocated = 0
    for item, share in shares:
        whole = int(share)
        placement[item.name] += whole
        allocated += whole

    leftovers = remaining - allocated
    order = sorted(
        range(len(shares)),
        key=lambda index: (-(shares[index][1] - int(shares[index][1])), index),
    )
    for index in order[:leftovers]:
        placement[shares[index][0].name] += 1

    return placement


def strategy_request(strategy: Sequence[CapacityProviderWeight]) -> list[dict[str, Any]]:
    """Render a strategy in the shape the ECS API expects."""
    return [
        {"capacityProvider": item.name, "weight": item.weight, "base": item.base}
        for item in strategy
    ]


def ensure_cluster(
    session: Any,
    cluster_name: str,
    strategy: Sequence[CapacityProviderWeight],
    tags: dict[str, str],
    reporter: Callable[[str], None],
) -> str:
    """Ensure an ECS cluster exists with the requested default strategy."""
    validate_strategy(strategy)
    ecs = session.client("ecs")
    providers = [item.name for item in strategy]

    response = ecs.describe_clusters(clusters=[cluster_name])
    clusters = response.get("clusters", [])
    if clusters:
        cluster = clusters[0]
        status = str(cluster.get("status", ""))
        cluster_arn = cast(str, cluster["clusterArn"])
        if status == "ACTIVE":
            reporter(f"Updating capacity providers on cluster {cluster_name}")
            ecs.put_cluster_capacity_providers(
                cluster=cluster_name,
                capacityProviders=providers,
                defaultCapacityProviderStrategy=strategy_request(strategy),
            )
            return cluster_arn
        if status != "INACTIVE":
            raise RuntimeError(
                f"ECS cluster {cluster_name} is in unexpected status {status} and cannot be used."
            )

    # If the cluster does not exist or is inactive, create it.
    reporter(f"Creating ECS cluster {cluster_name}")
    request: dict[str, Any] = {
        "clusterName": cluster_name,
        "capacityProviders": providers,
        "defaultCapacityProviderStrategy": strategy_request(strategy),
        "settings": [{"name": "containerInsights", "value": "enabled"}],
    }
    if tags:
        request["tags"] = ecs_tags(tags)
    try:
        response = ecs.create_cluster(**request)
    except ClientError as exc:
        raise RuntimeError(f"Failed to create ECS cluster {cluster_name}: {exc}") from exc

    cluster_arn = cast(str, response["cluster"]["clusterArn"])
    logger.info("Created cluster %s with providers %s", cluster_arn, providers)
    return cluster_arn


def ecs_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    """Return tags in the lower-case key/value form used by ECS."""
    return [{"key": key, "value": value} for key, value in tags.items()]
