"""Tests for capacity provider strategies and cluster creation."""

from unittest.mock import MagicMock

import pytest

from fargate_stack.core.deployments.aws_ecs.cluster import (
    DEFAULT_CAPACITY_PROVIDERS,
    FARGATE,
    FARGATE_SPOT,
    PlacementStrategyError,
    ensure_cluster,
    expected_placement,
    validate_strategy,
)
from fargate_stack.core.deployments.aws_ecs.models import CapacityProviderWeight


@pytest.mark.parametrize(
    ("task_count", "on_demand", "spot"),
    [(0, 0, 0), (1, 1, 0), (2, 1, 1), (5, 2, 3), (6, 2, 4), (11, 3, 8)],
)
def test_expected_placement_with_default_strategy(
    task_count: int, on_demand: int, spot: int
) -> None:
    """The base task lands on FARGATE, the rest split 1:4."""
    placement = expected_placement(DEFAULT_CAPACITY_PROVIDERS, task_count)

    assert placement == {FARGATE: on_demand, FARGATE_SPOT: spot}
    assert sum(placement.values()) == task_count


def test_expected_placement_ties_go_to_first_provider() -> None:
    """Equal weights with an odd remainder favour the provider listed first."""
    strategy = [
        CapacityProviderWeight(name=FARGATE_SPOT, weight=1),
        CapacityProviderWeight(name=FARGATE, weight=1),
    ]

    assert expected_placement(strategy, 3) == {FARGATE_SPOT: 2, FARGATE: 1}


def test_expected_placement_base_larger_than_count() -> None:
    """A base above the task count absorbs every task."""
    strategy = [
        CapacityProviderWeight(name=FARGATE, weight=1, base=5),
        CapacityProviderWeight(name=FARGATE_SPOT, weight=1),
    ]

    assert expected_placement(strategy, 3) == {FARGATE: 3, FARGATE_SPOT: 0}


@pytest.mark.parametrize(
    ("strategy", "message"),
    [
        ([], "At least one"),
        (
            [CapacityProviderWeight(FARGATE, 1), CapacityProviderWeight(FARGATE, 2)],
            "unique",
        ),
        (
            [CapacityProviderWeight(FARGATE, 0), CapacityProviderWeight(FARGATE_SPOT, 0)],
            "weight above 0",
        ),
        (
            [CapacityProviderWeight(FARGATE, 1, 1), CapacityProviderWeight(FARGATE_SPOT, 1, 2)],
            "Only one capacity provider",
        ),
        ([CapacityProviderWeight(FARGATE, 1001)], "between 0 and 1000"),
        ([CapacityProviderWeight(FARGATE, 1, -1)], "between 0 and 100000"),
    ],
)
def test_validate_strategy_rejects(
    strategy: list[CapacityProviderWeight], message: str
) -> None:
    """Strategies ECS would refuse are rejected locally."""
    with pytest.raises(PlacementStrategyError, match=message):
        validate_strategy(strategy)


def test_ensure_cluster_creates_missing_cluster(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """A missing cluster is created with both providers and the default strategy."""
    aws_client.describe_clusters.return_value = {"clusters": []}
    aws_client.create_cluster.return_value = {"cluster": {"clusterArn": "arn:cluster"}}

    arn = ensure_cluster(session, "c", DEFAULT_CAPACITY_PROVIDERS, {}, lambda _: None)

    assert arn == "arn:cluster"
    request = aws_client.create_cluster.call_args.kwargs
    assert request["capacityProviders"] == [FARGATE, FARGATE_SPOT]
    assert request["defaultCapacityProviderStrategy"] == [
        {"capacityProvider": FARGATE, "weight": 1, "base": 1},
        {"capacityProvider": FARGATE_SPOT, "weight": 4, "base": 0},
    ]
    assert "tags" not in request


def test_ensure_cluster_reapplies_strategy_on_active_cluster(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """An active cluster is reused and its default strategy refreshed."""
    aws_client.describe_clusters.return_value = {
        "clusters": [{"clusterArn": "arn:existing", "status": "ACTIVE"}]
    }

    arn = ensure_cluster(session, "c", DEFAULT_CAPACITY_PROVIDERS, {}, lambda _: None)

    assert arn == "arn:existing"
    aws_client.create_cluster.assert_not_called()
    aws_client.put_cluster_capacity_providers.assert_called_once()


def test_ensure_cluster_rejects_unexpected_status(
    session: MagicMock, aws_client: MagicMock
) -> None:
    """A cluster being deprovisioned cannot be reused."""
    aws_client.describe_clusters.return_value = {
        "clusters": [{"clusterArn": "arn:existing", "status": "DEPROVISIONING"}]
    }

    with pytest.raises(RuntimeError, match="unexpected status"):
        ensure_cluster(session, "c", DEFAULT_CAPACITY_PROVIDERS, {}, lambda _: None)
