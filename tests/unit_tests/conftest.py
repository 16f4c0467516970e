"""Shared fixtures for the unit tests."""

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.models import EcsDeploymentConfig


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Return a clock that advances only on sleep."""
    return FakeClock()


@pytest.fixture
def client_error() -> Callable[[str], ClientError]:
    """Return a factory for botocore client errors with a given code."""

    def _make(code: str, operation: str = "Operation") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": f"{code} raised"}}, operation)

    return _make


@pytest.fixture
def aws_client() -> MagicMock:
    """Return a mock AWS client shared by every service name."""
    return MagicMock()


@pytest.fixture
def session(aws_client: MagicMock) -> MagicMock:
    """Return a mock boto3 session whose clients are ``aws_client``."""
    mock_session = MagicMock()
    mock_session.client.return_value = aws_client
    return mock_session


@pytest.fixture
def ecs_config() -> EcsDeploymentConfig:
    """Return a fully provisioned deployment configuration."""
    return EcsDeploymentConfig(
        aws_region="us-east-1",
        aws_profile=None,
        project_name="nodejs-app",
        cluster_name="nodejs-app-cluster",
        service_name="nodejs-app-service",
        task_family="nodejs-app",
        container_name="nodejs-app",
        container_port=3000,
        listener_port=80,
        task_cpu=256,
        task_memory=512,
        task_cpu_architecture="X86_64",
        ecr_repository="nodejs-app",
        log_group_name="/ecs/nodejs-app",
        health_check_grace_period=60,
        environment={"NODE_ENV": "production", "LOG_LEVEL": "info"},
        tags={"Project": "nodejs-app"},
        vpc_id="vpc-123",
        public_subnet_ids=["subnet-pub-a", "subnet-pub-b"],
        private_subnet_ids=["subnet-priv-a", "subnet-priv-b"],
        alb_security_group_id="sg-alb",
        service_security_group_id="sg-svc",
        exec_role_arn="arn:aws:iam::123456789012:role/nodejs-app-task-execution",
        task_role_arn="arn:aws:iam::123456789012:role/nodejs-app-task",
        repository_uri="123456789012.dkr.ecr.us-east-1.amazonaws.com/nodejs-app",
        task_definition_arn="arn:aws:ecs:us-east-1:123456789012:task-definition/nodejs-app:3",
        cluster_arn="arn:aws:ecs:us-east-1:123456789012:cluster/nodejs-app-cluster",
        service_arn="arn:aws:ecs:us-east-1:123456789012:service/nodejs-app-cluster/svc",
        load_balancer_arn="arn:aws:elasticloadbalancing:us-east-1:123456789012:loadbalancer/app/x",
        load_balancer_dns_name="nodejs-app-alb-1.us-east-1.elb.amazonaws.com",
        target_group_arn="arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/tg",
        listener_arn="arn:aws:elasticloadbalancing:us-east-1:123456789012:listener/app/x/l",
    )
