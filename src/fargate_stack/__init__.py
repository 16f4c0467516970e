"""fargate-stack - provision an ECS Fargate service and roll out container images."""

__version__ = "0.1.0"
