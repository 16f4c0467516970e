"""Command line interface for fargate-stack."""
