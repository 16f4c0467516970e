"""ECR helpers for ECS deployment."""

from datetime import datetime
from typing import Any, cast

from boto3.session import Session
from botocore.exceptions import ClientError

from fargate_stack.core.deployments.aws_ecs.images import tag_timestamp


def ensure_repository(session: Session, name: str, tags: dict[str, str] | None = None) -> str:
    """Ensure an ECR repository exists and return its URI."""
    ecr = session.client("ecr")
    try:
        response = ecr.describe_repositories(repositoryNames=[name])
        return cast(str, response["repositories"][0]["repositoryUri"])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "RepositoryNotFoundException":
            raise RuntimeError(f"Failed to read ECR repo {name}: {exc}") from exc

    request: dict[str, Any] = {
        "repositoryName": name,
        "imageScanningConfiguration": {"scanOnPush": True},
    }
    if tags:
        request["tags"] = [{"Key": key, "Value": value} for key, value in tags.items()]
    response = ecr.create_repository(**request)
    return cast(str, response["repository"]["repositoryUri"])


def latest_image_tag(session: Session, name: str) -> str | None:
    """Return the most recently pushed tag in a repository.

    Images are ordered by push time, then by the timestamp embedded in the
    tag, then by the tag itself, so the answer does not depend on API
    ordering. Floating tags such as ``latest`` are never returned.
    """
    ecr = session.client("ecr")
    candidates: list[tuple[datetime | None, int, str]] = []
    paginator = ecr.get_paginator("describe_images")
    try:
        for page in paginator.paginate(repositoryName=name, filter={"tagStatus": "TAGGED"}):
            for image in page.get("imageDetails", []):
                pushed_at = image.get("imagePushedAt")
                for tag in image.get("imageTags", []):
                    stamp = tag_timestamp(tag)
                    if stamp is None:
                        continue
                    candidates.append((pushed_at, stamp, tag))
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "RepositoryNotFoundException":
            raise RuntimeError(f"ECR repository {name} does not exist.") from exc
        raise RuntimeError(f"Failed to list images in {name}: {exc}") from exc

    if not candidates:
        return None
    candidates.sort(key=lambda item: (item[0] is not None, item[0] or 0, item[1], item[2]))
    return candidates[-1][2]
