"""Image tagging and Docker build/push helpers."""

import base64
import re
import shutil
import subprocess  # nosec B404
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from botocore.exceptions import ClientError

FLOATING_TAG = "latest"
SHORT_SHA_LENGTH = 7

_COMMIT_PATTERN = rf"[0-9a-f]{{{SHORT_SHA_LENGTH},40}}"
_TAG_PATTERN = re.compile(rf"^(?P<commit>{_COMMIT_PATTERN})-(?P<stamp>\d+)$")


@dataclass(frozen=True)
class ImageBuildConfig:
    """Image build settings for a deployment."""

    repository_uri: str
    image_tag: str
    build_context: Path
    dockerfile: str = "Dockerfile"
    platform: str = "linux/amd64"
    publish_latest: bool = False

    @property
    def image_uri(self) -> str:
        return f"{self.repository_uri}:{self.image_tag}"


def make_image_tag(commit: str, when: datetime | None = None) -> str:
    """Return a unique, time-ordered tag such as ``abc1234-1690000000``."""
    sha = commit.strip().lower()
    if not re.fullmatch(_COMMIT_PATTERN, sha):
        raise ValueError(f"Commit '{commit}' is not a hexadecimal SHA.")
    moment = when or datetime.now(UTC)
    return f"{sha[:SHORT_SHA_LENGTH]}-{int(moment.timestamp())}"


def tag_timestamp(tag: str) -> int | None:
    """Return the build time embedded in a tag made by :func:`make_image_tag`."""
    match = _TAG_PATTERN.match(tag)
    if match is None:
        return None
    return int(match.group("stamp"))


def resolve_commit(root_dir: Path, commit: str | None = None) -> str:
    """Return the commit to tag with: the given SHA or ``git rev-parse HEAD``."""
    if commit:
        return commit
    git = shutil.which("git")
    if not git:
        raise RuntimeError("Git is required to derive an image tag when no commit is given.")
    try:
        result = subprocess.run(  # nosec B603
            [git, "rev-parse", "HEAD"],
            cwd=root_dir,
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        raise RuntimeError(f"Could not read the current commit in {root_dir}.") from exc
    return result.stdout.strip()


def build_and_push_image(
    session: Any,
    image_config: ImageBuildConfig,
    reporter: Callable[[str], None],
    push: bool = True,
) -> str:
    """Build the service image and push it to ECR.

    Returns:
        The pushed image URI (always the unique tag).
    """
    _require_docker()

    image_uri = image_config.image_uri
    reporter(f"Building image {image_uri} ({image_config.platform})")
    _run(
        [
            "docker",
            "build",
            "--platform",
            image_config.platform,
            "-f",
            str(image_config.build_context / image_config.dockerfile),
            "-t",
            image_uri,
            str(image_config.build_context),
        ],
        reporter,
    )
    if not push:
        reporter("Skipping push (build-only run)")
        return image_uri

    reporter("Authenticating Docker with ECR")
    username, password, proxy_endpoint = _ecr_login(session)
    _run(
        [
            "docker",
            "login",
            "--username",
            username,
            "--password-stdin",
            proxy_endpoint,
        ],
        reporter,
        input_bytes=password.encode("utf-8"),
    )

    _run(["docker", "push", image_uri], reporter)

    if image_config.publish_latest:
        floating_uri = f"{image_config.repository_uri}:{FLOATING_TAG}"
        reporter(f"Also publishing {floating_uri}")
        _run(["docker", "tag", image_uri, floating_uri], reporter)
        _run(["docker", "push", floating_uri], reporter)

    return image_uri


def _require_docker() -> None:
    """Ensure Docker is installed."""
    if not shutil.which("docker"):
        raise RuntimeError("Docker is required to build and push images.")


def _ecr_login(session: Any) -> tuple[str, str, str]:
    """Return Docker login credentials for ECR."""
    ecr = session.client("ecr")
    try:
        # spellchecker:ignore-next-line
        response = ecr.get_authorization_token()
    except ClientError as exc:
        raise RuntimeError(f"Failed to authenticate with ECR: {exc}") from exc

    # spellchecker:ignore-next-line
    auth_data = response["authorizationData"][0]
    # spellchecker:ignore-next-line
    token = base64.b64decode(auth_data["authorizationToken"]).decode("utf-8")
    username, password = token.split(":", 1)
    proxy_endpoint = auth_data["proxyEndpoint"]
    return username, password, proxy_endpoint


def _run(
    command: list[str],
    reporter: Callable[[str], None],
    input_bytes: bytes | None = None,
) -> None:
    """Run a subprocess command."""
    executable = shutil.which(command[0])
    if not executable:
        raise RuntimeError(f"Executable not found: {command[0]}")
    resolved_command = [executable, *command[1:]]
    reporter(f"Running: {' '.join(resolved_command)}")
    try:
        subprocess.run(resolved_command, check=True, input=input_bytes)  # nosec B603
    except subprocess.CalledProcessError as exc:
        step = " ".join(command[:2])
        raise RuntimeError(f"{step} failed with exit code {exc.returncode}.") from exc
