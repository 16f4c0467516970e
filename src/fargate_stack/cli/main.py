"""CLI entrypoint for fargate-stack."""

import json
import logging
import sys
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any, TypeVar, cast

import click

from fargate_stack.cli.configuration.models import StackConfig
from fargate_stack.cli.configuration.store import load_config, save_config
from fargate_stack.cli.errors import report_error
from fargate_stack.cli.steps import (
    ecs_config_from_cli,
    image_config_for,
    print_cleanup_summary,
    run_build_step,
    run_cleanup_step,
    run_deploy_step,
    run_provision,
    run_scale_step,
)
from fargate_stack.cli.ui import confirm, console, print_outputs_table, print_status_table
from fargate_stack.config.paths import stack_config_path
from fargate_stack.core.deployments.aws_ecs import (
    DeployOptions,
    check_deployment,
    create_session,
    latest_image_tag,
    render_task_definition_file,
    stack_outputs,
)
from fargate_stack.core.deployments.aws_ecs.rollout import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
)
from fargate_stack.core.settings import RuntimeSettings, get_settings

F = TypeVar("F", bound=Callable[..., Any])


class CliState:
    """Objects shared by every command of one invocation."""

    def __init__(self, config_path: Path | None, settings: RuntimeSettings) -> None:
        self.config_path = config_path
        self.settings = settings

    def load(self) -> StackConfig:
        return load_config(self.config_path)

    def session(self, config: StackConfig) -> Any:
        return create_session(ecs_config_from_cli(config), self.settings.aws)


def handle_errors(func: F) -> F:
    """Render command failures and exit non-zero."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (click.exceptions.Exit, click.ClickException):
            raise
        except Exception as exc:  # noqa: BLE001
            logging.getLogger(__name__).debug("Command failed", exc_info=exc)
            report_error(exc)
            sys.exit(1)

    return cast(F, wrapper)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Stack config file (defaults to the user config directory).",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """Provision an ECS Fargate stack and roll out new images to it."""
    settings = get_settings()
    level = "DEBUG" if verbose else settings.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CliState(config_path, settings)


pass_state = click.make_pass_decorator(CliState)


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@pass_state
@handle_errors
def init(state: CliState, force: bool) -> None:
    """Write a default stack config file."""
    path = state.config_path or stack_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists at {path}. Use --force to reset.[/yellow]")
        return
    saved = save_config(StackConfig(), path)
    console.print(f"[green]Wrote default config to {saved}[/green]")


@cli.command()
@pass_state
@handle_errors
def provision(state: CliState) -> None:
    """Create or update every stack resource."""
    config = state.load()
    run_provision(state.session(config), config, state.config_path)
    dns_name = config.deployment.load_balancer_dns_name
    if dns_name:
        console.print(f"[green]Stack ready at http://{dns_name}[/green]")


@cli.command()
@click.option("--image-tag", default=None, help="Tag to build (defaults to <sha>-<time>).")
@click.option("--commit", default=None, help="Commit SHA used to derive the tag.")
@click.option("--no-push", is_flag=True, help="Build only; do not publish to ECR.")
@pass_state
@handle_errors
def build(state: CliState, image_tag: str | None, commit: str | None, no_push: bool) -> None:
    """Build the service image and push it to ECR."""
    config = state.load()
    session = state.session(config)
    image_config = image_config_for(
        session, config, image_tag, commit or state.settings.build.sha, push=not no_push
    )
    image_uri = run_build_step(session, config, state.config_path, image_config, not no_push)
    console.print(f"[green]Image ready: {image_uri}[/green]")


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--container", "container_name", required=True, help="Container to update.")
@click.option("--image", "image_uri", required=True, help="New image URI.")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the rendered file.",
)
@handle_errors
def render(source: Path, container_name: str, image_uri: str, output: Path | None) -> None:
    """Render a task definition file with a new container image."""
    written = render_task_definition_file(source, container_name, image_uri, output)
    click.echo(str(written))


@cli.command()
@click.option("--image-tag", default=None, help="Deploy this tag instead of a fresh build.")
@click.option("--commit", default=None, help="Commit SHA used to derive the tag.")
@click.option("--skip-build", is_flag=True, help="Deploy an image already in ECR.")
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=1),
    default=DEFAULT_TIMEOUT_SECONDS,
    show_default=True,
    help="Seconds to wait for steady state.",
)
@click.option(
    "--poll-interval",
    "poll_interval_seconds",
    type=click.FloatRange(min=1),
    default=DEFAULT_POLL_INTERVAL_SECONDS,
    show_default=True,
    help="Seconds between service status checks.",
)
@pass_state
@handle_errors
def deploy(
    state: CliState,
    image_tag: str | None,
    commit: str | None,
    skip_build: bool,
    timeout_seconds: float,
    poll_interval_seconds: float,
) -> None:
    """Build, push and roll a new image out to the service."""
    config = state.load()
    session = state.session(config)
    if skip_build and not image_tag:
        image_tag = latest_image_tag(session, config.service.ecr_repository)
        if image_tag is None:
            raise click.ClickException(
                f"No tagged images in {config.service.ecr_repository}; nothing to deploy."
            )
    image_config = image_config_for(
        session, config, image_tag, commit or state.settings.build.sha
    )
    options = DeployOptions(
        skip_build=skip_build,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
    )
    result = run_deploy_step(session, config, state.config_path, image_config, options)
    console.print(
        f"[green]Deployed {result.image_uri} as {result.task_definition_arn} "
        f"in {result.elapsed_seconds:.0f}s[/green]"
    )


@cli.command()
@click.argument("desired_count", type=int)
@pass_state
@handle_errors
def scale(state: CliState, desired_count: int) -> None:
    """Set the service desired task count."""
    config = state.load()
    run_scale_step(state.session(config), config, state.config_path, desired_count)
    console.print(f"[green]Desired count set to {desired_count}[/green]")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print outputs as JSON.")
@pass_state
@handle_errors
def outputs(state: CliState, as_json: bool) -> None:
    """Show identifiers of the provisioned stack."""
    values = stack_outputs(ecs_config_from_cli(state.load()))
    if as_json:
        click.echo(json.dumps(values, indent=2))
        return
    print_outputs_table(values)


@cli.command()
@pass_state
@handle_errors
def status(state: CliState) -> None:
    """Check live state of every stack resource."""
    config = state.load()
    print_status_table(check_deployment(state.session(config), ecs_config_from_cli(config)))


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.option("--delete-repository", is_flag=True, help="Also delete the ECR repository.")
@pass_state
@handle_errors
def destroy(state: CliState, yes: bool, delete_repository: bool) -> None:
    """Delete every stack resource."""
    config = state.load()
    print_cleanup_summary(config, delete_repository)
    if not yes and not confirm("Delete these resources?"):
        console.print("[dim]Clean up cancelled.[/dim]")
        return
    run_cleanup_step(state.session(config), config, state.config_path, delete_repository)
    console.print("[green]Stack removed.[/green]")


def main() -> None:
    """Run the CLI."""
    cli()
