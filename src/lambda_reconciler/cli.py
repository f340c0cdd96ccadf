"""Command-line interface for lambda-reconciler."""

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from .archiver import pack
from .manifest import DeploymentManifest
from .models import AwsSettings
from .reconciler import Clients, Reconciler
from .state import DEFAULT_INSTANCE, DEFAULT_STATE_DIR, FileStateStore

DEFAULT_MANIFEST = "lambda.yaml"


def _parse_env(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> dict[str, str] | None:
    """Parse repeated ``KEY=VALUE`` options into a dict."""
    if not values:
        return None
    env: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", ctx=ctx, param=param)
        env[key] = value
    return env


def _state_options(f: Callable[..., Any]) -> Callable[..., Any]:
    f = click.option(
        "--instance",
        default=DEFAULT_INSTANCE,
        show_default=True,
        help="Deployment instance name (one state file per instance)",
    )(f)
    f = click.option(
        "--state-dir",
        type=click.Path(file_okay=False),
        default=DEFAULT_STATE_DIR,
        show_default=True,
        envvar="LAMBDA_RECONCILER_STATE_DIR",
        help="Directory holding persisted deployment state",
    )(f)
    return f


def _aws_options(f: Callable[..., Any]) -> Callable[..., Any]:
    f = click.option(
        "--endpoint-url",
        envvar="AWS_ENDPOINT_URL",
        help=(
            "AWS endpoint URL "
            "(e.g., http://localhost:4566 for LocalStack, or other AWS-compatible services)"
        ),
    )(f)
    f = click.option(
        "--profile",
        envvar="AWS_PROFILE",
        help="AWS named profile (default: boto3 credential chain)",
    )(f)
    f = click.option(
        "--region",
        envvar="AWS_REGION",
        help="AWS region (default: manifest value, then us-east-1)",
    )(f)
    return f


def _function_options(f: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option(
            "--config",
            "-c",
            "config_path",
            type=click.Path(dir_okay=False),
            default=DEFAULT_MANIFEST,
            show_default=True,
            help="YAML deployment manifest (skipped when missing)",
        ),
        click.option("--name", help="Function name (default: manifest, then previous state)"),
        click.option("--code", type=click.Path(exists=True), help="Code directory or archive"),
        click.option("--description", help="Function description"),
        click.option(
            "--memory",
            type=click.IntRange(128, 10240),
            help="Memory size in MB (128-10240, default: 512)",
        ),
        click.option(
            "--timeout",
            type=click.IntRange(1, 900),
            help="Timeout in seconds (1-900, default: 10)",
        ),
        click.option("--runtime", help="Lambda runtime (default: python3.12)"),
        click.option("--handler", help="Handler reference (default: handler.handler)"),
        click.option(
            "--env",
            "-e",
            multiple=True,
            callback=_parse_env,
            help="Environment variable KEY=VALUE (repeatable)",
        ),
        click.option(
            "--role-arn",
            help="Execution role ARN (default: auto-create a basic execution role)",
        ),
        click.option("--bucket", help="S3 bucket for code and dependency layer upload"),
        click.option(
            "--shim",
            "shims",
            multiple=True,
            type=click.Path(exists=True, dir_okay=False),
            help="Extra file added at the archive root (repeatable)",
        ),
        click.option(
            "--layer-dir",
            help="Dependency directory (relative to code) deployed as a layer",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _load_manifest(config_path: str, overrides: dict[str, Any]) -> DeploymentManifest:
    path = Path(config_path)
    manifest = DeploymentManifest.from_file(path) if path.exists() else DeploymentManifest()
    if overrides.get("shims") == ():
        overrides["shims"] = None
    return manifest.merge(overrides)


def _reconciler(
    manifest: DeploymentManifest,
    profile: str | None,
    endpoint_url: str | None,
    state_dir: str,
    instance: str,
    wait: bool = True,
) -> Reconciler:
    settings = AwsSettings(region=manifest.region, profile=profile, endpoint_url=endpoint_url)
    store = FileStateStore(state_dir, instance)
    return Reconciler(Clients.from_settings(settings), store, wait=wait)


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """lambda-reconciler deployment CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )


@cli.command()
@_function_options
@_aws_options
@_state_options
@click.option(
    "--wait/--no-wait",
    default=True,
    help=(
        "Wait for the function to settle after code changes "
        "(a code change followed by a configuration change always waits)"
    ),
)
def deploy(
    config_path: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    state_dir: str,
    instance: str,
    wait: bool,
    **overrides: Any,
) -> None:
    """Deploy a Lambda function, creating or updating it as needed."""
    try:
        manifest = _load_manifest(config_path, {**overrides, "region": region})
        reconciler = _reconciler(manifest, profile, endpoint_url, state_dir, instance, wait)
        config = manifest.to_config(reconciler.previous_name())

        click.echo(f"Deploying function: {config.name}")
        click.echo(f"  Region: {config.region}")
        click.echo(f"  Runtime: {config.runtime}")
        click.echo(f"  Memory: {config.memory}MB")
        click.echo(f"  Timeout: {config.timeout}s")
        click.echo(f"  Code: {config.code}")
        if config.bucket:
            click.echo(f"  Bucket: {config.bucket}")
        click.echo()

        result = reconciler.deploy(config)
    except Exception as e:
        click.echo(f"✗ Deployment failed: {e}", err=True)
        sys.exit(1)

    for step in result.steps:
        click.echo(f"  {step}")
    assert result.state is not None and result.action is not None
    click.echo(f"✓ {result.action.value.replace('_', ' ').capitalize()}: {result.state.name}")
    click.echo(f"  Function ARN: {result.state.arn}")
    click.echo(f"  Code SHA256: {result.state.hash[:16]}...")


@cli.command()
@_function_options
@_aws_options
@_state_options
def plan(
    config_path: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    state_dir: str,
    instance: str,
    **overrides: Any,
) -> None:
    """Show what deploy would do, without changing anything."""
    try:
        manifest = _load_manifest(config_path, {**overrides, "region": region})
        reconciler = _reconciler(manifest, profile, endpoint_url, state_dir, instance)
        config = manifest.to_config(reconciler.previous_name())
        decision = reconciler.plan(config)
    except Exception as e:
        click.echo(f"✗ Plan failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Function: {config.name}")
    click.echo(f"  Action: {decision.action.value}")
    if decision.changed:
        click.echo(f"  Changed: {', '.join(decision.changed)}")
    if decision.replaces:
        click.echo(f"  Replaces: {decision.replaces}")


@cli.command()
@_aws_options
@_state_options
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def remove(
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    state_dir: str,
    instance: str,
    yes: bool,
) -> None:
    """Remove the deployed function, its auto-created role and layer."""
    store = FileStateStore(state_dir, instance)
    try:
        previous = store.load()
    except Exception as e:
        click.echo(f"✗ Removal failed: {e}", err=True)
        sys.exit(1)

    if previous is None:
        click.echo("Nothing to remove: no deployment recorded in state.")
        return

    if not yes:
        click.confirm(
            f"Are you sure you want to remove function '{previous.name}'?",
            abort=True,
        )

    try:
        settings = AwsSettings(
            region=region or previous.region, profile=profile, endpoint_url=endpoint_url
        )
        result = Reconciler(Clients.from_settings(settings), store).remove()
    except Exception as e:
        click.echo(f"✗ Removal failed: {e}", err=True)
        sys.exit(1)

    for step in result.steps:
        click.echo(f"  {step}")
    click.echo(f"✓ Function '{previous.name}' removed")


@cli.command()
@_aws_options
@_state_options
def publish(
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    state_dir: str,
    instance: str,
) -> None:
    """Publish a version of the deployed function code."""
    store = FileStateStore(state_dir, instance)
    try:
        previous = store.load()
        if previous is None:
            raise click.ClickException("no deployment recorded in state")
        settings = AwsSettings(
            region=region or previous.region, profile=profile, endpoint_url=endpoint_url
        )
        version = Reconciler(Clients.from_settings(settings), store).publish_version()
    except Exception as e:
        click.echo(f"✗ Publish failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Published version {version} of {previous.name}")


@cli.command("pack")
@click.argument("source", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default="lambda.zip",
    show_default=True,
    help="Output archive (.zip or .tar)",
)
@click.option("--shim", "shims", multiple=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--exclude", "-x", multiple=True, help="Glob pattern to leave out (repeatable)")
@click.option("--prefix", help="Path prefix for archived files")
def pack_command(
    source: str,
    output: str,
    shims: tuple[str, ...],
    exclude: tuple[str, ...],
    prefix: str | None,
) -> None:
    """Package SOURCE into a deterministic archive and print its hash."""
    try:
        artifact = pack(
            source,
            include_files=shims,
            exclude_globs=exclude,
            prefix=prefix,
            output_path=output,
        )
    except Exception as e:
        click.echo(f"✗ Failed to package {source}: {e}", err=True)
        sys.exit(1)

    size_kb = artifact.size_bytes / 1024
    click.echo(f"✓ Packaged {source} to: {artifact.path} ({size_kb:.1f} KB)")
    click.echo(f"  Code SHA256: {artifact.content_hash}")


if __name__ == "__main__":
    cli()
