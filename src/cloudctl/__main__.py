"""CLI entry point for cloudctl."""

from __future__ import annotations

import json
import logging
import platform
import sys
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

import click

from cloudctl import __build_date__, __git_commit__, __version__
from cloudctl.config import Config, ConfigError, load_config
from cloudctl.exceptions import CloudctlError
from cloudctl.greenhouse.client import GreenhouseClient
from cloudctl.greenhouse.version import probe_cluster_version
from cloudctl.kubeconfig.rest import ClusterConnection
from cloudctl.kubeconfig.store import default_kubeconfig_path, load_kubeconfig
from cloudctl.sync.service import SyncOptions, exec_options_from_config, run_sync

logger = logging.getLogger(__name__)


def _configure_logging(config: Config, verbose: int) -> None:
    level = getattr(logging, config.logging.level, logging.WARNING)
    if verbose == 1:
        level = min(level, logging.INFO)
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _resolve_kubeconfig(flag: Path | None, configured: str) -> Path:
    if flag is not None:
        return flag.expanduser()
    if configured:
        return Path(configured).expanduser()
    return default_kubeconfig_path()


def _connection(kubeconfig: Path, context: str | None) -> ClusterConnection:
    if not kubeconfig.exists():
        raise CloudctlError(f"Kubeconfig {kubeconfig} does not exist.")
    return ClusterConnection.from_kubeconfig(load_kubeconfig(kubeconfig), context or None)


def _fail(error: Exception) -> NoReturn:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="cloudctl")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to cloudctl.toml configuration file.",
)
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv).")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: int) -> None:
    """cloudctl: manage and access Kubernetes clusters via Greenhouse.

    Fetches ClusterKubeconfigs from the central Greenhouse cluster and
    merges them into your local kubeconfig, so kubectl can reach every
    remote cluster with one login per identity.
    """
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    _configure_logging(config, verbose)
    ctx.obj["config"] = config


@cli.command()
@click.option(
    "--greenhouse-cluster-kubeconfig", "-k",
    "greenhouse_kubeconfig",
    type=click.Path(path_type=Path),
    default=None,
    help="Kubeconfig file for the Greenhouse cluster.",
)
@click.option(
    "--greenhouse-cluster-context", "-c",
    "greenhouse_context",
    default=None,
    help="Context in the Greenhouse kubeconfig. Defaults to its current-context.",
)
@click.option(
    "--greenhouse-cluster-namespace", "-n",
    "namespace",
    default=None,
    help="Greenhouse namespace (the organization name).",
)
@click.option(
    "--remote-cluster-kubeconfig", "-r",
    "target_kubeconfig",
    type=click.Path(path_type=Path),
    default=None,
    help="Kubeconfig file to merge remote clusters into.",
)
@click.option(
    "--remote-cluster-name",
    default=None,
    help="Only sync this ClusterKubeconfig. Defaults to all in the namespace.",
)
@click.option(
    "--prefix",
    default=None,
    help="Prefix for managed kubeconfig entries (default: cloudctl).",
)
@click.option(
    "--merge-identical-users/--no-merge-identical-users",
    default=None,
    help="Share one user entry between clusters with the same identity.",
)
@click.option(
    "--exec-plugin/--no-exec-plugin",
    default=None,
    help="Rewrite oidc auth-provider users into kubelogin exec users.",
)
@click.option(
    "--exec-extra-arg",
    "exec_extra_args",
    multiple=True,
    help="Extra argument appended to the kubelogin invocation.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Show changes without writing.")
@click.pass_context
def sync(
    ctx: click.Context,
    greenhouse_kubeconfig: Path | None,
    greenhouse_context: str | None,
    namespace: str | None,
    target_kubeconfig: Path | None,
    remote_cluster_name: str | None,
    prefix: str | None,
    merge_identical_users: bool | None,
    exec_plugin: bool | None,
    exec_extra_args: tuple[str, ...],
    dry_run: bool,
) -> None:
    """Fetch ClusterKubeconfigs from Greenhouse and merge them locally."""
    config: Config = ctx.obj["config"]
    namespace = namespace or config.greenhouse.namespace
    if not namespace:
        raise click.UsageError(
            "Missing option '--greenhouse-cluster-namespace' / '-n'."
        )
    prefix = prefix if prefix is not None else config.sync.prefix
    if not prefix or ":" in prefix:
        raise click.BadParameter("must be non-empty and must not contain ':'", param_hint="--prefix")

    exec_cfg = config.exec_plugin
    if exec_plugin is not None:
        exec_cfg = replace(exec_cfg, enabled=exec_plugin)
    options = SyncOptions(
        prefix=prefix,
        dedup=(
            merge_identical_users
            if merge_identical_users is not None
            else config.sync.merge_identical_users
        ),
        exec_options=exec_options_from_config(exec_cfg, exec_extra_args),
    )
    source_path = _resolve_kubeconfig(greenhouse_kubeconfig, config.greenhouse.kubeconfig)
    target_path = _resolve_kubeconfig(target_kubeconfig, config.sync.kubeconfig)

    try:
        connection = _connection(
            source_path, greenhouse_context or config.greenhouse.context,
        )
        report = run_sync(
            GreenhouseClient(connection),
            namespace=namespace,
            target=target_path,
            options=options,
            name=remote_cluster_name,
            dry_run=dry_run,
        )
    except CloudctlError as e:
        _fail(e)

    if report is None:
        click.echo("No ClusterKubeconfigs found to sync.")
        return
    if dry_run:
        click.echo(f"Dry run: {report.summary()}")
        for kind in ("clusters", "users", "contexts"):
            changes = getattr(report, kind)
            for label, names in (
                ("+", changes.added), ("~", changes.updated), ("-", changes.removed),
            ):
                for entry in names:
                    click.echo(f"  {label} {kind[:-1]} {entry}")
        return
    click.echo("Successfully synced and merged into your local config.")


@cli.command(name="cluster-version")
@click.option(
    "--kubeconfig", "-k",
    type=click.Path(path_type=Path),
    default=None,
    help="Kubeconfig file path.",
)
@click.option("--context", "-c", "context", default=None, help="Context to probe.")
def cluster_version(kubeconfig: Path | None, context: str | None) -> None:
    """Print the Kubernetes version of a kubeconfig context."""
    try:
        connection = _connection(_resolve_kubeconfig(kubeconfig, ""), context)
        version = probe_cluster_version(connection)
    except CloudctlError as e:
        _fail(e)
    click.echo(version)


@cli.command()
@click.option("--short", is_flag=True, default=False, help="Print only the version number.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit JSON.")
def version(short: bool, as_json: bool) -> None:
    """Print cloudctl version information."""
    info = {
        "version": __version__,
        "gitCommit": __git_commit__,
        "buildDate": __build_date__,
        "pythonVersion": platform.python_version(),
        "implementation": platform.python_implementation(),
        "platform": f"{sys.platform}/{platform.machine()}",
    }
    if as_json:
        click.echo(json.dumps(info, indent=2))
        return
    if short:
        click.echo(info["version"])
        return
    click.echo(f"cloudctl {info['version']}")
    click.echo(f"  git commit: {info['gitCommit']}")
    click.echo(f"  build date: {info['buildDate']}")
    click.echo(f"  python:     {info['pythonVersion']} {info['implementation']}")
    click.echo(f"  platform:   {info['platform']}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
