"""Managed cluster CLI (mcctl).

Usage:
    mcctl nodepool-spec cluster.yaml          # Print derived node pool specs
    mcctl reconcile cluster.yaml              # Create missing role assignments / extensions
    mcctl delete cluster.yaml                 # Remove them again
    mcctl convert-kubeconfig cluster.yaml -i admin.kubeconfig -o spn.kubeconfig
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path

import click
import yaml

from .config import Config
from .errors import ManagedClusterError, ReconcileAggregateError
from .kubelogin import CredentialExchanger
from .main import build_credentials_provider, build_scopes, reconcile_cluster, setup_logging
from .manifests import ManifestBundle, load_manifests
from .scope import derive_node_pool_spec
from .services.base import ReconcileSummary
from .services.roleassignments import RoleAssignmentService
from .services.vmssextensions import VMSSExtensionService


def _load(manifest: Path) -> tuple[ManifestBundle, Config]:
    try:
        config = Config.from_env()
        return load_manifests(manifest), config
    except ManagedClusterError as e:
        raise click.ClickException(str(e)) from e


def _echo_summaries(summaries: list[ReconcileSummary]) -> None:
    for summary in summaries:
        click.echo(f"{summary.kind} {summary.operation}:")
        for key, outcome in summary.outcomes.items():
            click.echo(f"  {outcome.value:8} {key}")


def _report_failures(error: ReconcileAggregateError) -> click.ClickException:
    lines = [f"{len(error.failures)} spec(s) failed:"]
    for key, failure in error.failures.items():
        lines.append(f"  {key}: {failure}")
    return click.ClickException("\n".join(lines))


@click.group()
@click.version_option(version="0.1.0", prog_name="mcctl")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Managed cluster CLI (mcctl).

    Derives node pool specs from cluster manifests and reconciles the pool
    side resources (role assignments, scale set extensions) against Azure.
    """
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@cli.command("nodepool-spec")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--pool", "pool_name", default=None, help="Only print this pool.")
def nodepool_spec(manifest: Path, pool_name: str | None) -> None:
    """Print the derived node pool spec for each pool in MANIFEST."""
    bundle, _ = _load(manifest)
    if bundle.cluster is None or bundle.control_plane is None:
        raise click.ClickException("Manifest needs a Cluster and an AzureManagedControlPlane")

    try:
        pairs = [bundle.pool(pool_name)] if pool_name else list(bundle.pools())
    except ManagedClusterError as e:
        raise click.ClickException(str(e)) from e

    specs = [
        dataclasses.asdict(
            derive_node_pool_spec(bundle.cluster, bundle.control_plane, machine_pool, infra_pool)
        )
        for machine_pool, infra_pool in pairs
    ]
    for spec in specs:
        spec["availability_zones"] = list(spec["availability_zones"])
        spec["node_labels"] = dict(spec["node_labels"])
    click.echo(yaml.safe_dump_all(specs, sort_keys=False), nl=False)


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def reconcile(manifest: Path) -> None:
    """Create missing role assignments and scale set extensions."""
    bundle, config = _load(manifest)
    try:
        provider = build_credentials_provider(bundle, config)
        summaries = asyncio.run(reconcile_cluster(bundle, config, provider))
    except ReconcileAggregateError as e:
        raise _report_failures(e) from e
    except ManagedClusterError as e:
        raise click.ClickException(str(e)) from e

    _echo_summaries(summaries)
    click.secho("✓ Reconcile complete", fg="green")


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.confirmation_option(prompt="Delete role assignments and extensions for every pool?")
def delete(manifest: Path) -> None:
    """Remove the role assignments and scale set extensions of every pool."""
    bundle, config = _load(manifest)

    async def delete_all() -> list[ReconcileSummary]:
        provider = build_credentials_provider(bundle, config)
        summaries: list[ReconcileSummary] = []
        failures: dict[str, Exception] = {}
        for scope in build_scopes(bundle, provider):
            for service in (
                VMSSExtensionService(scope, config),
                RoleAssignmentService(scope, config),
            ):
                try:
                    summaries.append(await service.delete())
                except ReconcileAggregateError as e:
                    summaries.append(e.summary)
                    failures.update(e.failures)
        if failures:
            raise ReconcileAggregateError("delete", failures, summaries)
        return summaries

    try:
        summaries = asyncio.run(delete_all())
    except ReconcileAggregateError as e:
        raise _report_failures(e) from e
    except ManagedClusterError as e:
        raise click.ClickException(str(e)) from e

    _echo_summaries(summaries)
    click.secho("✓ Delete complete", fg="green")


@cli.command("convert-kubeconfig")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-i",
    "--input",
    "input_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Interactive kubeconfig to convert.",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the service principal kubeconfig.",
)
def convert_kubeconfig(manifest: Path, input_path: Path, output_path: Path) -> None:
    """Convert a kubeconfig to non-interactive service principal login."""
    bundle, config = _load(manifest)
    if bundle.cluster is None:
        raise click.ClickException("Manifest has no Cluster")

    try:
        provider = build_credentials_provider(bundle, config)
        converted = asyncio.run(
            CredentialExchanger(config).convert(
                bundle.cluster.name, input_path.read_bytes(), provider
            )
        )
    except ManagedClusterError as e:
        raise click.ClickException(str(e)) from e

    output_path.write_bytes(converted)
    output_path.chmod(0o600)
    click.secho(f"✓ Wrote {output_path}", fg="green")


if __name__ == "__main__":
    cli()
