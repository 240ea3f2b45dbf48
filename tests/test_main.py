"""Tests for the reconcile pass entry points and the mcctl CLI."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from azure_mock import MockAzureContext, create_credentials_provider
from click.testing import CliRunner

from managedcluster.cli import cli
from managedcluster.config import Config
from managedcluster.errors import ConfigurationError, ReconcileAggregateError
from managedcluster.main import build_credentials_provider, build_scopes, main, reconcile_cluster
from managedcluster.manifests import parse_manifests

MANIFEST = """\
kind: Cluster
metadata:
  name: cluster1
---
kind: AzureManagedControlPlane
metadata:
  name: cluster1
spec:
  subscriptionID: 00000000-0000-0000-0000-000000000000
  resourceGroupName: rg-cluster
  nodeResourceGroupName: rg-nodes
---
kind: AzureClusterIdentity
metadata:
  name: cluster-identity
spec:
  clientID: 11111111-1111-1111-1111-111111111111
  tenantID: 22222222-2222-2222-2222-222222222222
---
kind: MachinePool
metadata:
  name: pool0
spec:
  clusterName: cluster1
---
kind: AzureManagedMachinePool
metadata:
  name: pool0
spec:
  mode: System
  sku: Standard_D2s_v3
---
kind: MachinePool
metadata:
  name: pool1
spec:
  clusterName: cluster1
---
kind: AzureManagedMachinePool
metadata:
  name: pool1
spec:
  mode: User
  sku: Standard_D4s_v3
  scaling:
    minSize: 2
    maxSize: 10
  identity: SystemAssigned
  nodeLabels:
    team: data
  vmExtensions:
    - name: CustomScript
      publisher: Microsoft.Azure.Extensions
      version: "2.1"
"""

EXTENSION_KEY = "rg-nodes/pool1/CustomScript"


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    path = tmp_path / "cluster.yaml"
    path.write_text(MANIFEST)
    return path


class TestBuildCredentialsProvider:
    """Tests for build_credentials_provider."""

    def test_uses_identity_and_subscription(self) -> None:
        provider = build_credentials_provider(parse_manifests(MANIFEST), Config())

        assert provider.get_client_id() == "11111111-1111-1111-1111-111111111111"
        assert provider.get_subscription_id() == "00000000-0000-0000-0000-000000000000"

    def test_missing_identity(self) -> None:
        bundle = parse_manifests(MANIFEST)
        bundle.identity = None

        with pytest.raises(ConfigurationError) as exc_info:
            build_credentials_provider(bundle, Config())
        assert "AzureClusterIdentity" in str(exc_info.value)


class TestReconcileCluster:
    """Tests for reconcile_cluster."""

    def test_one_scope_per_pool(self) -> None:
        scopes = build_scopes(parse_manifests(MANIFEST), create_credentials_provider())
        assert [s.pool_name for s in scopes] == ["pool0", "pool1"]

    @pytest.mark.asyncio
    async def test_reconciles_every_pool(self) -> None:
        bundle = parse_manifests(MANIFEST)

        with MockAzureContext() as ctx:
            ctx.state.add_scale_set("rg-nodes", "pool1")
            summaries = await reconcile_cluster(bundle, Config(), create_credentials_provider())

        # Two services per pool
        assert len(summaries) == 4
        assert len(ctx.state.role_assignments) == 1
        assert list(ctx.state.extensions) == [EXTENSION_KEY]

    @pytest.mark.asyncio
    async def test_failures_aggregated_across_services(self) -> None:
        """A failing role assignment does not stop the extension service."""
        bundle = parse_manifests(MANIFEST)

        with MockAzureContext() as ctx:
            # No scale set registered, so the principal lookup fails
            with pytest.raises(ReconcileAggregateError) as exc_info:
                await reconcile_cluster(bundle, Config(), create_credentials_provider())

        error = exc_info.value
        assert len(error.failures) == 1
        assert "/roleAssignments/" in next(iter(error.failures))
        assert list(ctx.state.extensions) == [EXTENSION_KEY]
        assert len(error.summary) == 4


class TestMain:
    """Tests for the main entry point exit codes."""

    @pytest.mark.asyncio
    async def test_missing_manifest_path(self) -> None:
        with (
            patch("managedcluster.main.setup_logging"),
            patch.dict(os.environ, {}, clear=True),
        ):
            assert await main() == 1

    @pytest.mark.asyncio
    async def test_success(self, manifest_file: Path) -> None:
        env = {"MANIFESTS_PATH": str(manifest_file), "AZURE_CLIENT_SECRET": "from-env"}

        with (
            patch("managedcluster.main.setup_logging"),
            patch.dict(os.environ, env, clear=True),
            MockAzureContext() as ctx,
        ):
            ctx.state.add_scale_set("rg-nodes", "pool1")
            assert await main() == 0

        assert ctx.credentials[0].client_secret == "from-env"

    @pytest.mark.asyncio
    async def test_unresolved_secret(self, manifest_file: Path) -> None:
        with (
            patch("managedcluster.main.setup_logging"),
            patch.dict(os.environ, {"MANIFESTS_PATH": str(manifest_file)}, clear=True),
            MockAzureContext(),
        ):
            assert await main() == 2

    @pytest.mark.asyncio
    async def test_reconcile_failure(self, manifest_file: Path) -> None:
        env = {"MANIFESTS_PATH": str(manifest_file), "AZURE_CLIENT_SECRET": "from-env"}

        with (
            patch("managedcluster.main.setup_logging"),
            patch.dict(os.environ, env, clear=True),
            MockAzureContext(),
        ):
            assert await main() == 1


class TestCli:
    """Tests for the mcctl CLI."""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("managedcluster.cli.setup_logging"):
            yield

    def test_nodepool_spec(self, manifest_file: Path) -> None:
        result = CliRunner().invoke(cli, ["nodepool-spec", str(manifest_file)])

        assert result.exit_code == 0, result.output
        specs = list(yaml.safe_load_all(result.output))
        assert [s["name"] for s in specs] == ["pool0", "pool1"]
        assert specs[0]["auto_scaling"] is None
        assert specs[1]["auto_scaling"] == {"min_count": 2, "max_count": 10}
        assert specs[1]["mode"] == "User"
        assert specs[1]["replicas"] == 1
        assert specs[1]["node_labels"] == {"team": "data"}

    def test_nodepool_spec_single_pool(self, manifest_file: Path) -> None:
        result = CliRunner().invoke(
            cli, ["nodepool-spec", str(manifest_file), "--pool", "pool0"]
        )

        assert result.exit_code == 0, result.output
        specs = list(yaml.safe_load_all(result.output))
        assert len(specs) == 1
        assert specs[0]["mode"] == "System"

    def test_nodepool_spec_unknown_pool(self, manifest_file: Path) -> None:
        result = CliRunner().invoke(
            cli, ["nodepool-spec", str(manifest_file), "--pool", "missing"]
        )

        assert result.exit_code == 1
        assert "missing" in result.output

    def test_reconcile(self, manifest_file: Path) -> None:
        with MockAzureContext() as ctx:
            ctx.state.add_scale_set("rg-nodes", "pool1")
            result = CliRunner().invoke(
                cli,
                ["reconcile", str(manifest_file)],
                env={"AZURE_CLIENT_SECRET": "from-env"},
            )

        assert result.exit_code == 0, result.output
        assert f"Created  {EXTENSION_KEY}" in result.output
        assert "Reconcile complete" in result.output

    def test_reconcile_reports_failures(self, manifest_file: Path) -> None:
        with MockAzureContext():
            result = CliRunner().invoke(
                cli,
                ["reconcile", str(manifest_file)],
                env={"AZURE_CLIENT_SECRET": "from-env"},
            )

        assert result.exit_code == 1
        assert "1 spec(s) failed" in result.output

    def test_delete(self, manifest_file: Path) -> None:
        with MockAzureContext() as ctx:
            ctx.state.add_scale_set("rg-nodes", "pool1")
            runner = CliRunner()
            env = {"AZURE_CLIENT_SECRET": "from-env"}
            runner.invoke(cli, ["reconcile", str(manifest_file)], env=env)

            result = runner.invoke(cli, ["delete", str(manifest_file), "--yes"], env=env)

        assert result.exit_code == 0, result.output
        assert ctx.state.extensions == {}
        assert ctx.state.role_assignments == {}
