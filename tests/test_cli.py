"""Tests for CLI entry point."""

from __future__ import annotations

import json

import httpx
import pytest
from click.testing import CliRunner

from cloudctl.__main__ import cli
from cloudctl.exceptions import RemoteError
from cloudctl.greenhouse.client import GreenhouseClient
from cloudctl.greenhouse.records import AccessRecord
from cloudctl.kubeconfig.models import (
    CertCredential,
    Endpoint,
    KubeConfig,
    Profile,
)
from cloudctl.kubeconfig.rest import ClusterConnection
from cloudctl.kubeconfig.store import load_kubeconfig, write_kubeconfig


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep the user's real config and kubeconfig out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("KUBECONFIG", raising=False)
    return tmp_path


@pytest.fixture
def greenhouse_kubeconfig(tmp_path):
    path = tmp_path / "greenhouse.yaml"
    write_kubeconfig(path, KubeConfig(
        clusters={"gh": Endpoint(server="https://greenhouse.example.com")},
        users={"gh": CertCredential(extra={"token": "t"})},
        contexts={"gh": Profile(cluster="gh", user="gh")},
        current_context="gh",
    ))
    return path


@pytest.fixture
def fake_fetch(monkeypatch, make_oidc):
    calls = []
    records = [
        AccessRecord(
            name="alpha",
            endpoints={"alpha": Endpoint(server="https://alpha.example.com")},
            credentials={"alpha-oidc": make_oidc()},
            profiles={"alpha": Profile(cluster="alpha", user="alpha-oidc")},
        ),
    ]

    def fetch(self, namespace, name=None):
        calls.append((namespace, name))
        return records

    monkeypatch.setattr(GreenhouseClient, "fetch", fetch)
    return calls


class TestCLI:
    """Test CLI commands."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Greenhouse" in result.output

    def test_version_option(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_sync_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["sync", "--help"])
        assert result.exit_code == 0
        assert "--greenhouse-cluster-namespace" in result.output
        assert "--remote-cluster-kubeconfig" in result.output
        assert "--dry-run" in result.output

    def test_version_command(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert result.output.startswith("cloudctl 0.1.0")
        assert "git commit:" in result.output
        assert "build date:" in result.output

    def test_version_short(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["version", "--short"])
        assert result.output.strip() == "0.1.0"

    def test_version_json(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["version", "--json"])
        info = json.loads(result.output)
        assert info["version"] == "0.1.0"
        assert {"gitCommit", "buildDate", "pythonVersion", "implementation", "platform"} <= set(info)

    def test_invalid_config_file(self, tmp_path):
        bad = tmp_path / "bad.toml"
        bad.write_text("[sync]\nprefix = 'a:b'\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(bad), "version"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestSyncCommand:
    def test_requires_namespace(self, greenhouse_kubeconfig):
        runner = CliRunner()
        result = runner.invoke(cli, ["sync", "-k", str(greenhouse_kubeconfig)])
        assert result.exit_code == 2
        assert "--greenhouse-cluster-namespace" in result.output

    def test_rejects_bad_prefix(self, greenhouse_kubeconfig):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync", "-k", str(greenhouse_kubeconfig), "-n", "acme", "--prefix", "a:b",
        ])
        assert result.exit_code == 2

    def test_missing_greenhouse_kubeconfig(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync", "-k", str(tmp_path / "nope.yaml"), "-n", "acme",
        ])
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_sync_merges(self, greenhouse_kubeconfig, fake_fetch, tmp_path):
        target = tmp_path / "remote.yaml"
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync",
            "-k", str(greenhouse_kubeconfig),
            "-n", "acme",
            "-r", str(target),
            "--remote-cluster-name", "alpha",
        ])
        assert result.exit_code == 0, result.output
        assert "Successfully synced" in result.output
        assert fake_fetch == [("acme", "alpha")]
        saved = load_kubeconfig(target)
        assert "cloudctl:alpha" in saved.clusters
        assert saved.contexts["alpha"].cluster == "cloudctl:alpha"

    def test_sync_dry_run(self, greenhouse_kubeconfig, fake_fetch, tmp_path):
        target = tmp_path / "remote.yaml"
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync", "-k", str(greenhouse_kubeconfig), "-n", "acme",
            "-r", str(target), "--dry-run",
        ])
        assert result.exit_code == 0, result.output
        assert "Dry run:" in result.output
        assert "+ cluster cloudctl:alpha" in result.output
        assert not target.exists()

    def test_sync_with_exec_plugin_and_prefix(self, greenhouse_kubeconfig, fake_fetch, tmp_path):
        target = tmp_path / "remote.yaml"
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync", "-k", str(greenhouse_kubeconfig), "-n", "acme", "-r", str(target),
            "--prefix", "gh", "--exec-plugin", "--exec-extra-arg=--skip-open-browser",
        ])
        assert result.exit_code == 0, result.output
        saved = load_kubeconfig(target)
        assert "gh:alpha" in saved.clusters
        (user,) = saved.users.values()
        assert user.command == "kubelogin"
        assert user.args[-1] == "--skip-open-browser"

    def test_namespace_from_config(self, greenhouse_kubeconfig, fake_fetch, tmp_path):
        (tmp_path / "cloudctl.toml").write_text(
            f'[greenhouse]\nkubeconfig = "{greenhouse_kubeconfig}"\nnamespace = "acme"\n'
            f'[sync]\nkubeconfig = "{tmp_path / "remote.yaml"}"\n'
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 0, result.output
        assert fake_fetch == [("acme", None)]
        assert (tmp_path / "remote.yaml").exists()

    def test_nothing_to_sync(self, greenhouse_kubeconfig, monkeypatch, tmp_path):
        monkeypatch.setattr(GreenhouseClient, "fetch", lambda self, namespace, name=None: [])
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync", "-k", str(greenhouse_kubeconfig), "-n", "acme",
            "-r", str(tmp_path / "remote.yaml"),
        ])
        assert result.exit_code == 0
        assert "No ClusterKubeconfigs found" in result.output

    def test_remote_error_is_reported(self, greenhouse_kubeconfig, monkeypatch, tmp_path):
        def boom(self, namespace, name=None):
            raise RemoteError("Failed to fetch ClusterKubeconfigs: HTTP 403")

        monkeypatch.setattr(GreenhouseClient, "fetch", boom)
        runner = CliRunner()
        result = runner.invoke(cli, [
            "sync", "-k", str(greenhouse_kubeconfig), "-n", "acme",
            "-r", str(tmp_path / "remote.yaml"),
        ])
        assert result.exit_code == 1
        assert "Error: Failed to fetch" in result.output


class TestClusterVersionCommand:
    def test_prints_version(self, greenhouse_kubeconfig, monkeypatch):
        def fake_client(self, *, authenticated=True, transport=None, timeout=30.0):
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(200, json={"gitVersion": "v1.29.3"})

            return httpx.Client(
                base_url=self.server, transport=httpx.MockTransport(handler),
            )

        monkeypatch.setattr(ClusterConnection, "client", fake_client)

        runner = CliRunner()
        result = runner.invoke(cli, ["cluster-version", "-k", str(greenhouse_kubeconfig)])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "1.29.3"

    def test_unknown_context(self, greenhouse_kubeconfig):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "cluster-version", "-k", str(greenhouse_kubeconfig), "-c", "nope",
        ])
        assert result.exit_code == 1
        assert "not found" in result.output
