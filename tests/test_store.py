"""Tests for kubeconfig parsing, rendering and file handling."""

from __future__ import annotations

import os
import stat
import textwrap
from dataclasses import replace
from pathlib import Path

import pytest
import yaml

from cloudctl.exceptions import KubeconfigError
from cloudctl.kubeconfig.models import (
    AuthProviderCredential,
    CertCredential,
    Endpoint,
    ExecCredential,
    KubeConfig,
    Profile,
)
from cloudctl.kubeconfig.store import (
    default_kubeconfig_path,
    labels_annotation,
    load_kubeconfig,
    mutate_kubeconfig,
    parse_kubeconfig,
    parse_user,
    render_kubeconfig,
    write_kubeconfig,
)

SAMPLE = textwrap.dedent("""\
    apiVersion: v1
    kind: Config
    current-context: mine
    preferences: {}
    clusters:
    - name: mine
      cluster:
        server: https://mine.example.com
        certificate-authority-data: Y2EtZGF0YQ==
        insecure-skip-tls-verify: false
        extensions:
        - name: labels
          extension:
            region: eu
            env: prod
        - name: other
          extension: {foo: bar}
    users:
    - name: cert
      user:
        client-certificate-data: Y2VydA==
        client-key-data: a2V5
    - name: oidc
      user:
        auth-provider:
          name: oidc
          config:
            client-id: cid
            id-token: tok
    - name: helper
      user:
        exec:
          apiVersion: client.authentication.k8s.io/v1beta1
          command: kubelogin
          args: [get-token, --oidc-client-id=cid]
          env:
          - name: FOO
            value: bar
          interactiveMode: IfAvailable
    - name: token
      user:
        token: abc
    contexts:
    - name: mine
      context:
        cluster: mine
        user: cert
        namespace: default
    """)


def test_parse_sample():
    config = parse_kubeconfig(yaml.safe_load(SAMPLE))

    cluster = config.clusters["mine"]
    assert cluster.server == "https://mine.example.com"
    assert cluster.certificate_authority_data == b"ca-data"
    assert cluster.labels_annotation == '{"env":"prod","region":"eu"}'
    assert cluster.extensions == {"other": {"foo": "bar"}}
    assert cluster.extra == {"insecure-skip-tls-verify": False}

    assert config.users["cert"] == CertCredential(
        client_certificate_data=b"cert", client_key_data=b"key",
    )
    assert config.users["oidc"] == AuthProviderCredential(
        provider="oidc", config={"client-id": "cid", "id-token": "tok"},
    )
    helper = config.users["helper"]
    assert isinstance(helper, ExecCredential)
    assert helper.args == ["get-token", "--oidc-client-id=cid"]
    assert helper.env == {"FOO": "bar"}
    assert config.users["token"] == CertCredential(extra={"token": "abc"})

    assert config.contexts["mine"] == Profile(cluster="mine", user="cert", namespace="default")
    assert config.current_context == "mine"


def test_render_then_parse_keeps_everything():
    config = parse_kubeconfig(yaml.safe_load(SAMPLE))
    assert parse_kubeconfig(yaml.safe_load(render_kubeconfig(config))) == config


def test_render_layout():
    config = KubeConfig(
        clusters={"c": Endpoint(server="https://c", labels_annotation='{"a":"1"}')},
    )
    data = yaml.safe_load(render_kubeconfig(config))
    assert data["apiVersion"] == "v1"
    assert data["kind"] == "Config"
    assert data["clusters"] == [{
        "name": "c",
        "cluster": {
            "server": "https://c",
            "extensions": [{"name": "labels", "extension": {"a": "1"}}],
        },
    }]
    assert data["users"] == []


def test_unknown_top_level_keys_survive():
    config = parse_kubeconfig({"apiVersion": "v1", "x-custom": {"k": "v"}})
    assert yaml.safe_load(render_kubeconfig(config))["x-custom"] == {"k": "v"}


def test_labels_annotation_is_compact_and_sorted():
    assert labels_annotation({"b": "2", "a": "1"}) == '{"a":"1","b":"2"}'


class TestParseErrors:
    def test_invalid_base64(self):
        with pytest.raises(KubeconfigError, match="base64"):
            parse_user({"client-certificate-data": "not base64!"}, name="u")

    def test_top_level_must_be_mapping(self):
        with pytest.raises(KubeconfigError):
            parse_kubeconfig(["nope"])

    def test_entry_needs_name(self):
        with pytest.raises(KubeconfigError, match="missing name"):
            parse_kubeconfig({"clusters": [{"cluster": {"server": "x"}}]})

    def test_exec_args_must_be_list(self):
        with pytest.raises(KubeconfigError):
            parse_user({"exec": {"command": "x", "args": "get-token"}}, name="u")


class TestFiles:
    def test_missing_file_is_empty(self, kubeconfig_path):
        assert load_kubeconfig(kubeconfig_path) == KubeConfig()

    def test_empty_file_is_empty(self, kubeconfig_path):
        kubeconfig_path.parent.mkdir(parents=True)
        kubeconfig_path.write_text("")
        assert load_kubeconfig(kubeconfig_path) == KubeConfig()

    def test_invalid_yaml(self, kubeconfig_path):
        kubeconfig_path.parent.mkdir(parents=True)
        kubeconfig_path.write_text("clusters: [\n")
        with pytest.raises(KubeconfigError, match="Invalid YAML"):
            load_kubeconfig(kubeconfig_path)

    def test_write_creates_private_file(self, kubeconfig_path):
        config = KubeConfig(clusters={"c": Endpoint(server="https://c")})
        write_kubeconfig(kubeconfig_path, config)
        assert load_kubeconfig(kubeconfig_path) == config
        assert stat.S_IMODE(os.stat(kubeconfig_path).st_mode) == 0o600

    def test_mutate_writes_changes(self, kubeconfig_path):
        def add_cluster(config: KubeConfig) -> KubeConfig:
            clusters = {**config.clusters, "c": Endpoint(server="https://c")}
            return replace(config, clusters=clusters)

        mutate_kubeconfig(kubeconfig_path, add_cluster)
        assert load_kubeconfig(kubeconfig_path).clusters["c"].server == "https://c"

    def test_mutate_skips_write_when_unchanged(self, kubeconfig_path):
        kubeconfig_path.parent.mkdir(parents=True)
        kubeconfig_path.write_text(SAMPLE)

        result = mutate_kubeconfig(kubeconfig_path, lambda config: config)

        # Formatting on disk is left as written.
        assert kubeconfig_path.read_text() == SAMPLE
        assert result.current_context == "mine"

    def test_mutate_leaves_no_temp_files(self, kubeconfig_path):
        mutate_kubeconfig(kubeconfig_path, lambda config: KubeConfig(current_context="x"))
        leftovers = [p.name for p in kubeconfig_path.parent.iterdir() if ".tmp-" in p.name]
        assert leftovers == []


class TestDefaultPath:
    def test_uses_first_kubeconfig_entry(self, monkeypatch, tmp_path):
        first = tmp_path / "first"
        monkeypatch.setenv("KUBECONFIG", os.pathsep.join([str(first), str(tmp_path / "b")]))
        assert default_kubeconfig_path() == first

    def test_falls_back_to_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("KUBECONFIG", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert default_kubeconfig_path() == Path(tmp_path) / ".kube" / "config"
