"""Tests for flattening ClusterKubeconfig records."""

from __future__ import annotations

import logging

from cloudctl.greenhouse.records import AccessRecord
from cloudctl.kubeconfig.models import CertCredential, Endpoint, Profile
from cloudctl.sync.normalize import normalize


def _record(name: str, server: str, *, labels=None, cluster: str | None = None) -> AccessRecord:
    cluster = cluster or name
    return AccessRecord(
        name=name,
        labels=labels or {},
        endpoints={cluster: Endpoint(server=server)},
        credentials={f"{cluster}-user": CertCredential(client_certificate_data=b"c")},
        profiles={cluster: Profile(cluster=cluster, user=f"{cluster}-user")},
    )


def test_empty_input():
    incoming = normalize([])
    assert incoming.clusters == {}
    assert incoming.users == {}
    assert incoming.contexts == {}


def test_records_are_flattened():
    incoming = normalize([_record("a", "https://a"), _record("b", "https://b")])
    assert set(incoming.clusters) == {"a", "b"}
    assert set(incoming.users) == {"a-user", "b-user"}
    assert incoming.contexts["b"] == Profile(cluster="b", user="b-user")


def test_last_record_wins(caplog):
    with caplog.at_level(logging.DEBUG, logger="cloudctl.sync.normalize"):
        incoming = normalize([
            _record("first", "https://one", cluster="shared"),
            _record("second", "https://two", cluster="shared"),
        ])
    assert incoming.clusters["shared"].server == "https://two"
    assert "redeclared" in caplog.text


def test_labels_become_annotation():
    incoming = normalize([_record("a", "https://a", labels={"region": "eu", "env": "prod"})])
    assert incoming.clusters["a"].labels_annotation == '{"env":"prod","region":"eu"}'


def test_unlabelled_record_has_no_annotation():
    incoming = normalize([_record("a", "https://a")])
    assert incoming.clusters["a"].labels_annotation is None
