"""Flatten ClusterKubeconfig records into one incoming kubeconfig."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from cloudctl.greenhouse.records import AccessRecord
from cloudctl.kubeconfig.models import NormalizedConfig
from cloudctl.kubeconfig.store import labels_annotation

logger = logging.getLogger(__name__)


def _put(target: dict, name: str, value, *, kind: str, record: str) -> None:
    if name in target:
        logger.debug(
            "%s %r redeclared by ClusterKubeconfig %s; last one wins",
            kind, name, record,
        )
    target[name] = value


def normalize(records: Iterable[AccessRecord]) -> NormalizedConfig:
    """Merge every record's clusters, users and contexts by remote name.

    When two records declare the same name, the later record wins.
    Clusters of a labelled record carry the labels as an annotation.
    """
    incoming = NormalizedConfig()
    for record in records:
        annotation = labels_annotation(record.labels) if record.labels else None
        for name, endpoint in record.endpoints.items():
            if annotation is not None:
                endpoint = replace(endpoint, labels_annotation=annotation)
            _put(incoming.clusters, name, endpoint, kind="cluster", record=record.name)
        for name, credential in record.credentials.items():
            _put(incoming.users, name, credential, kind="user", record=record.name)
        for name, profile in record.profiles.items():
            _put(incoming.contexts, name, profile, kind="context", record=record.name)
    return incoming
