"""Normalization, credential identity and reconciliation of kubeconfigs."""

from cloudctl.sync.exec_args import ExecOptions, synthesize, to_exec_credential
from cloudctl.sync.identity import (
    canonical_key,
    credentials_equivalent,
    managed_auth_name,
    merge_volatile,
)
from cloudctl.sync.normalize import normalize
from cloudctl.sync.reconcile import (
    CollectionChanges,
    SyncReport,
    reconcile,
    reconcile_collection,
)

__all__ = [
    "CollectionChanges",
    "ExecOptions",
    "SyncReport",
    "canonical_key",
    "credentials_equivalent",
    "managed_auth_name",
    "merge_volatile",
    "normalize",
    "reconcile",
    "reconcile_collection",
    "synthesize",
    "to_exec_credential",
]
