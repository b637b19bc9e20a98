"""Merge incoming Greenhouse kubeconfigs into a local kubeconfig.

Entries this tool owns live under ``<prefix>:``. Clusters are stored as
``<prefix>:<remote name>``. Users are stored either the same way or, when
identical users are merged, as ``<prefix>:auth-<hash>`` so that clusters
sharing one identity share one login. Contexts keep their remote names
and point at the managed clusters and users.

Entries outside the prefix belong to the user and are never rewritten.
The only exception is a context whose name collides with an incoming
context, or one that references managed entries that are gone.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import TypeVar

from cloudctl.config import DEFAULT_PREFIX
from cloudctl.exceptions import ProfileReferenceError
from cloudctl.kubeconfig.models import (
    Credential,
    Endpoint,
    KubeConfig,
    NormalizedConfig,
    Profile,
)
from cloudctl.sync.exec_args import ExecOptions, to_exec_credential
from cloudctl.sync.identity import (
    canonical_key,
    credentials_equivalent,
    managed_auth_name,
    merge_volatile,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def managed_name(name: str, prefix: str) -> str:
    return f"{prefix}:{name}"


def is_managed(name: str, prefix: str) -> bool:
    return name.startswith(f"{prefix}:")


@dataclass
class CollectionChanges:
    """Names added, updated and removed in one kubeconfig section."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)

    def summary(self) -> str:
        return f"+{len(self.added)} ~{len(self.updated)} -{len(self.removed)}"


@dataclass
class SyncReport:
    clusters: CollectionChanges = field(default_factory=CollectionChanges)
    users: CollectionChanges = field(default_factory=CollectionChanges)
    contexts: CollectionChanges = field(default_factory=CollectionChanges)

    @property
    def changed(self) -> bool:
        return self.clusters.changed or self.users.changed or self.contexts.changed

    def summary(self) -> str:
        return (
            f"clusters {self.clusters.summary()}, "
            f"users {self.users.summary()}, "
            f"contexts {self.contexts.summary()}"
        )


def reconcile_collection(
    local: dict[str, T],
    desired: Mapping[str, T],
    *,
    kind: str,
    is_owned: Callable[[str, T], bool],
    resolve: Callable[[T, T], T],
) -> CollectionChanges:
    """Bring ``local`` in line with ``desired``, in place.

    ``desired`` is keyed by local names. Present entries are replaced by
    ``resolve(incoming, existing)`` when that differs from the existing
    value. Owned entries missing from ``desired`` are deleted afterwards.
    """
    changes = CollectionChanges()
    for name, item in desired.items():
        existing = local.get(name)
        if existing is None:
            local[name] = item
            changes.added.append(name)
            logger.debug("Adding %s %s", kind, name)
            continue
        resolved = resolve(item, existing)
        if resolved != existing:
            local[name] = resolved
            changes.updated.append(name)
            logger.debug("Updating %s %s", kind, name)

    for name in list(local):
        item = local[name]
        if not is_owned(name, item):
            continue
        if name in desired:
            continue
        del local[name]
        changes.removed.append(name)
        logger.debug("Removing %s %s", kind, name)

    changes.added.sort()
    changes.updated.sort()
    changes.removed.sort()
    return changes


def _resolve_endpoint(incoming: Endpoint, existing: Endpoint) -> Endpoint:
    if (
        existing.server != incoming.server
        or existing.certificate_authority_data != incoming.certificate_authority_data
        or existing.labels_annotation != incoming.labels_annotation
    ):
        return incoming
    return existing


def _resolve_changed_user(incoming: Credential, existing: Credential) -> Credential:
    if credentials_equivalent(existing, incoming):
        return existing
    return merge_volatile(incoming, existing)


def _resolve_profile(incoming: Profile, existing: Profile) -> Profile:
    if (
        existing.cluster != incoming.cluster
        or existing.user != incoming.user
        or existing.namespace != incoming.namespace
    ):
        return incoming
    return existing


def _dedup_users(
    users: Mapping[str, Credential], prefix: str,
) -> tuple[dict[str, Credential], dict[str, str]]:
    """Collapse equivalent users onto one hashed name.

    Returns the desired managed users and a map from each remote user name
    to the managed name it resolves to. Every user of an equivalence group
    is written to the shared name in turn, so the last one declared is
    the one stored.
    """
    desired: dict[str, Credential] = {}
    refs: dict[str, str] = {}
    by_key: dict[str, str] = {}
    for name, credential in users.items():
        key = canonical_key(credential)
        target = by_key.get(key)
        if target is None:
            # Same identity declared with e.g. a different scope order.
            for candidate_name, candidate in desired.items():
                if credentials_equivalent(credential, candidate):
                    target = candidate_name
                    break
        if target is None:
            target = managed_auth_name(key, prefix)
        desired[target] = credential
        by_key[key] = target
        refs[name] = target
    return desired, refs


def reconcile(
    local: KubeConfig,
    incoming: NormalizedConfig,
    *,
    prefix: str = DEFAULT_PREFIX,
    dedup: bool = True,
    exec_options: ExecOptions | None = None,
) -> SyncReport:
    """Merge ``incoming`` into ``local`` in place.

    Raises ProfileReferenceError when an incoming context names a user
    missing from ``incoming``. Clusters and users have been merged by then;
    callers wanting all-or-nothing semantics should pass a copy.
    """
    report = SyncReport()

    def owned(name: str, _item: object) -> bool:
        return is_managed(name, prefix)

    report.clusters = reconcile_collection(
        local.clusters,
        {managed_name(name, prefix): ep for name, ep in incoming.clusters.items()},
        kind="cluster",
        is_owned=owned,
        resolve=_resolve_endpoint,
    )

    users = dict(incoming.users)
    if exec_options is not None:
        users = {
            name: to_exec_credential(credential, exec_options)
            for name, credential in users.items()
        }
    if dedup:
        desired_users, user_refs = _dedup_users(users, prefix)
        resolve_user = merge_volatile
    else:
        desired_users = {managed_name(name, prefix): c for name, c in users.items()}
        user_refs = {name: managed_name(name, prefix) for name in users}
        resolve_user = _resolve_changed_user
    report.users = reconcile_collection(
        local.users,
        desired_users,
        kind="user",
        is_owned=owned,
        resolve=resolve_user,
    )

    desired_contexts: dict[str, Profile] = {}
    for name, profile in incoming.contexts.items():
        if profile.user not in user_refs:
            raise ProfileReferenceError(name, profile.user)
        desired_contexts[name] = replace(
            profile,
            cluster=managed_name(profile.cluster, prefix),
            user=user_refs[profile.user],
        )

    def context_owned(_name: str, profile: Profile) -> bool:
        return is_managed(profile.cluster, prefix) or is_managed(profile.user, prefix)

    report.contexts = reconcile_collection(
        local.contexts,
        desired_contexts,
        kind="context",
        is_owned=context_owned,
        resolve=_resolve_profile,
    )
    return report
