"""In-memory kubeconfig model.

Clusters, users and contexts are kept in name-keyed dicts. Entry values
are frozen dataclasses; the sync engine replaces entries rather than
mutating them. Fields this tool does not interpret are kept verbatim in
``extra`` so entries owned by the user survive a load/save cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import ClassVar, Union


class CredentialKind(StrEnum):
    CERT = "cert"
    AUTH_PROVIDER = "auth-provider"
    EXEC = "exec"


@dataclass(frozen=True)
class Endpoint:
    """A kubeconfig cluster entry."""

    server: str = ""
    certificate_authority_data: bytes = b""
    # Compact JSON of the owning record's labels, stored as the "labels"
    # extension. Compared byte-for-byte during merge.
    labels_annotation: str | None = None
    extensions: dict[str, object] = field(default_factory=dict)
    extra: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class CertCredential:
    """Client certificate user. Also covers users with no recognised auth."""

    client_certificate_data: bytes = b""
    client_key_data: bytes = b""
    extra: dict[str, object] = field(default_factory=dict)

    kind: ClassVar[CredentialKind] = CredentialKind.CERT


@dataclass(frozen=True)
class AuthProviderCredential:
    """Legacy ``auth-provider`` user (typically ``oidc``)."""

    provider: str = ""
    config: dict[str, str] = field(default_factory=dict)
    extra: dict[str, object] = field(default_factory=dict)

    kind: ClassVar[CredentialKind] = CredentialKind.AUTH_PROVIDER


@dataclass(frozen=True)
class ExecCredential:
    """User whose token is obtained by running an external helper."""

    command: str = ""
    args: list[str] = field(default_factory=list)
    api_version: str = ""
    env: dict[str, str] = field(default_factory=dict)
    interactive_mode: str = ""
    provide_cluster_info: bool = False
    extra: dict[str, object] = field(default_factory=dict)

    kind: ClassVar[CredentialKind] = CredentialKind.EXEC


Credential = Union[CertCredential, AuthProviderCredential, ExecCredential]


@dataclass(frozen=True)
class Profile:
    """A kubeconfig context: binds a cluster and a user."""

    cluster: str = ""
    user: str = ""
    namespace: str = ""
    extra: dict[str, object] = field(default_factory=dict)


@dataclass
class KubeConfig:
    """A whole kubeconfig file."""

    clusters: dict[str, Endpoint] = field(default_factory=dict)
    users: dict[str, Credential] = field(default_factory=dict)
    contexts: dict[str, Profile] = field(default_factory=dict)
    current_context: str = ""
    preferences: dict[str, object] = field(default_factory=dict)
    extensions: list[object] = field(default_factory=list)
    extra: dict[str, object] = field(default_factory=dict)


@dataclass
class NormalizedConfig:
    """Flattened remote records, keyed by unprefixed remote names."""

    clusters: dict[str, Endpoint] = field(default_factory=dict)
    users: dict[str, Credential] = field(default_factory=dict)
    contexts: dict[str, Profile] = field(default_factory=dict)
