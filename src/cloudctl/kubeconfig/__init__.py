"""Kubeconfig model and file persistence."""

from cloudctl.kubeconfig.models import (
    AuthProviderCredential,
    CertCredential,
    Credential,
    CredentialKind,
    Endpoint,
    ExecCredential,
    KubeConfig,
    NormalizedConfig,
    Profile,
)
from cloudctl.kubeconfig.store import (
    default_kubeconfig_path,
    load_kubeconfig,
    mutate_kubeconfig,
    render_kubeconfig,
    write_kubeconfig,
)

__all__ = [
    "AuthProviderCredential",
    "CertCredential",
    "Credential",
    "CredentialKind",
    "Endpoint",
    "ExecCredential",
    "KubeConfig",
    "NormalizedConfig",
    "Profile",
    "default_kubeconfig_path",
    "load_kubeconfig",
    "mutate_kubeconfig",
    "render_kubeconfig",
    "write_kubeconfig",
]
