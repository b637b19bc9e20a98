"""Shared test fixtures for cloudctl."""

from __future__ import annotations

from pathlib import Path

import pytest

from cloudctl.kubeconfig.models import AuthProviderCredential


def _oidc(
    *,
    client_id: str = "cid",
    client_secret: str = "csec",
    issuer: str = "https://dex.example.com",
    scopes: str = "groups,offline_access",
    extra_params: str = "",
    id_token: str | None = None,
    refresh_token: str | None = None,
) -> AuthProviderCredential:
    config = {
        "client-id": client_id,
        "client-secret": client_secret,
        "idp-issuer-url": issuer,
        "extra-scopes": scopes,
    }
    if extra_params:
        config["auth-request-extra-params"] = extra_params
    if id_token is not None:
        config["id-token"] = id_token
    if refresh_token is not None:
        config["refresh-token"] = refresh_token
    return AuthProviderCredential(provider="oidc", config=config)


@pytest.fixture
def make_oidc():
    """Factory for oidc auth-provider users."""
    return _oidc


@pytest.fixture
def kubeconfig_path(tmp_path: Path) -> Path:
    """Path for a kubeconfig file inside a temp directory."""
    return tmp_path / ".kube" / "config"
