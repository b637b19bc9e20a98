"""Kubernetes server version probe."""

from __future__ import annotations

import logging

import httpx

from cloudctl.exceptions import RemoteError
from cloudctl.kubeconfig.rest import ClusterConnection

logger = logging.getLogger(__name__)


def clean_version(git_version: str) -> str:
    """``v1.29.3-gke.1+abc`` -> ``1.29.3``."""
    clean = str(git_version or "").split("-", 1)[0]
    clean = clean.split("+", 1)[0]
    return clean.removeprefix("v")


def _fetch_version(
    connection: ClusterConnection,
    *,
    authenticated: bool,
    transport: httpx.BaseTransport | None,
) -> dict:
    with connection.client(authenticated=authenticated, transport=transport) as client:
        r = client.get("/version")
    if r.status_code != 200:
        raise RemoteError(f"unexpected HTTP status: {r.status_code}")
    try:
        payload = r.json()
    except ValueError as e:
        raise RemoteError(f"invalid /version response: {e}") from e
    if not isinstance(payload, dict) or "gitVersion" not in payload:
        raise RemoteError("invalid /version response: missing gitVersion")
    return payload


def probe_cluster_version(
    connection: ClusterConnection,
    *,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Return the cleaned server version of a cluster.

    Many API servers answer /version anonymously, so that is tried first.
    Only when it fails is the context's credential used.
    """
    try:
        info = _fetch_version(connection, authenticated=False, transport=transport)
    except (httpx.HTTPError, RemoteError) as e:
        logger.debug("Unauthenticated /version failed for %s: %s", connection.context, e)
        if not connection.has_auth():
            raise RemoteError(
                "no authentication methods found in your kubeconfig. "
                "please authenticate (`kubelogin`, etc.) and try again"
            ) from e
        try:
            info = _fetch_version(connection, authenticated=True, transport=transport)
        except (httpx.HTTPError, RemoteError) as auth_error:
            raise RemoteError(
                f"authenticated version fetch failed: {auth_error}"
            ) from auth_error
    return clean_version(str(info["gitVersion"]))
