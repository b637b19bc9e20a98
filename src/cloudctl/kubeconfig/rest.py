"""Turn a kubeconfig context into an httpx client for its API server."""

from __future__ import annotations

import json
import logging
import os
import ssl
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import httpx

from cloudctl.exceptions import KubeconfigError, RemoteError
from cloudctl.kubeconfig.models import (
    AuthProviderCredential,
    CertCredential,
    Credential,
    Endpoint,
    ExecCredential,
    KubeConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
_EXEC_TIMEOUT = 300


@dataclass(frozen=True)
class ClusterConnection:
    """Server, TLS settings and credential of one kubeconfig context."""

    context: str
    endpoint: Endpoint
    credential: Credential | None = None

    @classmethod
    def from_kubeconfig(
        cls, config: KubeConfig, context: str | None = None,
    ) -> ClusterConnection:
        name = context or config.current_context
        if not name:
            raise KubeconfigError("No context given and kubeconfig has no current-context.")
        profile = config.contexts.get(name)
        if profile is None:
            raise KubeconfigError(f"Context {name!r} not found in kubeconfig.")
        endpoint = config.clusters.get(profile.cluster)
        if endpoint is None:
            raise KubeconfigError(
                f"Cluster {profile.cluster!r} of context {name!r} not found in kubeconfig."
            )
        if not endpoint.server:
            raise KubeconfigError(f"Cluster {profile.cluster!r} has no server.")
        return cls(
            context=name,
            endpoint=endpoint,
            credential=config.users.get(profile.user) if profile.user else None,
        )

    @property
    def server(self) -> str:
        return self.endpoint.server.rstrip("/")

    def has_auth(self) -> bool:
        """Whether the context carries any credential source."""
        cred = self.credential
        if cred is None:
            return False
        extra = cred.extra
        if extra.get("token") or extra.get("tokenFile"):
            return True
        if extra.get("username") and extra.get("password"):
            return True
        if isinstance(cred, ExecCredential):
            return bool(cred.command)
        if isinstance(cred, AuthProviderCredential):
            return bool(cred.config.get("id-token"))
        if isinstance(cred, CertCredential):
            return bool(cred.client_certificate_data or extra.get("client-certificate"))
        return False

    # --- TLS ---

    def ssl_context(self, *, with_client_cert: bool = True) -> ssl.SSLContext:
        extra = self.endpoint.extra
        ctx = ssl.create_default_context()
        if extra.get("insecure-skip-tls-verify") is True:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        elif self.endpoint.certificate_authority_data:
            ctx.load_verify_locations(
                cadata=self.endpoint.certificate_authority_data.decode("utf-8")
            )
        elif extra.get("certificate-authority"):
            ctx.load_verify_locations(
                cafile=str(Path(str(extra["certificate-authority"])).expanduser())
            )
        if with_client_cert:
            self._load_client_cert(ctx)
        return ctx

    def _load_client_cert(self, ctx: ssl.SSLContext) -> None:
        cred = self.credential
        if not isinstance(cred, CertCredential):
            return
        cert_file = cred.extra.get("client-certificate")
        key_file = cred.extra.get("client-key")
        if cred.client_certificate_data and cred.client_key_data:
            # ssl only loads key material from files.
            with tempfile.TemporaryDirectory(prefix="cloudctl-") as tmp:
                cert_path = Path(tmp) / "client.crt"
                key_path = Path(tmp) / "client.key"
                cert_path.write_bytes(cred.client_certificate_data)
                key_path.write_bytes(cred.client_key_data)
                os.chmod(key_path, 0o600)
                ctx.load_cert_chain(str(cert_path), str(key_path))
        elif cert_file and key_file:
            ctx.load_cert_chain(
                str(Path(str(cert_file)).expanduser()),
                str(Path(str(key_file)).expanduser()),
            )

    # --- Credentials ---

    def bearer_token(self) -> str:
        """Resolve a bearer token, running the exec helper if needed."""
        cred = self.credential
        if cred is None:
            return ""
        token = str(cred.extra.get("token") or "")
        if token:
            return token
        token_file = cred.extra.get("tokenFile")
        if token_file:
            try:
                return Path(str(token_file)).expanduser().read_text(encoding="utf-8").strip()
            except OSError as e:
                raise KubeconfigError(f"Cannot read tokenFile {token_file}: {e}") from e
        if isinstance(cred, AuthProviderCredential):
            return cred.config.get("id-token", "")
        if isinstance(cred, ExecCredential):
            return run_exec_helper(cred, interactive=True)
        return ""

    def _basic_auth(self) -> tuple[str, str] | None:
        cred = self.credential
        if cred is None:
            return None
        username = cred.extra.get("username")
        password = cred.extra.get("password")
        if username and password:
            return str(username), str(password)
        return None

    @contextmanager
    def client(
        self,
        *,
        authenticated: bool = True,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Iterator[httpx.Client]:
        """Yield an httpx client bound to this context's server."""
        headers = {"Accept": "application/json"}
        auth = None
        if authenticated:
            token = self.bearer_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
            else:
                auth = self._basic_auth()
        kwargs: dict = {
            "base_url": self.server,
            "headers": headers,
            "timeout": timeout,
        }
        if auth is not None:
            kwargs["auth"] = auth
        if transport is not None:
            kwargs["transport"] = transport
        else:
            try:
                kwargs["verify"] = self.ssl_context(with_client_cert=authenticated)
            except (ssl.SSLError, OSError) as e:
                raise KubeconfigError(
                    f"Invalid TLS material for context {self.context!r}: {e}"
                ) from e
        with httpx.Client(**kwargs) as client:
            yield client


def run_exec_helper(credential: ExecCredential, *, interactive: bool = False) -> str:
    """Run an exec credential helper and return ``status.token``."""
    exec_info = {
        "apiVersion": credential.api_version,
        "kind": "ExecCredential",
        "spec": {"interactive": interactive},
    }
    env = dict(os.environ)
    env.update(credential.env)
    env["KUBERNETES_EXEC_INFO"] = json.dumps(exec_info)
    logger.debug("Running credential helper %s", credential.command)
    try:
        proc = subprocess.run(
            [credential.command, *credential.args],
            env=env,
            stdout=subprocess.PIPE,
            text=True,
            timeout=_EXEC_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RemoteError(f"Credential helper {credential.command!r} failed: {e}") from e
    if proc.returncode != 0:
        raise RemoteError(
            f"Credential helper {credential.command!r} exited with {proc.returncode}."
        )
    try:
        payload = json.loads(proc.stdout)
    except ValueError as e:
        raise RemoteError(
            f"Credential helper {credential.command!r} returned invalid JSON: {e}"
        ) from e
    status = payload.get("status") if isinstance(payload, dict) else None
    token = status.get("token") if isinstance(status, dict) else None
    if not token:
        raise RemoteError(
            f"Credential helper {credential.command!r} returned no status.token."
        )
    return str(token)
