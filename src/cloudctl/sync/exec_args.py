"""Argument synthesis for the kubelogin ``get-token`` credential helper.

Legacy ``auth-provider: oidc`` users carry their settings as a flat string
map. kubectl no longer ships the oidc auth provider, so those users can be
rewritten into ``exec`` users that invoke kubelogin with equivalent flags.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from cloudctl.config import (
    DEFAULT_EXEC_API_VERSION,
    DEFAULT_HELPER_COMMAND,
    DEFAULT_TOKEN_CACHE_DIR,
)
from cloudctl.kubeconfig.models import (
    AuthProviderCredential,
    Credential,
    ExecCredential,
)

SUBCOMMAND = "get-token"

# auth-provider config keys
ISSUER_URL = "idp-issuer-url"
CLIENT_ID = "client-id"
CLIENT_SECRET = "client-secret"
EXTRA_PARAMS = "auth-request-extra-params"
EXTRA_SCOPES = "extra-scopes"
ID_TOKEN = "id-token"
REFRESH_TOKEN = "refresh-token"

# kubelogin flags
ISSUER_URL_FLAG = "--oidc-issuer-url"
CLIENT_ID_FLAG = "--oidc-client-id"
CLIENT_SECRET_FLAG = "--oidc-client-secret"
EXTRA_SCOPE_FLAG = "--oidc-extra-scope"
EXTRA_PARAMS_FLAG = "--oidc-auth-request-extra-params"
TOKEN_CACHE_DIR_FLAG = "--token-cache-dir"
ID_TOKEN_FLAG = "--id-token"
REFRESH_TOKEN_FLAG = "--refresh-token"

CONNECTOR_ID = "connector_id"

# Single-valued parameters in the order their flags are emitted.
_SCALAR_FLAGS: tuple[tuple[str, str], ...] = (
    (ISSUER_URL, ISSUER_URL_FLAG),
    (CLIENT_ID, CLIENT_ID_FLAG),
    (CLIENT_SECRET, CLIENT_SECRET_FLAG),
)


def default_cache_base_dir() -> str:
    return str(Path(DEFAULT_TOKEN_CACHE_DIR).expanduser())


def split_scopes(raw: str) -> list[str]:
    """Split a comma-separated scope list, trimming blanks."""
    return [scope.strip() for scope in str(raw or "").split(",") if scope.strip()]


def connector_id(extra_params: str) -> str | None:
    """Return the ``connector_id`` value in a ``k=v,k=v`` string, if any."""
    for part in str(extra_params or "").split(","):
        key, sep, value = part.partition("=")
        if sep and key.strip() == CONNECTOR_ID and value.strip():
            return value.strip()
    return None


def token_cache_dir(extra_params: str, cache_base_dir: str) -> str:
    """Token caches are isolated per identity-provider connector."""
    connector = connector_id(extra_params)
    if connector is None:
        return cache_base_dir
    return f"{cache_base_dir.rstrip('/')}/{connector}"


def synthesize(
    params: Mapping[str, str],
    extra_args: Sequence[str] | None = None,
    cache_base_dir: str | None = None,
) -> list[str]:
    """Build the ``get-token`` argument vector from auth-provider params.

    Flags follow a fixed order regardless of mapping order. Parameters
    that are missing or empty produce no flag. ``extra_args`` are
    appended last, verbatim.
    """
    base_dir = cache_base_dir if cache_base_dir is not None else default_cache_base_dir()
    args = [SUBCOMMAND]
    for key, flag in _SCALAR_FLAGS:
        value = str(params.get(key) or "")
        if value:
            args.append(f"{flag}={value}")
    for scope in split_scopes(params.get(EXTRA_SCOPES) or ""):
        args.append(f"{EXTRA_SCOPE_FLAG}={scope}")
    extra_params = str(params.get(EXTRA_PARAMS) or "")
    if extra_params:
        args.append(f"{EXTRA_PARAMS_FLAG}={extra_params}")
    args.append(f"{TOKEN_CACHE_DIR_FLAG}={token_cache_dir(extra_params, base_dir)}")
    args.extend(extra_args or ())
    return args


@dataclass(frozen=True)
class ExecOptions:
    """How oidc auth-provider users are rewritten into exec users."""

    command: str = DEFAULT_HELPER_COMMAND
    api_version: str = DEFAULT_EXEC_API_VERSION
    cache_base_dir: str = field(default_factory=default_cache_base_dir)
    extra_args: tuple[str, ...] = ()
    interactive_mode: str = "IfAvailable"


def to_exec_credential(credential: Credential, options: ExecOptions) -> Credential:
    """Rewrite an oidc auth-provider user into an exec user.

    Any other credential is returned unchanged.
    """
    if not isinstance(credential, AuthProviderCredential):
        return credential
    if credential.provider != "oidc":
        return credential
    return ExecCredential(
        command=options.command,
        args=synthesize(credential.config, options.extra_args, options.cache_base_dir),
        api_version=options.api_version,
        interactive_mode=options.interactive_mode,
        extra=dict(credential.extra),
    )
