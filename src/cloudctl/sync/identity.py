"""Credential identity: canonical keys, equivalence and volatile fields.

Two users describe the same real-world identity when their stable fields
match. Short-lived tokens (``id-token``, ``refresh-token``) are volatile:
they never take part in identity and are carried over from the local
kubeconfig when a user is refreshed from the remote side.

Nothing here raises on malformed input. Missing parameters count as empty
strings, and exec arguments that do not look like known flags are left out
of the key.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from cloudctl.kubeconfig.models import (
    AuthProviderCredential,
    CertCredential,
    Credential,
    CredentialKind,
    ExecCredential,
)
from cloudctl.sync.exec_args import (
    CLIENT_ID,
    CLIENT_ID_FLAG,
    CLIENT_SECRET,
    CLIENT_SECRET_FLAG,
    EXTRA_PARAMS,
    EXTRA_PARAMS_FLAG,
    EXTRA_SCOPE_FLAG,
    EXTRA_SCOPES,
    ID_TOKEN,
    ID_TOKEN_FLAG,
    ISSUER_URL,
    ISSUER_URL_FLAG,
    REFRESH_TOKEN,
    REFRESH_TOKEN_FLAG,
    split_scopes,
)

VOLATILE_KEYS = (ID_TOKEN, REFRESH_TOKEN)

_FLAG_PARAMS = {
    ISSUER_URL_FLAG: ISSUER_URL,
    CLIENT_ID_FLAG: CLIENT_ID,
    CLIENT_SECRET_FLAG: CLIENT_SECRET,
    EXTRA_PARAMS_FLAG: EXTRA_PARAMS,
}
_VOLATILE_FLAGS = {ID_TOKEN_FLAG, REFRESH_TOKEN_FLAG}
_VALUE_FLAGS = set(_FLAG_PARAMS) | _VOLATILE_FLAGS | {EXTRA_SCOPE_FLAG}


def filter_volatile(config: Mapping[str, str]) -> dict[str, str]:
    """Copy of an auth-provider config without volatile token fields."""
    return {k: v for k, v in config.items() if k not in VOLATILE_KEYS}


def _param_key(params: Mapping[str, str], extra_scopes: str) -> str:
    return (
        f"issuer:{params.get(ISSUER_URL, '')};"
        f"client-id:{params.get(CLIENT_ID, '')};"
        f"client-secret:{params.get(CLIENT_SECRET, '')};"
        f"auth-request-extra-params:{params.get(EXTRA_PARAMS, '')};"
        f"extra-scopes:{extra_scopes}"
    )


@dataclass
class _ExecArgs:
    params: dict[str, str] = field(default_factory=dict)
    scopes: list[str] = field(default_factory=list)
    rest: list[str] = field(default_factory=list)
    # Arguments without the token flags, in their original form.
    stable: list[str] = field(default_factory=list)
    # Token flag -> the argument(s) that carried it, as written.
    volatile: dict[str, list[str]] = field(default_factory=dict)


def _parse_exec_args(args: Sequence[str]) -> _ExecArgs:
    """Split kubelogin args into stable params, scopes and everything else.

    Accepts ``--flag=value`` and ``--flag value``. Token flags are kept
    apart in ``volatile`` and never reach the params.
    """
    parsed = _ExecArgs()
    i = 0
    while i < len(args):
        start = i
        arg = str(args[i])
        flag, sep, value = arg.partition("=")
        if not sep and flag in _VALUE_FLAGS and i + 1 < len(args):
            value = str(args[i + 1])
            sep = "="
            i += 1
        i += 1
        written = [str(a) for a in args[start:i]]
        if sep and flag in _VOLATILE_FLAGS:
            parsed.volatile[flag] = written
            continue
        parsed.stable.extend(written)
        if not sep or flag not in _VALUE_FLAGS:
            parsed.rest.append(arg)
        elif flag == EXTRA_SCOPE_FLAG:
            parsed.scopes.extend(split_scopes(value))
        elif flag in _FLAG_PARAMS:
            parsed.params[_FLAG_PARAMS[flag]] = value
    return parsed


# --- Canonical keys ---


def _cert_key(credential: CertCredential) -> str:
    h = hashlib.sha256()
    h.update(credential.client_certificate_data)
    h.update(credential.client_key_data)
    # token, tokenFile, basic auth and cert file paths live in extra.
    if credential.extra:
        h.update(json.dumps(credential.extra, sort_keys=True, default=str).encode("utf-8"))
    return f"cert:{h.hexdigest()}"


def _auth_provider_key(credential: AuthProviderCredential) -> str:
    return _param_key(credential.config, credential.config.get(EXTRA_SCOPES, ""))


def _exec_key(credential: ExecCredential) -> str:
    parsed = _parse_exec_args(credential.args)
    return (
        f"exec:{credential.command};api-version:{credential.api_version};"
        + _param_key(parsed.params, ",".join(parsed.scopes))
    )


_KEYS: dict[CredentialKind, Callable[..., str]] = {
    CredentialKind.CERT: _cert_key,
    CredentialKind.AUTH_PROVIDER: _auth_provider_key,
    CredentialKind.EXEC: _exec_key,
}


def canonical_key(credential: Credential) -> str:
    """Stable identity string for a user, excluding volatile fields."""
    return _KEYS[credential.kind](credential)


def managed_auth_name(key: str, prefix: str) -> str:
    """Deduplicated user name for a canonical key."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}:auth-{digest}"


# --- Equivalence ---


def _stable_config(config: Mapping[str, str]) -> dict[str, object]:
    stable: dict[str, object] = dict(filter_volatile(config))
    if EXTRA_SCOPES in stable:
        stable[EXTRA_SCOPES] = frozenset(split_scopes(config[EXTRA_SCOPES]))
    return stable


def _stable_args(args: Sequence[str]) -> tuple:
    parsed = _parse_exec_args(args)
    return parsed.params, frozenset(parsed.scopes), parsed.rest


def _cert_equivalent(a: CertCredential, b: CertCredential) -> bool:
    return (
        a.client_certificate_data == b.client_certificate_data
        and a.client_key_data == b.client_key_data
        and a.extra == b.extra
    )


def _auth_provider_equivalent(
    a: AuthProviderCredential, b: AuthProviderCredential,
) -> bool:
    return (
        a.provider == b.provider
        and a.extra == b.extra
        and _stable_config(a.config) == _stable_config(b.config)
    )


def _exec_equivalent(a: ExecCredential, b: ExecCredential) -> bool:
    return (
        a.command == b.command
        and a.api_version == b.api_version
        and a.env == b.env
        and a.interactive_mode == b.interactive_mode
        and a.provide_cluster_info == b.provide_cluster_info
        and a.extra == b.extra
        and _stable_args(a.args) == _stable_args(b.args)
    )


_EQUIVALENCE: dict[CredentialKind, Callable[..., bool]] = {
    CredentialKind.CERT: _cert_equivalent,
    CredentialKind.AUTH_PROVIDER: _auth_provider_equivalent,
    CredentialKind.EXEC: _exec_equivalent,
}


def credentials_equivalent(a: Credential, b: Credential) -> bool:
    """True when both users are the same variant with equal stable fields.

    Scope lists compare as sets; volatile fields are never compared.
    """
    if a.kind != b.kind:
        return False
    return _EQUIVALENCE[a.kind](a, b)


def merge_volatile(incoming: Credential, existing: Credential | None) -> Credential:
    """Return ``incoming`` carrying the volatile fields of ``existing``.

    Existing tokens win over incoming ones. For exec users the tokens are
    the ``--id-token``/``--refresh-token`` arguments, appended after the
    incoming arguments in the form they were written locally.
    """
    if isinstance(incoming, ExecCredential) and isinstance(existing, ExecCredential):
        return _merge_volatile_args(incoming, existing)
    if not isinstance(incoming, AuthProviderCredential):
        return incoming
    if not isinstance(existing, AuthProviderCredential):
        return incoming
    preserved = {k: existing.config[k] for k in VOLATILE_KEYS if k in existing.config}
    if not preserved:
        return incoming
    return replace(incoming, config={**incoming.config, **preserved})


def _merge_volatile_args(incoming: ExecCredential, existing: ExecCredential) -> ExecCredential:
    carried = _parse_exec_args(existing.args).volatile
    if not carried:
        return incoming
    parsed = _parse_exec_args(incoming.args)
    args = list(parsed.stable)
    for flag, written in parsed.volatile.items():
        if flag not in carried:
            args.extend(written)
    for written in carried.values():
        args.extend(written)
    if args == list(incoming.args):
        return incoming
    return replace(incoming, args=args)
