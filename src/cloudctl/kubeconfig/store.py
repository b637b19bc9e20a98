"""Kubeconfig YAML loader, renderer and atomic writer."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path

import yaml

from cloudctl.exceptions import KubeconfigError
from cloudctl.kubeconfig.models import (
    AuthProviderCredential,
    CertCredential,
    Credential,
    Endpoint,
    ExecCredential,
    KubeConfig,
    Profile,
)

logger = logging.getLogger(__name__)

LABELS_EXTENSION = "labels"

_CLUSTER_FIELDS = {"server", "certificate-authority-data", "extensions"}
_CONTEXT_FIELDS = {"cluster", "user", "namespace"}
_EXEC_FIELDS = {
    "command",
    "args",
    "apiVersion",
    "env",
    "interactiveMode",
    "provideClusterInfo",
}
_TOP_LEVEL_FIELDS = {
    "apiVersion",
    "kind",
    "clusters",
    "users",
    "contexts",
    "current-context",
    "preferences",
    "extensions",
}


def default_kubeconfig_path() -> Path:
    """First $KUBECONFIG entry, else ~/.kube/config."""
    env = os.environ.get("KUBECONFIG", "")
    for entry in env.split(os.pathsep):
        if entry.strip():
            return Path(entry.strip()).expanduser()
    return Path.home() / ".kube" / "config"


def labels_annotation(labels: dict[str, str]) -> str:
    """Serialize labels the way they are stored in the labels extension."""
    return json.dumps(labels, sort_keys=True, separators=(",", ":"))


# --- Parsing ---


def _decode_data(value: object, *, field_name: str) -> bytes:
    if value is None or value == "":
        return b""
    if not isinstance(value, str):
        raise KubeconfigError(f"Invalid {field_name}: expected base64 string.")
    try:
        return base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KubeconfigError(f"Invalid base64 in {field_name}: {e}") from e


def _encode_data(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _string_map(raw: object, *, field_name: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise KubeconfigError(f"Invalid {field_name}: expected mapping.")
    return {str(k): "" if v is None else str(v) for k, v in raw.items()}


def _mapping(raw: object, *, field_name: str) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise KubeconfigError(f"Invalid {field_name}: expected mapping.")
    return raw


def parse_cluster(raw: object, *, name: str = "") -> Endpoint:
    data = _mapping(raw, field_name=f"cluster {name!r}")
    extensions: dict[str, object] = {}
    annotation: str | None = None
    raw_extensions = data.get("extensions") or []
    if not isinstance(raw_extensions, list):
        raise KubeconfigError(f"Invalid extensions in cluster {name!r}: expected list.")
    for item in raw_extensions:
        if not isinstance(item, dict) or "name" not in item:
            raise KubeconfigError(f"Invalid extension entry in cluster {name!r}.")
        ext_name = str(item["name"])
        value = item.get("extension")
        if ext_name == LABELS_EXTENSION and isinstance(value, dict):
            annotation = labels_annotation(value)
        else:
            extensions[ext_name] = value
    return Endpoint(
        server=str(data.get("server") or ""),
        certificate_authority_data=_decode_data(
            data.get("certificate-authority-data"),
            field_name=f"cluster {name!r} certificate-authority-data",
        ),
        labels_annotation=annotation,
        extensions=extensions,
        extra={k: v for k, v in data.items() if k not in _CLUSTER_FIELDS},
    )


def _parse_exec(raw: object, *, name: str) -> dict:
    data = _mapping(raw, field_name=f"user {name!r} exec")
    raw_args = data.get("args") or []
    if not isinstance(raw_args, list):
        raise KubeconfigError(f"Invalid exec args in user {name!r}: expected list.")
    env: dict[str, str] = {}
    raw_env = data.get("env") or []
    if not isinstance(raw_env, list):
        raise KubeconfigError(f"Invalid exec env in user {name!r}: expected list.")
    for item in raw_env:
        if isinstance(item, dict) and "name" in item:
            env[str(item["name"])] = str(item.get("value") or "")
    unknown = sorted(k for k in data if k not in _EXEC_FIELDS)
    if unknown:
        logger.debug("Dropping unknown exec fields %s of user %s", unknown, name)
    return {
        "command": str(data.get("command") or ""),
        "args": [str(a) for a in raw_args],
        "api_version": str(data.get("apiVersion") or ""),
        "env": env,
        "interactive_mode": str(data.get("interactiveMode") or ""),
        "provide_cluster_info": bool(data.get("provideClusterInfo", False)),
    }


def parse_user(raw: object, *, name: str = "") -> Credential:
    """Parse a user mapping into the matching credential variant."""
    data = _mapping(raw, field_name=f"user {name!r}")
    if isinstance(data.get("exec"), dict):
        return ExecCredential(
            **_parse_exec(data["exec"], name=name),
            extra={k: v for k, v in data.items() if k != "exec"},
        )
    if isinstance(data.get("auth-provider"), dict):
        provider = data["auth-provider"]
        return AuthProviderCredential(
            provider=str(provider.get("name") or ""),
            config=_string_map(
                provider.get("config"), field_name=f"user {name!r} auth-provider config",
            ),
            extra={k: v for k, v in data.items() if k != "auth-provider"},
        )
    return CertCredential(
        client_certificate_data=_decode_data(
            data.get("client-certificate-data"),
            field_name=f"user {name!r} client-certificate-data",
        ),
        client_key_data=_decode_data(
            data.get("client-key-data"),
            field_name=f"user {name!r} client-key-data",
        ),
        extra={
            k: v for k, v in data.items()
            if k not in {"client-certificate-data", "client-key-data"}
        },
    )


def parse_context(raw: object, *, name: str = "") -> Profile:
    data = _mapping(raw, field_name=f"context {name!r}")
    return Profile(
        cluster=str(data.get("cluster") or ""),
        user=str(data.get("user") or ""),
        namespace=str(data.get("namespace") or ""),
        extra={k: v for k, v in data.items() if k not in _CONTEXT_FIELDS},
    )


def parse_named_list(raw: object, *, kind: str, parser) -> dict:
    """Parse a kubeconfig ``[{name, <kind>: {...}}]`` list into a dict."""
    if raw is None:
        return {}
    if not isinstance(raw, list):
        raise KubeconfigError(f"Invalid {kind}s: expected list.")
    result = {}
    for item in raw:
        if not isinstance(item, dict) or not str(item.get("name") or "").strip():
            raise KubeconfigError(f"Invalid {kind} entry: missing name.")
        name = str(item["name"])
        result[name] = parser(item.get(kind), name=name)
    return result


def parse_kubeconfig(raw: object) -> KubeConfig:
    if raw is None:
        return KubeConfig()
    if not isinstance(raw, dict):
        raise KubeconfigError("Invalid kubeconfig: expected mapping at top level.")
    extensions = raw.get("extensions") or []
    if not isinstance(extensions, list):
        raise KubeconfigError("Invalid kubeconfig extensions: expected list.")
    return KubeConfig(
        clusters=parse_named_list(raw.get("clusters"), kind="cluster", parser=parse_cluster),
        users=parse_named_list(raw.get("users"), kind="user", parser=parse_user),
        contexts=parse_named_list(raw.get("contexts"), kind="context", parser=parse_context),
        current_context=str(raw.get("current-context") or ""),
        preferences=_mapping(raw.get("preferences"), field_name="preferences"),
        extensions=list(extensions),
        extra={k: v for k, v in raw.items() if k not in _TOP_LEVEL_FIELDS},
    )


# --- Rendering ---


def render_cluster(endpoint: Endpoint) -> dict:
    data: dict[str, object] = {"server": endpoint.server}
    if endpoint.certificate_authority_data:
        data["certificate-authority-data"] = _encode_data(
            endpoint.certificate_authority_data
        )
    data.update(endpoint.extra)
    extensions = [
        {"name": name, "extension": endpoint.extensions[name]}
        for name in sorted(endpoint.extensions)
    ]
    if endpoint.labels_annotation is not None:
        extensions.insert(0, {
            "name": LABELS_EXTENSION,
            "extension": json.loads(endpoint.labels_annotation),
        })
    if extensions:
        data["extensions"] = extensions
    return data


def render_user(credential: Credential) -> dict:
    data: dict[str, object] = {}
    if isinstance(credential, ExecCredential):
        exec_data: dict[str, object] = {
            "apiVersion": credential.api_version,
            "command": credential.command,
            "args": list(credential.args),
        }
        if credential.env:
            exec_data["env"] = [
                {"name": k, "value": credential.env[k]} for k in sorted(credential.env)
            ]
        if credential.interactive_mode:
            exec_data["interactiveMode"] = credential.interactive_mode
        if credential.provide_cluster_info:
            exec_data["provideClusterInfo"] = True
        data["exec"] = exec_data
    elif isinstance(credential, AuthProviderCredential):
        data["auth-provider"] = {
            "name": credential.provider,
            "config": {k: credential.config[k] for k in sorted(credential.config)},
        }
    else:
        if credential.client_certificate_data:
            data["client-certificate-data"] = _encode_data(
                credential.client_certificate_data
            )
        if credential.client_key_data:
            data["client-key-data"] = _encode_data(credential.client_key_data)
    data.update(credential.extra)
    return data


def render_context(profile: Profile) -> dict:
    data: dict[str, object] = {"cluster": profile.cluster, "user": profile.user}
    if profile.namespace:
        data["namespace"] = profile.namespace
    data.update(profile.extra)
    return data


def _named_list(entries: dict, kind: str, renderer) -> list[dict]:
    return [{"name": name, kind: renderer(entries[name])} for name in sorted(entries)]


def render_kubeconfig(config: KubeConfig) -> str:
    """Render kubeconfig YAML content."""
    data: dict[str, object] = {
        "apiVersion": "v1",
        "clusters": _named_list(config.clusters, "cluster", render_cluster),
        "contexts": _named_list(config.contexts, "context", render_context),
        "current-context": config.current_context,
        "kind": "Config",
        "preferences": dict(config.preferences),
        "users": _named_list(config.users, "user", render_user),
    }
    if config.extensions:
        data["extensions"] = list(config.extensions)
    data.update(config.extra)
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


# --- File I/O ---


def load_kubeconfig(path: Path) -> KubeConfig:
    """Load one kubeconfig file; a missing or empty file is an empty config."""
    if not path.exists():
        logger.debug("Kubeconfig %s does not exist; starting empty", path)
        return KubeConfig()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise KubeconfigError(f"Cannot read kubeconfig {path}: {e}") from e
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise KubeconfigError(f"Invalid YAML in {path}: {e}") from e
    try:
        return parse_kubeconfig(raw)
    except KubeconfigError as e:
        raise KubeconfigError(f"{path}: {e}") from e


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            os.chmod(tmp_path, 0o600)
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            pass


@contextmanager
def _file_lock(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a+", encoding="utf-8") as handle:
        try:
            import fcntl  # POSIX only
        except ImportError:
            # Best effort on non-POSIX platforms.
            fcntl = None
        if fcntl is not None:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            if fcntl is not None:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def write_kubeconfig(path: Path, config: KubeConfig) -> None:
    """Atomically write a kubeconfig file (mode 0600)."""
    lock_path = path.with_name(f".{path.name}.lock")
    try:
        with _file_lock(lock_path):
            _atomic_write_text(path, render_kubeconfig(config))
    except OSError as e:
        raise KubeconfigError(f"Cannot write kubeconfig {path}: {e}") from e


def mutate_kubeconfig(
    path: Path,
    mutator: Callable[[KubeConfig], KubeConfig],
) -> KubeConfig:
    """Load, transform and save a kubeconfig under one file lock.

    The file is only rewritten when the mutator returns a different config.
    Mutators must return a new object rather than edit ``current`` in place.
    """
    lock_path = path.with_name(f".{path.name}.lock")
    try:
        with _file_lock(lock_path):
            current = load_kubeconfig(path)
            updated = mutator(current)
            if updated != current:
                _atomic_write_text(path, render_kubeconfig(updated))
            return updated
    except OSError as e:
        raise KubeconfigError(f"Cannot write kubeconfig {path}: {e}") from e
