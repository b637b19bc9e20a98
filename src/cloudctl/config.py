"""Configuration loader for cloudctl.

Loads from cloudctl.toml with sensible defaults when file is absent.
Configuration is loaded once at startup and passed down explicitly;
nothing in the sync engine reads process-wide state.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from cloudctl.exceptions import ConfigError

DEFAULT_PREFIX = "cloudctl"
DEFAULT_HELPER_COMMAND = "kubelogin"
DEFAULT_EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"
DEFAULT_TOKEN_CACHE_DIR = "~/.kube/cache/oidc-login"

__all__ = [
    "Config",
    "ConfigError",
    "ExecPluginConfig",
    "GreenhouseConfig",
    "LoggingConfig",
    "SyncConfig",
    "default_config_candidates",
    "load_config",
]


@dataclass(frozen=True)
class GreenhouseConfig:
    """Where to find the central Greenhouse cluster."""

    kubeconfig: str = ""  # empty = $KUBECONFIG or ~/.kube/config
    context: str = ""  # empty = current-context of that file
    namespace: str = ""  # Greenhouse organization


@dataclass(frozen=True)
class SyncConfig:
    kubeconfig: str = ""  # target file; empty = $KUBECONFIG or ~/.kube/config
    prefix: str = DEFAULT_PREFIX
    merge_identical_users: bool = True


@dataclass(frozen=True)
class ExecPluginConfig:
    """Rewrite oidc auth-provider users into kubelogin exec users."""

    enabled: bool = False
    command: str = DEFAULT_HELPER_COMMAND
    api_version: str = DEFAULT_EXEC_API_VERSION
    cache_dir: str = DEFAULT_TOKEN_CACHE_DIR
    extra_args: list[str] = field(default_factory=list)

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "WARNING"


@dataclass(frozen=True)
class Config:
    """Top-level cloudctl configuration."""

    greenhouse: GreenhouseConfig = field(default_factory=GreenhouseConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    exec_plugin: ExecPluginConfig = field(default_factory=ExecPluginConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def default_config_candidates() -> list[Path]:
    return [
        Path.cwd() / "cloudctl.toml",
        Path.home() / ".cloudctl" / "cloudctl.toml",
    ]


def _section(raw: dict, name: str, path: Path) -> dict:
    data = raw.get(name, {})
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid [{name}] section in {path}: expected table.")
    return data


def _str(data: dict, key: str, default: str, *, section: str, path: Path) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ConfigError(
            f"Invalid {section}.{key} in {path}: expected string, got {type(value).__name__}."
        )
    return value.strip()


def _bool(data: dict, key: str, default: bool, *, section: str, path: Path) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(
            f"Invalid {section}.{key} in {path}: expected boolean."
        )
    return value


def load_config(path: Path | None = None) -> Config:
    """Load configuration from a TOML file.

    If path is None, searches for cloudctl.toml in current directory then
    ~/.cloudctl/. Returns default config if no file is found.
    """
    if path is None:
        for candidate in default_config_candidates():
            if candidate.exists():
                path = candidate
                break

    if path is None or not path.exists():
        return Config()

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    gh_data = _section(raw, "greenhouse", path)
    greenhouse = GreenhouseConfig(
        kubeconfig=_str(gh_data, "kubeconfig", "", section="greenhouse", path=path),
        context=_str(gh_data, "context", "", section="greenhouse", path=path),
        namespace=_str(gh_data, "namespace", "", section="greenhouse", path=path),
    )

    sync_data = _section(raw, "sync", path)
    prefix = _str(sync_data, "prefix", DEFAULT_PREFIX, section="sync", path=path)
    if not prefix or ":" in prefix:
        raise ConfigError(
            f"Invalid sync.prefix {prefix!r} in {path}: must be non-empty "
            "and must not contain ':'."
        )
    sync = SyncConfig(
        kubeconfig=_str(sync_data, "kubeconfig", "", section="sync", path=path),
        prefix=prefix,
        merge_identical_users=_bool(
            sync_data, "merge_identical_users", True, section="sync", path=path,
        ),
    )

    exec_data = _section(raw, "exec_plugin", path)
    raw_args = exec_data.get("extra_args", [])
    if not isinstance(raw_args, list):
        raise ConfigError(f"Invalid exec_plugin.extra_args in {path}: expected list.")
    exec_plugin = ExecPluginConfig(
        enabled=_bool(exec_data, "enabled", False, section="exec_plugin", path=path),
        command=_str(
            exec_data, "command", DEFAULT_HELPER_COMMAND,
            section="exec_plugin", path=path,
        ) or DEFAULT_HELPER_COMMAND,
        api_version=_str(
            exec_data, "api_version", DEFAULT_EXEC_API_VERSION,
            section="exec_plugin", path=path,
        ) or DEFAULT_EXEC_API_VERSION,
        cache_dir=_str(
            exec_data, "cache_dir", DEFAULT_TOKEN_CACHE_DIR,
            section="exec_plugin", path=path,
        ) or DEFAULT_TOKEN_CACHE_DIR,
        extra_args=[str(a) for a in raw_args],
    )

    log_data = _section(raw, "logging", path)
    logging_cfg = LoggingConfig(
        level=_str(log_data, "level", "WARNING", section="logging", path=path).upper()
        or "WARNING",
    )

    return Config(
        greenhouse=greenhouse,
        sync=sync,
        exec_plugin=exec_plugin,
        logging=logging_cfg,
    )
