"""End-to-end sync: fetch records, reconcile, save."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from cloudctl.config import DEFAULT_PREFIX, ExecPluginConfig
from cloudctl.greenhouse.client import GreenhouseClient
from cloudctl.greenhouse.records import AccessRecord
from cloudctl.kubeconfig.models import KubeConfig
from cloudctl.kubeconfig.store import load_kubeconfig, mutate_kubeconfig
from cloudctl.sync.exec_args import ExecOptions
from cloudctl.sync.normalize import normalize
from cloudctl.sync.reconcile import SyncReport, reconcile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncOptions:
    prefix: str = DEFAULT_PREFIX
    dedup: bool = True
    exec_options: ExecOptions | None = None


def exec_options_from_config(
    cfg: ExecPluginConfig, extra_args: Sequence[str] = (),
) -> ExecOptions | None:
    """ExecOptions for an enabled [exec_plugin] section, else None."""
    if not cfg.enabled:
        return None
    return ExecOptions(
        command=cfg.command,
        api_version=cfg.api_version,
        cache_base_dir=str(cfg.cache_path),
        extra_args=tuple(cfg.extra_args) + tuple(extra_args),
    )


def sync_records(
    local: KubeConfig,
    records: Iterable[AccessRecord],
    options: SyncOptions,
) -> tuple[KubeConfig, SyncReport]:
    """Reconcile ``records`` into a copy of ``local``.

    ``local`` is left untouched, so a failed pass never leaves a
    half-merged config behind.
    """
    working = copy.deepcopy(local)
    report = reconcile(
        working,
        normalize(records),
        prefix=options.prefix,
        dedup=options.dedup,
        exec_options=options.exec_options,
    )
    return working, report


def run_sync(
    client: GreenhouseClient,
    *,
    namespace: str,
    target: Path,
    options: SyncOptions,
    name: str | None = None,
    dry_run: bool = False,
) -> SyncReport | None:
    """Fetch ClusterKubeconfigs and merge them into ``target``.

    Returns None when there was nothing to sync.
    """
    records = client.fetch(namespace, name)
    if not records:
        logger.info("No ClusterKubeconfigs found to sync.")
        return None

    if dry_run:
        _, report = sync_records(load_kubeconfig(target), records, options)
        logger.info("Dry run, %s not written: %s", target, report.summary())
        return report

    result: list[SyncReport] = []

    def _mutate(current: KubeConfig) -> KubeConfig:
        updated, report = sync_records(current, records, options)
        result.append(report)
        return updated

    mutate_kubeconfig(target, _mutate)
    report = result[0]
    logger.info("Synced %d ClusterKubeconfigs into %s: %s", len(records), target, report.summary())
    return report
