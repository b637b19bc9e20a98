"""Read ClusterKubeconfig resources from the Greenhouse cluster."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from cloudctl.exceptions import RemoteError
from cloudctl.greenhouse.records import (
    API_GROUP,
    API_VERSION,
    RESOURCE,
    AccessRecord,
    parse_access_record,
)
from cloudctl.kubeconfig.rest import ClusterConnection

logger = logging.getLogger(__name__)


class GreenhouseClient:
    """Thin client for the ClusterKubeconfig API of one namespace."""

    def __init__(
        self,
        connection: ClusterConnection,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self._connection = connection
        self._transport = transport

    @staticmethod
    def _collection_path(namespace: str) -> str:
        return (
            f"/apis/{API_GROUP}/{API_VERSION}/namespaces/"
            f"{quote(namespace, safe='')}/{RESOURCE}"
        )

    def _get_json(
        self, path: str, *, what: str, params: dict[str, str] | None = None,
    ) -> dict:
        with self._connection.client(transport=self._transport) as client:
            try:
                r = client.get(path, params=params)
            except httpx.HTTPError as e:
                raise RemoteError(f"Failed to fetch {what}: {e}") from e
        if r.status_code != 200:
            raise RemoteError(f"Failed to fetch {what}: HTTP {r.status_code} {r.text.strip()}")
        try:
            payload = r.json()
        except ValueError as e:
            raise RemoteError(f"Failed to decode {what}: {e}") from e
        if not isinstance(payload, dict):
            raise RemoteError(f"Failed to decode {what}: expected JSON object.")
        return payload

    def get_cluster_kubeconfig(self, namespace: str, name: str) -> AccessRecord:
        path = f"{self._collection_path(namespace)}/{quote(name, safe='')}"
        payload = self._get_json(path, what=f"ClusterKubeconfig {name!r}")
        return parse_access_record(payload)

    def list_cluster_kubeconfigs(self, namespace: str) -> list[AccessRecord]:
        records: list[AccessRecord] = []
        path = self._collection_path(namespace)
        params: dict[str, str] = {}
        while True:
            payload = self._get_json(path, what="ClusterKubeconfigs", params=params)
            items = payload.get("items") or []
            if not isinstance(items, list):
                raise RemoteError("Failed to decode ClusterKubeconfigs: items is not a list.")
            records.extend(parse_access_record(item) for item in items)
            token = (payload.get("metadata") or {}).get("continue")
            if not token:
                break
            params["continue"] = str(token)
        logger.debug("Fetched %d ClusterKubeconfigs from %s", len(records), namespace)
        return records

    def fetch(self, namespace: str, name: str | None = None) -> list[AccessRecord]:
        """One record when ``name`` is given, otherwise the whole namespace."""
        if name:
            return [self.get_cluster_kubeconfig(namespace, name)]
        return self.list_cluster_kubeconfigs(namespace)
