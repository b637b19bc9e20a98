"""ClusterKubeconfig resources as served by the Greenhouse API."""

from __future__ import annotations

from dataclasses import dataclass, field

from cloudctl.exceptions import KubeconfigError, RecordError
from cloudctl.kubeconfig.models import Credential, Endpoint, Profile
from cloudctl.kubeconfig.store import (
    parse_cluster,
    parse_context,
    parse_named_list,
    parse_user,
)

API_GROUP = "greenhouse.sap"
API_VERSION = "v1alpha1"
RESOURCE = "clusterkubeconfigs"


@dataclass(frozen=True)
class AccessRecord:
    """One ClusterKubeconfig: clusters, users and contexts of a remote cluster."""

    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    endpoints: dict[str, Endpoint] = field(default_factory=dict)
    credentials: dict[str, Credential] = field(default_factory=dict)
    profiles: dict[str, Profile] = field(default_factory=dict)


def parse_access_record(resource: object) -> AccessRecord:
    """Parse one ClusterKubeconfig JSON object."""
    if not isinstance(resource, dict):
        raise RecordError("Invalid ClusterKubeconfig: expected object.")
    metadata = resource.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise RecordError("Invalid ClusterKubeconfig metadata: expected object.")
    name = str(metadata.get("name") or "").strip()
    if not name:
        raise RecordError("ClusterKubeconfig is missing metadata.name.")

    raw_labels = metadata.get("labels") or {}
    if not isinstance(raw_labels, dict):
        raise RecordError(f"Invalid labels on ClusterKubeconfig {name}: expected object.")
    labels = {str(k): str(v) for k, v in raw_labels.items()}

    spec = resource.get("spec") or {}
    kubeconfig = spec.get("kubeconfig") if isinstance(spec, dict) else None
    if kubeconfig is None:
        kubeconfig = {}
    if not isinstance(kubeconfig, dict):
        raise RecordError(f"Invalid spec.kubeconfig on ClusterKubeconfig {name}.")

    try:
        return AccessRecord(
            name=name,
            namespace=str(metadata.get("namespace") or ""),
            labels=labels,
            endpoints=parse_named_list(
                kubeconfig.get("clusters"), kind="cluster", parser=parse_cluster,
            ),
            credentials=parse_named_list(
                kubeconfig.get("users"), kind="user", parser=parse_user,
            ),
            profiles=parse_named_list(
                kubeconfig.get("contexts"), kind="context", parser=parse_context,
            ),
        )
    except KubeconfigError as e:
        raise RecordError(f"ClusterKubeconfig {name}: {e}") from e
