"""Greenhouse API access: ClusterKubeconfig records and version probing."""

from cloudctl.greenhouse.client import GreenhouseClient
from cloudctl.greenhouse.records import AccessRecord, parse_access_record
from cloudctl.greenhouse.version import clean_version, probe_cluster_version

__all__ = [
    "AccessRecord",
    "GreenhouseClient",
    "clean_version",
    "parse_access_record",
    "probe_cluster_version",
]
