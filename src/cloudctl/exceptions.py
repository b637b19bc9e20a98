"""cloudctl exception hierarchy.

Provides a structured exception tree so catch blocks can be specific
and callers can distinguish between different failure modes.
"""

from __future__ import annotations


class CloudctlError(Exception):
    """Base for all cloudctl exceptions."""


class ConfigError(CloudctlError):
    """Raised when cloudctl.toml cannot be parsed or validated."""


class KubeconfigError(CloudctlError):
    """Local kubeconfig read, parse, write, or context lookup failures."""


class RecordError(CloudctlError):
    """A remote ClusterKubeconfig resource is malformed."""


class RemoteError(CloudctlError):
    """HTTP failures talking to a cluster API server."""


class ReconcileError(CloudctlError):
    """Merging incoming records into the local kubeconfig failed."""


class ProfileReferenceError(ReconcileError):
    """An incoming context references a user absent from the incoming set."""

    def __init__(self, context: str, user: str):
        self.context = context
        self.user = user
        super().__init__(
            f"AuthInfo {user} referenced in context {context} does not exist"
        )
