"""cloudctl: sync Greenhouse cluster kubeconfigs into a local kubeconfig."""

__version__ = "0.1.0"

# Stamped by release builds.
__git_commit__ = "unknown"
__build_date__ = "unknown"
