"""Kubernetes cluster context: API credentials and the current namespace."""

import logging
import os
from pathlib import Path

from kubernetes import client, config
from kubernetes.config import ConfigException

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DOWNWARD_API_ENV = "POD_NAMESPACE"
DOWNWARD_API_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


def load_core_api() -> client.CoreV1Api:
    """Create a CoreV1Api from in-cluster config, falling back to kubeconfig."""
    try:
        config.load_incluster_config()
        logger.debug("Using in-cluster Kubernetes config")
    except ConfigException:
        config.load_kube_config()
        logger.debug("Using kubeconfig Kubernetes config")
    return client.CoreV1Api()


def _kubeconfig_namespace() -> str | None:
    try:
        _, active_context = config.list_kube_config_contexts()
    except (ConfigException, OSError):
        return None
    if not active_context:
        return None
    return active_context.get("context", {}).get("namespace") or None


def resolve_namespace(namespace_file: Path = DOWNWARD_API_NAMESPACE_FILE) -> str:
    """Resolve the namespace this process runs in.

    Priority: downward API file, then ``POD_NAMESPACE``, then the active
    kubeconfig context, then ``default``.
    """
    if namespace_file.exists():
        namespace = namespace_file.read_text().strip()
        if namespace:
            return namespace

    namespace = os.environ.get(DOWNWARD_API_ENV)
    if namespace:
        return namespace

    return _kubeconfig_namespace() or DEFAULT_NAMESPACE
