"""Storage backends for CA material and the serial counter.

- File-based (``LocalFileBackend``)
- Kubernetes Secret (``KubernetesSecretBackend``)

The variant is chosen once at startup by ``create_backend``.
"""

import logging

from shared.config import Settings

from pki.storage.base import RecordNotFoundError, StorageBackend, StorageError
from pki.storage.kubernetes import KubernetesSecretBackend
from pki.storage.local import LocalFileBackend

logger = logging.getLogger(__name__)


def create_backend(settings: Settings) -> StorageBackend:
    """Build the storage backend selected by configuration."""
    if settings.PKI_LOCAL_MODE:
        logger.info(
            "Using local filesystem to store CA", extra={"path": settings.PKI_LOCAL_PATH}
        )
        return LocalFileBackend(settings.PKI_LOCAL_PATH)

    from pki.storage.cluster import load_core_api, resolve_namespace

    try:
        api = load_core_api()
        namespace = settings.PKI_NAMESPACE or resolve_namespace()
    except Exception as e:
        raise StorageError(f"Could not load Kubernetes client: {e}") from e

    logger.info(
        "Using Kubernetes secret to store CA",
        extra={"secret": settings.PKI_SECRET_NAME, "namespace": namespace},
    )
    return KubernetesSecretBackend(api, namespace, settings.PKI_SECRET_NAME)


__all__ = [
    "KubernetesSecretBackend",
    "LocalFileBackend",
    "RecordNotFoundError",
    "StorageBackend",
    "StorageError",
    "create_backend",
]
