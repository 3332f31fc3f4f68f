"""Bootstrap service for first-run CA initialization."""

import logging

from shared.config import Settings

from pki.ca.ca_manager import CAManager
from pki.errors import BootstrapError
from pki.storage import StorageError, create_backend

logger = logging.getLogger(__name__)


def bootstrap_ca(settings: Settings) -> CAManager:
    """
    Build the storage backend and CA manager, and load or create the CA.

    Environment variables:
    - PKI_LOCAL_MODE: Store the CA in PKI_LOCAL_PATH instead of a Kubernetes secret
    - PKI_SECRET_NAME: Name of the Kubernetes secret holding the CA
    - PKI_NAMESPACE: Optional namespace override

    Returns:
        A bootstrapped CAManager.

    Raises:
        BootstrapError: If the CA cannot be loaded or created. Fatal.
    """
    logger.info("bootstrap_started", extra={"local_mode": settings.PKI_LOCAL_MODE})

    try:
        backend = create_backend(settings)
    except StorageError as e:
        logger.error("ca_bootstrap_failed", extra={"error": str(e)})
        raise BootstrapError(f"Could not initialize storage backend: {e}") from e

    manager = CAManager(backend)
    manager.bootstrap()
    return manager
