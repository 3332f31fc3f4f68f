"""Kubernetes Secret storage backend.

The record is a namespaced Secret with the three well-known data keys.

Updates are an unconditional get-then-replace: the resourceVersion is cleared
before the replace, so a concurrent external writer can silently lose an update.
Only writers inside this process are serialized (by the serial allocator's lock).
"""

import base64
import binascii
import logging

from kubernetes import client
from kubernetes.client.rest import ApiException

from pki.storage.base import (
    Fields,
    Mutator,
    RecordNotFoundError,
    StorageBackend,
    StorageError,
    drop_empty,
)

logger = logging.getLogger(__name__)

CONTROLLED_BY_ANNOTATION = "controlled-by"
CONTROLLED_BY_VALUE = "wirepact-k8s-pki"


def _encode(fields: Fields) -> dict[str, str]:
    return {key: base64.b64encode(value).decode("ascii") for key, value in fields.items()}


def _decode(data: dict[str, str] | None) -> Fields:
    try:
        return {key: base64.b64decode(value) for key, value in (data or {}).items()}
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Secret data is not valid base64: {e}") from e


class KubernetesSecretBackend(StorageBackend):
    """Stores the record in a Kubernetes Secret."""

    storage_type = "kubernetes"

    def __init__(self, api: client.CoreV1Api, namespace: str, secret_name: str) -> None:
        self._api = api
        self._namespace = namespace
        self._secret_name = secret_name

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def secret_name(self) -> str:
        return self._secret_name

    def exists(self) -> bool:
        return self._get_secret() is not None

    def create(self, initial_fields: Fields) -> None:
        secret = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=self._secret_name,
                annotations={CONTROLLED_BY_ANNOTATION: CONTROLLED_BY_VALUE},
            ),
            data=_encode(initial_fields),
        )
        try:
            self._api.create_namespaced_secret(namespace=self._namespace, body=secret)
        except ApiException as e:
            raise StorageError(
                f"Could not create secret {self.describe()}: {e.status} {e.reason}"
            ) from e

        logger.info("storage_record_created", extra={"secret": self.describe()})

    def read(self) -> Fields:
        secret = self._get_secret()
        if secret is None:
            raise RecordNotFoundError(f"Secret {self.describe()} does not exist")
        return drop_empty(_decode(secret.data))

    def atomic_update(self, mutator: Mutator) -> Fields:
        secret = self._get_secret()
        if secret is None:
            raise RecordNotFoundError(f"Secret {self.describe()} does not exist")

        updated = mutator(drop_empty(_decode(secret.data)))
        secret.data = _encode(updated)
        # Unconditional replace, no optimistic concurrency.
        secret.metadata.resource_version = None

        try:
            self._api.replace_namespaced_secret(
                name=self._secret_name, namespace=self._namespace, body=secret
            )
        except ApiException as e:
            raise StorageError(
                f"Could not write secret {self.describe()}: {e.status} {e.reason}"
            ) from e

        return drop_empty(updated)

    def describe(self) -> str:
        return f"{self._namespace}/{self._secret_name}"

    def _get_secret(self) -> client.V1Secret | None:
        try:
            return self._api.read_namespaced_secret(
                name=self._secret_name, namespace=self._namespace
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise StorageError(
                f"Could not read secret {self.describe()}: {e.status} {e.reason}"
            ) from e
