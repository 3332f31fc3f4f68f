"""Storage backend abstraction for CA material and the serial counter.

A backend persists one record with three well-known fields. Callers above this
layer never know which variant they talk to.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from pki.errors import PKIError

# Well-known record fields
SERIAL_NUMBER_FIELD = "serialNumber"
CA_CERTIFICATE_FIELD = "caCertificate"
CA_KEY_FIELD = "caCertificateKey"

RECORD_FIELDS = (SERIAL_NUMBER_FIELD, CA_CERTIFICATE_FIELD, CA_KEY_FIELD)

Fields = dict[str, bytes]
Mutator = Callable[[Fields], Fields]


class StorageError(PKIError):
    """Raised when the backend cannot be read or written."""

    pass


class RecordNotFoundError(StorageError):
    """Raised when the backend record does not exist."""

    pass


class StorageBackend(ABC):
    """Key-value record holding the CA certificate, CA key and serial counter."""

    storage_type: str = "unknown"

    @abstractmethod
    def exists(self) -> bool:
        """Return True if the record exists."""

    @abstractmethod
    def create(self, initial_fields: Fields) -> None:
        """Create the record with the given fields."""

    @abstractmethod
    def read(self) -> Fields:
        """Return the non-empty fields of the record.

        Raises:
            RecordNotFoundError: If the record does not exist.
            StorageError: If the record cannot be read.
        """

    @abstractmethod
    def atomic_update(self, mutator: Mutator) -> Fields:
        """Read the record, apply ``mutator`` and persist its result.

        This is a plain read-modify-write round trip. It is only atomic with
        respect to callers that serialize on their own lock; no backend offers
        a conditional write.

        Returns:
            The fields as persisted.
        """

    def describe(self) -> str:
        """Human readable location of the record, used for logging."""
        return self.storage_type


def drop_empty(fields: Fields) -> Fields:
    """Strip fields whose value is empty; empty and absent mean the same thing."""
    return {key: value for key, value in fields.items() if value}
