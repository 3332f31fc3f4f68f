"""Serial number allocation backed by the storage record.

Serials are allocated as 1, 2, 3, ... with no gaps. The backend has no atomic
increment, so every allocation holds a process-wide lock for the full
read-modify-write round trip.

A crash after the counter was read but before it was written back lets the next
process hand out the same serial again. Concurrent writers in other processes
can also lose updates on the Kubernetes backend. Neither case is detected here.
"""

import logging
import threading

from pki.metrics import pki_metrics
from pki.storage.base import SERIAL_NUMBER_FIELD, Fields, StorageBackend, StorageError

logger = logging.getLogger(__name__)


def parse_serial(fields: Fields) -> int:
    """Read the persisted counter; a missing counter counts as 0."""
    raw = fields.get(SERIAL_NUMBER_FIELD)
    if not raw:
        return 0
    try:
        return int(raw.decode("ascii").strip())
    except (UnicodeDecodeError, ValueError) as e:
        raise StorageError(f"Serial counter is not a decimal number: {raw!r}") from e


class SerialNumberAllocator:
    """Hands out strictly increasing serial numbers."""

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """Persist and return the next serial number.

        Raises:
            StorageError: If the counter cannot be read or written.
        """
        with self._lock:

            def increment(fields: Fields) -> Fields:
                fields[SERIAL_NUMBER_FIELD] = str(parse_serial(fields) + 1).encode("ascii")
                return fields

            persisted = self._backend.atomic_update(increment)
            serial = parse_serial(persisted)

        pki_metrics.record_serial_allocated()
        logger.debug("serial_number_allocated", extra={"serial": serial})
        return serial
