"""File-pair storage backend.

CA certificate and key live in two files beside a third file holding the serial
counter. There is no cross-process locking: one process owns the directory.
"""

import logging
from pathlib import Path

from pki.storage.base import (
    CA_CERTIFICATE_FIELD,
    CA_KEY_FIELD,
    SERIAL_NUMBER_FIELD,
    Fields,
    Mutator,
    RecordNotFoundError,
    StorageBackend,
    StorageError,
    drop_empty,
)

logger = logging.getLogger(__name__)


class LocalFileBackend(StorageBackend):
    """Stores the record as ``ca.crt``, ``ca.key`` and ``serialnumbers`` in a directory."""

    storage_type = "local"

    FILE_NAMES = {
        CA_CERTIFICATE_FIELD: "ca.crt",
        CA_KEY_FIELD: "ca.key",
        SERIAL_NUMBER_FIELD: "serialnumbers",
    }

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, field: str) -> Path:
        return self._directory / self.FILE_NAMES[field]

    def exists(self) -> bool:
        return any(self.path_for(field).exists() for field in self.FILE_NAMES)

    def create(self, initial_fields: Fields) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directory {self._directory}: {e}") from e

        self._write(initial_fields)
        logger.info("storage_record_created", extra={"path": str(self._directory)})

    def read(self) -> Fields:
        if not self.exists():
            raise RecordNotFoundError(f"No CA record in {self._directory}")

        fields: Fields = {}
        for field in self.FILE_NAMES:
            path = self.path_for(field)
            if not path.exists():
                continue
            try:
                fields[field] = path.read_bytes()
            except OSError as e:
                raise StorageError(f"Could not read {path}: {e}") from e

        return drop_empty(fields)

    def atomic_update(self, mutator: Mutator) -> Fields:
        current = self.read()
        updated = mutator(dict(current))

        # Only rewrite files whose content changed.
        changed = {key: value for key, value in updated.items() if current.get(key) != value}
        self._write(changed)
        return drop_empty(updated)

    def describe(self) -> str:
        return str(self._directory)

    def _write(self, fields: Fields) -> None:
        for field, value in fields.items():
            if field not in self.FILE_NAMES:
                raise StorageError(f"Unknown record field: {field}")
            path = self.path_for(field)
            try:
                path.write_bytes(value)
            except OSError as e:
                raise StorageError(f"Could not write {path}: {e}") from e
