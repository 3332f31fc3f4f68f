"""Shared fixtures for PKI tests."""

import threading
import time

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from pki.ca.ca_manager import CAManager
from pki.storage.base import Fields, Mutator, RecordNotFoundError, StorageBackend, drop_empty
from pki.storage.local import LocalFileBackend


class InMemoryBackend(StorageBackend):
    """Dict-backed record with an optional delay inside the read-modify-write."""

    storage_type = "memory"

    def __init__(self, fields: Fields | None = None, delay: float = 0.0) -> None:
        self.fields = dict(fields) if fields is not None else None
        self.delay = delay
        self.updates = 0
        self._guard = threading.Lock()

    def exists(self) -> bool:
        return self.fields is not None

    def create(self, initial_fields: Fields) -> None:
        self.fields = dict(initial_fields)

    def read(self) -> Fields:
        if self.fields is None:
            raise RecordNotFoundError("no record")
        return drop_empty(self.fields)

    def atomic_update(self, mutator: Mutator) -> Fields:
        current = self.read()
        if self.delay:
            time.sleep(self.delay)
        updated = mutator(dict(current))
        with self._guard:
            self.fields = dict(updated)
            self.updates += 1
        return drop_empty(updated)


def make_csr(common_name: str = "demo-authenticator", key: rsa.RSAPrivateKey | None = None):
    """Build a PEM CSR. Returns (pem_bytes, private_key)."""
    key = key or rsa.generate_private_key(public_exponent=65537, key_size=2048)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .sign(key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM), key


def tamper_csr_signature(csr_pem: bytes) -> bytes:
    """Flip the last byte of the CSR, which lies inside its signature."""
    csr = x509.load_pem_x509_csr(csr_pem)
    der = bytearray(csr.public_bytes(serialization.Encoding.DER))
    der[-1] ^= 0xFF
    tampered = x509.load_der_x509_csr(bytes(der))
    return tampered.public_bytes(serialization.Encoding.PEM)


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def local_backend(tmp_path) -> LocalFileBackend:
    return LocalFileBackend(tmp_path / "ca")


@pytest.fixture
def ca_manager(memory_backend) -> CAManager:
    """A CA bootstrapped against an empty in-memory backend."""
    manager = CAManager(memory_backend)
    manager.bootstrap()
    return manager
