"""CA bootstrap and lifetime management.

The CA lives in the storage backend. On startup it is loaded if the backend holds
a complete certificate/key pair, otherwise a new self-signed CA is generated and
persisted once. The loaded material is never rewritten for the process lifetime.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from opentelemetry import trace

from pki.ca.crypto import add_years, certificate_to_pem, compute_thumbprint, private_key_to_pem
from pki.ca.csr_signer import CSRSigner
from pki.ca.serial import SerialNumberAllocator
from pki.errors import BootstrapError, IllegalStateError
from pki.metrics import pki_metrics
from pki.storage.base import (
    CA_CERTIFICATE_FIELD,
    CA_KEY_FIELD,
    SERIAL_NUMBER_FIELD,
    Fields,
    StorageBackend,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class CAKeyPair:
    """Holds CA private key and certificate."""

    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    source: str  # "loaded" or "created"
    certificate_pem: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "certificate_pem", certificate_to_pem(self.certificate))

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject


class CAManager:
    """Loads or creates the CA and signs CSRs with it.

    Construct once at startup, call ``bootstrap()`` before serving requests and
    pass the instance to whatever handles requests.
    """

    ORGANIZATION = "WirePact PKI CA"
    COUNTRY = "Kubernetes"
    COMMON_NAME = "PKI"
    RSA_KEY_SIZE = 2048
    VALIDITY_YEARS = 20

    def __init__(
        self,
        backend: StorageBackend,
        allocator: SerialNumberAllocator | None = None,
    ) -> None:
        self._backend = backend
        self._allocator = allocator or SerialNumberAllocator(backend)
        self._signer = CSRSigner(self, self._allocator)
        self._key_pair: CAKeyPair | None = None

    @property
    def key_pair(self) -> CAKeyPair:
        """Get loaded CA key pair. Raises if not bootstrapped."""
        if self._key_pair is None:
            raise IllegalStateError("CA not loaded. Call bootstrap() first.")
        return self._key_pair

    @property
    def is_ready(self) -> bool:
        return self._key_pair is not None

    @property
    def allocator(self) -> SerialNumberAllocator:
        return self._allocator

    def bootstrap(self) -> CAKeyPair:
        """Load the CA from the backend, or create and persist a new one.

        Raises:
            BootstrapError: If the backend is unreachable, stored material is
                corrupt or key generation fails. The caller must not serve
                requests after this.
            IllegalStateError: If the CA was already bootstrapped.
        """
        if self._key_pair is not None:
            raise IllegalStateError("CA is already bootstrapped")

        with tracer.start_as_current_span("CAManager.bootstrap") as span:
            span.set_attribute("storage_type", self._backend.storage_type)

            try:
                fields = self._read_or_create_record()
                if self._has_complete_ca(fields):
                    key_pair = self._load(fields, source="loaded")
                else:
                    logger.info(
                        "CA certificate does not exist, create new",
                        extra={"storage": self._backend.describe()},
                    )
                    key_pair = self._create()
            except BootstrapError as e:
                logger.error("ca_bootstrap_failed", extra={"error": str(e)})
                raise
            except Exception as e:
                logger.error("ca_bootstrap_failed", extra={"error": str(e)})
                raise BootstrapError(f"Failed to bootstrap CA: {e}") from e

            span.set_attribute("source", key_pair.source)
            span.set_attribute(
                "ca_cert_expires", key_pair.certificate.not_valid_after_utc.isoformat()
            )

            self._key_pair = key_pair
            self._log_loaded(key_pair)
            return key_pair

    def get_ca_certificate(self) -> bytes:
        """Return the PEM encoded CA certificate."""
        return self.key_pair.certificate_pem

    def sign(self, csr_bytes: bytes) -> bytes:
        """Sign a PEM encoded CSR and return the PEM encoded certificate."""
        return self._signer.sign(csr_bytes)

    def _read_or_create_record(self) -> Fields:
        if self._backend.exists():
            return self._backend.read()

        initial: Fields = {SERIAL_NUMBER_FIELD: b"0"}
        self._backend.create(initial)
        return initial

    @staticmethod
    def _has_complete_ca(fields: Fields) -> bool:
        return bool(fields.get(CA_CERTIFICATE_FIELD)) and bool(fields.get(CA_KEY_FIELD))

    def _load(self, fields: Fields, source: str) -> CAKeyPair:
        try:
            private_key = serialization.load_pem_private_key(fields[CA_KEY_FIELD], password=None)
            certificate = x509.load_pem_x509_certificate(fields[CA_CERTIFICATE_FIELD])
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise BootstrapError(f"Stored CA material is corrupt: {e}") from e

        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise BootstrapError(f"CA key must be RSA, got {type(private_key).__name__}")

        cert_key = certificate.public_key()
        if (
            not isinstance(cert_key, rsa.RSAPublicKey)
            or cert_key.public_numbers() != private_key.public_key().public_numbers()
        ):
            raise BootstrapError("CA certificate does not match CA private key")

        return CAKeyPair(private_key=private_key, certificate=certificate, source=source)

    def _create(self) -> CAKeyPair:
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=self.RSA_KEY_SIZE,
        )

        now = datetime.now(timezone.utc)
        subject = issuer = x509.Name(
            [
                x509.NameAttribute(NameOID.COUNTRY_NAME, self.COUNTRY, _validate=False),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.ORGANIZATION),
                x509.NameAttribute(NameOID.COMMON_NAME, self.COMMON_NAME),
            ]
        )

        # Random serial: the leaf counter starts at 1 for the first client cert.
        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(add_years(now, self.VALIDITY_YEARS))
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_cert_sign=True,
                    crl_sign=False,
                    key_encipherment=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage(
                    [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]
                ),
                critical=False,
            )
            .sign(private_key, hashes.SHA256())
        )

        cert_pem = certificate_to_pem(certificate)
        key_pem = private_key_to_pem(private_key)

        def store_ca(fields: Fields) -> Fields:
            fields[CA_CERTIFICATE_FIELD] = cert_pem
            fields[CA_KEY_FIELD] = key_pem
            return fields

        persisted = self._backend.atomic_update(store_ca)
        logger.info(
            "Created and stored CA certificate with private key",
            extra={"storage": self._backend.describe()},
        )

        # Load what was persisted so this process matches a later restart.
        return self._load(persisted, source="created")

    def _log_loaded(self, key_pair: CAKeyPair) -> None:
        """Log successful CA loading and record metrics."""
        certificate = key_pair.certificate
        logger.info(
            "ca_loaded" if key_pair.source == "loaded" else "ca_created",
            extra={
                "storage_type": self._backend.storage_type,
                "subject": certificate.subject.rfc4514_string(),
                "serial": format(certificate.serial_number, "x"),
                "ca_cert_expires": certificate.not_valid_after_utc.isoformat(),
                "thumbprint": compute_thumbprint(certificate),
            },
        )

        pki_metrics.record_ca_loaded(key_pair.source)
