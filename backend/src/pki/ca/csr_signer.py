"""CSR validation and signing.

Issues long-lived client certificates for PKCS#10 requests.
"""

import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import ExtendedKeyUsageOID
from opentelemetry import trace

from pki.ca.crypto import CERTIFICATE_REQUEST_LABEL, add_years, certificate_to_pem
from pki.ca.serial import SerialNumberAllocator
from pki.errors import IllegalStateError, ParseError, SignatureError, SigningError
from pki.metrics import pki_metrics

if TYPE_CHECKING:
    from pki.ca.ca_manager import CAManager

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_SUPPORTED_HASHES = (hashes.SHA256, hashes.SHA384, hashes.SHA512)
_CSR_PEM_MARKER = f"-----BEGIN {CERTIFICATE_REQUEST_LABEL}-----".encode("ascii")


class CSRSigner:
    """Signs certificate requests with the CA key.

    Certificate attributes:
    - Subject and public key: copied from the CSR
    - Issuer: the CA subject
    - Serial: next value of the serial allocator
    - Validity: now() to now() + 20 years
    - Key Usage: Digital Signature, Certificate Sign (same bits as the CA template)
    - Extended Key Usage: Client Authentication, Server Authentication
    """

    VALIDITY_YEARS = 20

    def __init__(self, ca: "CAManager", allocator: SerialNumberAllocator) -> None:
        self._ca = ca
        self._allocator = allocator

    def sign(self, csr_bytes: bytes) -> bytes:
        """Validate and sign a PEM encoded CSR.

        No serial number is consumed unless the CSR parses and its signature
        verifies. A serial can be burned if signing fails after allocation.

        Returns:
            The PEM encoded client certificate.

        Raises:
            ParseError: If the payload is not a PEM/DER certificate request.
            SignatureError: If the CSR's self-signature is invalid.
            IllegalStateError: If the CA is not bootstrapped.
            SigningError: If the certificate cannot be built or signed.
            StorageError: If the serial counter cannot be updated.
        """
        with tracer.start_as_current_span("CSRSigner.sign") as span:
            start_time = time.time()

            try:
                csr = self._parse(csr_bytes)
                self._verify(csr)
                ca = self._ca.key_pair
            except ParseError as e:
                self._reject("parse", e)
                raise
            except SignatureError as e:
                self._reject("signature", e)
                raise
            except IllegalStateError as e:
                self._reject("not_ready", e)
                raise

            subject = csr.subject.rfc4514_string()
            span.set_attribute("subject", subject)

            serial = self._allocator.allocate()
            span.set_attribute("serial", serial)

            try:
                now = datetime.now(timezone.utc)
                certificate = (
                    x509.CertificateBuilder()
                    .subject_name(csr.subject)
                    .issuer_name(ca.subject)
                    .public_key(csr.public_key())
                    .serial_number(serial)
                    .not_valid_before(now)
                    .not_valid_after(add_years(now, self.VALIDITY_YEARS))
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
                    .sign(ca.private_key, self._hash_algorithm(csr))
                )
                cert_pem = certificate_to_pem(certificate)
            except Exception as e:
                logger.error(
                    "csr_signing_failed",
                    extra={"subject": subject, "serial": serial, "error": str(e)},
                )
                pki_metrics.record_csr_rejected("signing")
                raise SigningError(f"Failed to sign certificate: {e}") from e

            duration = time.time() - start_time
            pki_metrics.record_certificate_signed(duration)

            logger.info(
                "csr_signed",
                extra={
                    "subject": subject,
                    "serial": serial,
                    "not_after": certificate.not_valid_after_utc.isoformat(),
                    "duration_seconds": duration,
                },
            )

            return cert_pem

    @staticmethod
    def _parse(csr_bytes: bytes) -> x509.CertificateSigningRequest:
        if _CSR_PEM_MARKER not in csr_bytes:
            raise ParseError(f"No {CERTIFICATE_REQUEST_LABEL} PEM block found")
        try:
            return x509.load_pem_x509_csr(csr_bytes)
        except ValueError as e:
            raise ParseError(f"Invalid certificate request: {e}") from e

    @staticmethod
    def _verify(csr: x509.CertificateSigningRequest) -> None:
        # Proof of possession of the private key.
        try:
            valid = csr.is_signature_valid
        except (UnsupportedAlgorithm, ValueError) as e:
            raise SignatureError(f"Could not verify CSR signature: {e}") from e
        if not valid:
            raise SignatureError("CSR signature does not match its public key")

    @staticmethod
    def _hash_algorithm(csr: x509.CertificateSigningRequest) -> hashes.HashAlgorithm:
        """Reuse the CSR's digest where it is a SHA-2 digest, else SHA-256."""
        try:
            algorithm = csr.signature_hash_algorithm
        except UnsupportedAlgorithm:
            return hashes.SHA256()
        if isinstance(algorithm, _SUPPORTED_HASHES):
            return algorithm
        return hashes.SHA256()

    @staticmethod
    def _reject(reason: str, error: Exception) -> None:
        pki_metrics.record_csr_rejected(reason)
        logger.warning("csr_rejected", extra={"reason": reason, "error": str(error)})
