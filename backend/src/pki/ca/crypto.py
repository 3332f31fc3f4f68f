"""Cryptographic utilities for certificate operations.

PEM encoding of CA material, thumbprints and validity arithmetic.
"""

import hashlib
from datetime import datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

CERTIFICATE_REQUEST_LABEL = "CERTIFICATE REQUEST"


def certificate_to_pem(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.PEM)


def private_key_to_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    """Serialize an RSA key as unencrypted PKCS#1 PEM ("RSA PRIVATE KEY")."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def compute_thumbprint(certificate: x509.Certificate) -> str:
    """Compute the lowercase hex SHA-256 thumbprint of a certificate."""
    der_bytes = certificate.public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der_bytes).hexdigest().lower()


def add_years(moment: datetime, years: int) -> datetime:
    """Add calendar years; Feb 29 rolls over to Mar 1 in non-leap years."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, month=3, day=1)
