"""Send a CSR for ``demo-authenticator`` to a running PKI and print the result.

Usage: python scripts/send_csr.py [base_url]
"""

import sys

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

DEFAULT_URL = "http://localhost:8080"


def build_csr(common_name: str) -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .sign(key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM)


def main() -> None:
    base_url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL

    with httpx.Client(base_url=base_url) as client:
        ca = client.get("/ca")
        ca.raise_for_status()
        print(ca.text)

        response = client.post("/csr", content=build_csr("demo-authenticator"))
        response.raise_for_status()

    certificate = x509.load_pem_x509_certificate(response.content)
    print(response.text)
    print(f"serial={certificate.serial_number} subject={certificate.subject.rfc4514_string()}")


if __name__ == "__main__":
    main()
