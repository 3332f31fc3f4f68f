"""Certificate Authority module.

This module provides:
- CA bootstrap and loading (``CAManager``)
- Serial number allocation (``SerialNumberAllocator``)
- CSR validation and signing (``CSRSigner``)
"""

from pki.ca.ca_manager import CAKeyPair, CAManager
from pki.ca.csr_signer import CSRSigner
from pki.ca.serial import SerialNumberAllocator

__all__ = ["CAKeyPair", "CAManager", "CSRSigner", "SerialNumberAllocator"]
