"""Error taxonomy for the certificate authority.

BootstrapError is fatal and must stop the process before it serves traffic.
RequestError and its subclasses are reported per request and never touch CA state.
"""


class PKIError(Exception):
    """Base class for all PKI errors."""

    pass


class BootstrapError(PKIError):
    """Raised when the CA cannot be loaded or created."""

    pass


class IllegalStateError(PKIError):
    """Raised when the CA is used before bootstrap or bootstrapped twice."""

    pass


class RequestError(PKIError):
    """Raised when a single signing request cannot be served."""

    pass


class ParseError(RequestError):
    """Raised when a CSR payload is not a valid PEM/DER certificate request."""

    pass


class SignatureError(RequestError):
    """Raised when a CSR's self-signature does not verify."""

    pass


class SigningError(RequestError):
    """Raised when building or signing the leaf certificate fails."""

    pass
