"""CA certificate and CSR signing endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from pki.api.auth import require_api_key
from pki.ca.ca_manager import CAManager
from pki.errors import IllegalStateError, RequestError
from pki.storage.base import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pki"], dependencies=[Depends(require_api_key)])


def get_ca_manager(request: Request) -> CAManager:
    """Dependency returning the CA manager attached to the application at startup."""
    manager: CAManager | None = getattr(request.app.state, "ca_manager", None)
    if manager is None or not manager.is_ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="CA not initialized"
        )
    return manager


@router.get("/ca")
def get_ca(request: Request, manager: CAManager = Depends(get_ca_manager)) -> Response:
    """
    Return the CA certificate.

    - Returns: 200 OK with the PEM encoded CA certificate
    - Errors: 503 SERVICE_UNAVAILABLE (CA not bootstrapped)
    """
    logger.info(
        "Return CA to client",
        extra={"host": request.url.hostname, "path": "/ca", "method": "GET"},
    )
    return Response(
        content=manager.get_ca_certificate(),
        media_type="application/x-x509-ca-cert",
        headers={"Content-Disposition": 'attachment; filename="ca-cert.crt"'},
    )


@router.post("/csr")
async def handle_csr(request: Request, manager: CAManager = Depends(get_ca_manager)) -> Response:
    """
    Sign a PEM encoded certificate signing request sent as the raw body.

    - Returns: 200 OK with the PEM encoded client certificate
    - Errors: 400 BAD_REQUEST (missing body, invalid CSR),
      503 SERVICE_UNAVAILABLE (CA not bootstrapped), 500 (storage failure)
    """
    log_extra = {"host": request.url.hostname, "path": "/csr", "method": "POST"}
    logger.debug("Handling CSR for client", extra=log_extra)

    body = await request.body()
    if not body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body missing.")

    # Signing blocks on RSA and backend I/O; keep it off the event loop.
    try:
        certificate = await run_in_threadpool(manager.sign, body)
    except RequestError as e:
        logger.warning("Could not create client cert", extra={**log_extra, "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Could not create certificate from CSR.",
        ) from e
    except IllegalStateError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="CA not initialized"
        ) from e
    except StorageError as e:
        logger.error("Could not allocate serial number", extra={**log_extra, "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create certificate.",
        ) from e

    logger.info("Successfully signed CSR of client", extra=log_extra)
    return Response(
        content=certificate,
        media_type="application/x-x509-user-cert",
        headers={"Content-Disposition": 'attachment; filename="client-cert.crt"'},
    )
