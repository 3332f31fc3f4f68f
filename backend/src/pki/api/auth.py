"""Optional pre-shared API key for the PKI endpoints.

When PKI_API_KEY is set, every request must carry an ``Authorization`` header
equal to the key, without any scheme prefix.
"""

import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from shared.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def require_api_key(api_key: str | None = Depends(api_key_header)) -> None:
    """
    Reject the request unless it carries the configured API key.

    - No key configured: every request is accepted
    - Key configured: raise 401 UNAUTHORIZED on a missing or wrong header
    """
    expected = settings.PKI_API_KEY
    if not expected:
        return

    if not api_key:
        logger.debug("auth_attempt", extra={"result": "failure", "reason": "missing_key"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if not secrets.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.debug("auth_attempt", extra={"result": "failure", "reason": "invalid_key"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
