"""Bearer-token check and request throttling for the import API."""

import os
import secrets
import logging
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Keyed by client address; limits are set per route
limiter = Limiter(key_func=get_remote_address)


def _configured_key() -> Optional[str]:
    return os.getenv("API_KEY") or None


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    """Accept the request only if its bearer token equals API_KEY.

    Raises:
        HTTPException: 500 when the server has no API_KEY, 401 on a wrong token.
    """
    expected = _configured_key()
    if expected is None:
        logger.error("Import API called but API_KEY is not set")
        raise HTTPException(status_code=500, detail="Server configuration error")

    presented = credentials.credentials
    if not secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Import request rejected: bearer token mismatch")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return presented
