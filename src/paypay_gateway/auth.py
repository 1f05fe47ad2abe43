"""Admin authentication and rate limiting for the API."""

import os
import secrets
import logging

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

admin_security = HTTPBearer()

# Rate limiter shared by the admin routes
limiter = Limiter(key_func=get_remote_address)

# Poll sweeps call PayPay once per request
RECONCILE_RATE_LIMIT = os.getenv("PAYPAY_RECONCILE_RATE_LIMIT", "30/minute")


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(admin_security)) -> str:
    """Check the admin API key sent as a Bearer token.

    Args:
        credentials: HTTP Bearer credentials from the request.

    Returns:
        The verified API key.

    Raises:
        HTTPException: 500 if API_KEY is not configured, 401 if the key
            does not match.
    """
    expected_key = os.getenv("API_KEY")
    if not expected_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    if not secrets.compare_digest(credentials.credentials, expected_key):
        logger.warning("Admin request rejected: invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
