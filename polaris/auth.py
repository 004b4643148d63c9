"""
Authentication dependency for the message endpoints.

Callers present the shared service token as a bearer credential. The
identity carried in the request body is trusted only after this check.
"""
import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def require_api_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """
    Reject the request unless it carries the configured service token.

    Raises:
        HTTPException: 401 when the token is missing, wrong or not configured
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expected = settings.api_token
    if not expected or not secrets.compare_digest(credentials.credentials, expected):
        logger.warning(
            "Rejected request with invalid service token",
            extra={"evt": "auth_rejected", "details": {"configured": bool(expected)}},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
