"""Bearer token verification for the form administration API.

Form authoring, response listing and mail status are operator-only. Every
admin route depends on ``verify_admin_token``, which compares the request's
bearer token with ``admin_api_token`` from settings.

Security: tokens are compared in constant time and never logged.
"""

import hmac
from typing import Optional

from fastapi import HTTPException, Request

from app.config import get_settings
from app.logging_config import get_logger


logger = get_logger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Returns:
        The token, or None if the header is missing or not a bearer header
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_valid_admin_token(token: str) -> bool:
    """Compare a presented token with the configured admin token."""
    expected = get_settings().admin_api_token
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


# Dependency function for FastAPI routes
async def verify_admin_token(request: Request) -> None:
    """FastAPI dependency for admin token verification.

    Args:
        request: FastAPI request object

    Raises:
        HTTPException(401): If the bearer token is missing
        HTTPException(403): If the bearer token is wrong

    Usage:
        router = APIRouter(dependencies=[Depends(verify_admin_token)])
    """
    client_ip = request.client.host if request.client else "unknown"

    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        logger.warning(
            f"Missing admin bearer token from IP: {client_ip}",
            extra={"client_ip": client_ip}
        )
        raise HTTPException(
            status_code=401,
            detail="Admin authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not is_valid_admin_token(token):
        logger.warning(
            f"Invalid admin token from IP: {client_ip}",
            extra={"client_ip": client_ip}
        )
        raise HTTPException(status_code=403, detail="Admin access required")

    logger.debug("Admin token verification passed")
