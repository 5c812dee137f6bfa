"""
Internal service authentication for the reporter API.

The API is called by the CI server and its configuration pages, never by end
users directly. Requests must carry X-Internal-Service-Key matching the
configured INTERNAL_SERVICE_KEY.
"""
import hmac
import logging
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


async def verify_internal_service_key(request: Request) -> None:
    """
    Verify that request includes valid internal service key.

    Raises:
        HTTPException(401): If the key is not configured, missing or invalid
    """
    # Read the key at request time so settings swapped in by tests or reloads apply
    internal_service_key = request.app.state.services.settings.internal_service_key or ""

    if not internal_service_key:
        logger.error("INTERNAL_SERVICE_KEY not configured - rejecting request")
        raise HTTPException(
            status_code=401,
            detail="Internal service authentication not configured"
        )

    header_value = request.headers.get("X-Internal-Service-Key")
    if not header_value:
        logger.warning("Request missing X-Internal-Service-Key header")
        raise HTTPException(
            status_code=401,
            detail="X-Internal-Service-Key header required"
        )

    if not hmac.compare_digest(str(header_value).strip(), internal_service_key):
        logger.warning("Invalid X-Internal-Service-Key provided (path=%s)", request.url.path)
        raise HTTPException(
            status_code=401,
            detail="Invalid internal service key"
        )
