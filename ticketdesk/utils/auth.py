"""
Authentication utilities
"""
import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ticketdesk.dependencies import ServiceContainer, get_services
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


async def verify_service_token(
    authorization: Optional[str] = Header(None, description="Bearer <CRON_SECRET>"),
    services: ServiceContainer = Depends(get_services),
) -> None:
    """
    Verify the bearer credential used by schedulers and admin calls

    Args:
        authorization: Authorization header
        services: Service container (for the configured secret)

    Raises:
        HTTPException 401: If a secret is configured and the header does not match
    """
    secret = services.settings.bearer_secret

    if not secret:
        # DEVELOPMENT MODE: no secret configured
        logger.warning(
            "CRON_SECRET / SERVICE_SECRET not configured. "
            "Bearer token check is bypassed. Set one in production!"
        )
        return

    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("Rejected request with missing or invalid bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    logger.debug("Bearer token verified")
