"""
Webhook authentication.

Change events arrive from the database webhook with a shared secret in the
``x-webhook-secret`` header. The comparison is constant-time.
"""

import hmac
from typing import Annotated, Optional

from fastapi import Header, HTTPException, status

from chatgenius.core.config import settings
from chatgenius.core.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_SECRET_HEADER = "x-webhook-secret"


def secrets_match(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison of the provided secret against the expected one."""
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def verify_webhook_secret(
    x_webhook_secret: Annotated[Optional[str], Header(alias=WEBHOOK_SECRET_HEADER)] = None,
) -> None:
    """
    FastAPI dependency guarding the webhook routes.

    Raises:
        HTTPException 500: the server has no WEBHOOK_SECRET configured
        HTTPException 401: the header is missing or does not match
    """
    expected = settings.WEBHOOK_SECRET
    if not expected:
        logger.error("webhook_secret_not_configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    if not secrets_match(x_webhook_secret, expected):
        logger.warning("webhook_secret_rejected", header_present=x_webhook_secret is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
