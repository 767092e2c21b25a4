"""
API Key Authentication for ClearFrame.

Provides FastAPI dependencies for validating API key authentication
on mutating endpoints.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from clearframe.config import get_settings

logger = logging.getLogger(__name__)


async def verify_api_key(
    x_clearframe_api_key: Optional[str] = Header(None, alias="X-ClearFrame-API-Key"),
) -> None:
    """
    FastAPI dependency to verify the ClearFrame API key.

    If API_KEY is configured, requests must include a matching
    X-ClearFrame-API-Key header. If not configured, authentication is skipped
    (development mode).

    Raises:
        HTTPException: 401 if API key is missing or invalid
    """
    settings = get_settings()
    expected_key = settings.api_key

    if not expected_key:
        logger.debug("API_KEY not configured, skipping authentication")
        return

    if not x_clearframe_api_key:
        logger.warning("Request missing X-ClearFrame-API-Key header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "X-ClearFrame-API-Key"},
        )

    if x_clearframe_api_key != expected_key:
        logger.warning("Invalid API key received")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "X-ClearFrame-API-Key"},
        )
