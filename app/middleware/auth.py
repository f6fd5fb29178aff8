"""
Admin API key authentication.

The risk-control API is guarded by a single operator key sent as X-API-Key.
An empty configured key disables the admin API entirely: every call is 401.
Keys are compared in constant time.
"""

import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from app.config import get_settings

import structlog

logger = structlog.get_logger()

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_admin_key(api_key: str | None = Security(api_key_header)) -> str:
    settings = get_settings()
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=401,
            detail="Admin API is disabled.",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Include X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    if not hmac.compare_digest(api_key.encode(), settings.admin_api_key.encode()):
        logger.warning("admin_auth_failed")
        raise HTTPException(
            status_code=401,
            detail="Invalid API key.",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return api_key
