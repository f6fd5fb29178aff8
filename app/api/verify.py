"""
Password verification API for protected links.

Lets a client check a password before following the link. Nothing is counted
here; the visit is counted when the link itself is opened.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_policy
from app.core.gates import lifecycle_reason
from app.core.passwords import verify_password
from app.store.base import StoreError
from app.store.policy import LegacyRedirect, PolicyStoreAdapter

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/verify", tags=["verify"])


async def _submitted_password(request: Request) -> str | None:
    """Password from a JSON body or a form post."""
    if "application/json" in request.headers.get("content-type", ""):
        try:
            data = await request.json()
        except ValueError:
            return None
        value = data.get("password") if isinstance(data, dict) else None
    else:
        form = await request.form()
        value = form.get("password")
    return value if isinstance(value, str) and value else None


@router.post("/{short_key}")
async def verify_link_password(
    short_key: str,
    request: Request,
    policy: PolicyStoreAdapter = Depends(get_policy),
):
    try:
        loaded = await policy.load_link(short_key)
    except StoreError as e:
        logger.error("link_load_failed", short_key=short_key, error=str(e))
        raise HTTPException(status_code=500, detail="Storage unavailable")
    if loaded is None or isinstance(loaded, LegacyRedirect):
        raise HTTPException(status_code=404, detail="Link not found")
    link = loaded

    reason = lifecycle_reason(link)
    if reason:
        raise HTTPException(status_code=403, detail=reason)
    if link.max_visits > 0 and link.current_visits >= link.max_visits:
        raise HTTPException(status_code=403, detail="This link has reached its visit limit")
    if not link.password_hash:
        raise HTTPException(status_code=400, detail="This link does not require a password")

    password = await _submitted_password(request)
    if password is None:
        raise HTTPException(status_code=400, detail="Password is required")
    if not verify_password(password, link.password_hash):
        logger.info("password_rejected", short_key=short_key)
        raise HTTPException(status_code=401, detail="Invalid password")

    logger.info("password_verified", short_key=short_key)
    return {
        "success": True,
        "data": {
            "shortKey": link.short_key,
            "longUrl": link.target_url,
            "title": link.title,
            "verified": True,
        },
        "message": "Password verified successfully",
    }
