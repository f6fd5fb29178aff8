"""FastAPI dependencies for the access pipeline's collaborators."""

import httpx
from fastapi import Depends, HTTPException

from app.config import get_settings
from app.services.alerts import LoggingNotifier, Notifier
from app.services.forwarder import Forwarder, HttpxForwarder
from app.store.base import PolicyStore
from app.store.factory import StoreNotConfigured, get_policy_store
from app.store.policy import PolicyStoreAdapter

import structlog

logger = structlog.get_logger()

_http_client: httpx.AsyncClient | None = None
_notifier: Notifier = LoggingNotifier()


def get_store() -> PolicyStore:
    try:
        return get_policy_store()
    except StoreNotConfigured as e:
        logger.error("store_not_configured", error=str(e))
        raise HTTPException(status_code=500, detail="Service not configured")


def get_policy(store: PolicyStore = Depends(get_store)) -> PolicyStoreAdapter:
    return PolicyStoreAdapter(store)


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient()
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None


def get_notifier() -> Notifier:
    return _notifier


def get_forwarder(client: httpx.AsyncClient = Depends(get_http_client)) -> Forwarder:
    settings = get_settings()
    return HttpxForwarder(client, settings.proxy_user_agent, settings.proxy_timeout_seconds)
