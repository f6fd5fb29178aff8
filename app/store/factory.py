"""Policy store selection and lifecycle."""

from app.config import get_settings
from app.store.base import PolicyStore
from app.store.memory import MemoryPolicyStore
from app.store.redis import RedisPolicyStore

# Lazy initialization: the backend is created on first use, not at import time.
_store: PolicyStore | None = None


class StoreNotConfigured(Exception):
    pass


def create_store(url: str) -> PolicyStore:
    if not url:
        raise StoreNotConfigured("no store_url configured")
    if url.startswith("memory://"):
        return MemoryPolicyStore()
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisPolicyStore(url)
    raise StoreNotConfigured(f"unsupported store_url scheme: {url.split('://')[0]}")


def get_policy_store() -> PolicyStore:
    global _store
    if _store is None:
        _store = create_store(get_settings().store_url)
    return _store


async def close_policy_store() -> None:
    global _store
    if isinstance(_store, RedisPolicyStore):
        await _store.close()
    _store = None
