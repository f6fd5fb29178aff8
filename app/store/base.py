"""
Policy store collaborator interface.

The core owns the schema of every value it writes; the backend only sees
opaque strings. Backends are eventually consistent and offer no
transactions or atomic increments.
"""

from typing import Protocol


class StoreError(Exception):
    """Raised by store adapters when the backend cannot serve a call."""


class PolicyStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(self, prefix: str) -> list[str]: ...
