"""
Policy store adapter — the narrow capability set the access pipeline uses.

Key schema:
  link:{short_key}                          link record (JSON) or legacy bare URL
  blocked:{device|ip}:{subject}             BlockEntry (JSON), TTL = block duration
  counter:{dimension}:{short_key}:{subject} soft visit counter, TTL = 2x window
  devices:{short_key}                       JSON list of known device IDs

Counters are read-then-write: two concurrent visits can both read N and both
write N+1. That is acceptable for a rate-limiting signal and is a property of
the backing store, not of the policy code calling this adapter.
"""

import json
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from app.models.block import BlockEntry, BlockSubject
from app.models.link import LinkRecord, normalize_link_record
from app.store.base import PolicyStore

import structlog

logger = structlog.get_logger()


class CounterDimension(str, Enum):
    DEVICE = "device"
    IP = "ip"
    DEVICE_IP = "deviceIP"


@dataclass(frozen=True)
class LegacyRedirect:
    """A stored bare URL from before link records existed."""
    url: str


def _link_key(short_key: str) -> str:
    return f"link:{short_key}"


def _block_key(subject_type: BlockSubject, subject_id: str) -> str:
    return f"blocked:{subject_type.value}:{subject_id}"


def counter_key(dimension: CounterDimension, short_key: str, subject: str) -> str:
    return f"counter:{dimension.value}:{short_key}:{subject}"


def _devices_key(short_key: str) -> str:
    return f"devices:{short_key}"


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


class PolicyStoreAdapter:
    def __init__(self, store: PolicyStore) -> None:
        self.store = store

    # --- Link records ---

    async def load_link(self, short_key: str) -> LinkRecord | LegacyRedirect | None:
        """Load and normalize a link. None means "not found" (including unparseable)."""
        raw = await self.store.get(_link_key(short_key))
        if raw is None:
            return None

        text = raw.strip()
        if _is_url(text):
            return LegacyRedirect(url=text)

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("link_record_unparseable", short_key=short_key)
            return None

        if isinstance(data, str) and _is_url(data.strip()):
            return LegacyRedirect(url=data.strip())
        if not isinstance(data, dict):
            logger.warning("link_record_unparseable", short_key=short_key)
            return None

        try:
            return normalize_link_record(data, short_key=short_key)
        except ValueError as e:
            logger.warning("link_record_invalid", short_key=short_key, error=str(e))
            return None

    async def save_link(self, link: LinkRecord) -> None:
        await self.store.put(_link_key(link.short_key), link.to_json())

    # --- Blocklist ---

    async def get_block(self, subject_type: BlockSubject, subject_id: str) -> BlockEntry | None:
        if not subject_id:
            return None
        raw = await self.store.get(_block_key(subject_type, subject_id))
        if raw is None:
            return None
        try:
            entry = BlockEntry.model_validate_json(raw)
        except ValidationError:
            # A block we cannot read is still a block
            return BlockEntry.create(subject_type, subject_id, reason="blocked")
        return None if entry.is_expired else entry

    async def block(self, entry: BlockEntry) -> None:
        ttl = None
        if entry.expires_at is not None:
            ttl = max(int((entry.expires_at - entry.blocked_at).total_seconds()), 1)
        await self.store.put(_block_key(entry.subject_type, entry.subject_id), entry.model_dump_json(by_alias=True), ttl=ttl)

    async def unblock(self, subject_type: BlockSubject, subject_id: str) -> None:
        await self.store.delete(_block_key(subject_type, subject_id))

    async def list_blocks(self) -> list[BlockEntry]:
        entries = []
        for key in await self.store.list("blocked:"):
            raw = await self.store.get(key)
            if raw is None:
                continue
            try:
                entry = BlockEntry.model_validate_json(raw)
            except ValidationError:
                logger.warning("block_entry_unparseable", key=key)
                continue
            if not entry.is_expired:
                entries.append(entry)
        return entries

    # --- Soft counters ---

    async def read_counter(self, dimension: CounterDimension, short_key: str, subject: str) -> int:
        raw = await self.store.get(counter_key(dimension, short_key, subject))
        try:
            return int(raw) if raw is not None else 0
        except ValueError:
            return 0

    async def increment_counter(self, dimension: CounterDimension, short_key: str, subject: str,
                                ttl: int) -> int:
        key = counter_key(dimension, short_key, subject)
        current = await self.read_counter(dimension, short_key, subject)
        value = current + 1
        await self.store.put(key, str(value), ttl=ttl)
        return value

    # --- Known devices (devices-mode links) ---

    async def known_devices(self, short_key: str) -> list[str]:
        raw = await self.store.get(_devices_key(short_key))
        if not raw:
            return []
        try:
            devices = json.loads(raw)
        except json.JSONDecodeError:
            return []
        return [str(d) for d in devices] if isinstance(devices, list) else []

    async def add_known_device(self, short_key: str, device_id: str, ttl: int) -> bool:
        devices = await self.known_devices(short_key)
        if device_id in devices:
            return False
        devices.append(device_id)
        await self.store.put(_devices_key(short_key), json.dumps(devices), ttl=ttl)
        return True
