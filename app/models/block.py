"""Block entries — administrative denials keyed by device ID or IP."""

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BlockSubject(str, Enum):
    DEVICE = "device"
    IP = "ip"


class BlockEntry(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    subject_type: BlockSubject
    subject_id: str
    reason: str = ""
    blocked_at: datetime
    expires_at: datetime | None = None

    @classmethod
    def create(cls, subject_type: BlockSubject, subject_id: str, reason: str,
               duration_seconds: int | None = None) -> "BlockEntry":
        now = datetime.now(timezone.utc)
        return cls(
            subject_type=subject_type,
            subject_id=subject_id,
            reason=reason,
            blocked_at=now,
            expires_at=now + timedelta(seconds=duration_seconds) if duration_seconds else None,
        )

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires = self.expires_at if self.expires_at.tzinfo else self.expires_at.replace(tzinfo=timezone.utc)
        return expires <= datetime.now(timezone.utc)
