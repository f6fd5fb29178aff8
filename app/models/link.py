"""
Link records — the unit of policy configuration and mutable counters.

Records are stored as JSON under ``link:{short_key}``. Older records may
omit fields, use snake_case keys (``long_url``, ``visit_limit_mode``) or
carry nested JSON as strings; ``normalize_link_record`` is the single read
boundary and everything downstream can rely on every field being present.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

HISTORY_LIMIT = 10


class AccessMode(str, Enum):
    REDIRECT = "redirect"
    PASSWORD = "password"
    WARNING = "warning"
    IFRAME = "iframe"
    PROXY = "proxy"


class VisitLimitMode(str, Enum):
    NONE = "none"
    TOTAL = "total"
    DEVICES = "devices"


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _count(value: Any) -> int:
    """Coerce legacy numeric fields; anything unusable counts as zero."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class VisitLimits(_Record):
    total: int = 0
    per_device: int = 0
    per_ip: int = Field(default=0, alias="perIP")
    per_device_ip: int = Field(default=0, alias="perDeviceIP")
    window_seconds: int | None = None

    @field_validator("total", "per_device", "per_ip", "per_device_ip", mode="before")
    @classmethod
    def _coerce(cls, v):
        return max(_count(v), 0)

    @property
    def is_empty(self) -> bool:
        return not (self.total or self.per_device or self.per_ip or self.per_device_ip)


class UAFilter(_Record):
    block_browsers: bool = False
    allowed_patterns: list[str] = Field(default_factory=list)
    blocked_patterns: list[str] = Field(default_factory=list)

    @field_validator("block_browsers", mode="before")
    @classmethod
    def _block_browsers(cls, v):
        return _flag(v, default=False)

    @field_validator("allowed_patterns", "blocked_patterns", mode="before")
    @classmethod
    def _patterns(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(p).strip() for p in v if str(p).strip()]


class CountryRestriction(_Record):
    enabled: bool = False
    allowed_countries: list[str] = Field(default_factory=list)

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled(cls, v):
        return _flag(v, default=False)

    @field_validator("allowed_countries", mode="before")
    @classmethod
    def _upper(cls, v):
        if not v:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(c).strip().upper() for c in v if str(c).strip()]


class RiskAlertConfig(_Record):
    enabled: bool = False
    destination: str | None = None
    alert_threshold: int = 70

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled(cls, v):
        return _flag(v, default=False)


class VisitEntry(_Record):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime
    device_id: str = ""
    ip_address: str = ""
    user_agent: str = ""
    country: str = ""
    risk_score: int = 0
    classification: str = "Unknown"

    @field_validator("timestamp", mode="after")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class LinkRecord(_Record):
    short_key: str
    target_url: str
    title: str = ""
    is_active: bool = True
    expires_at: datetime | None = None
    access_mode: AccessMode = AccessMode.REDIRECT
    password_hash: str | None = None
    visit_limit_mode: VisitLimitMode = VisitLimitMode.NONE
    max_visits: int = -1
    max_devices: int = -1
    current_visits: int = 0
    total_visits: int = 0
    visit_limits: VisitLimits = Field(default_factory=VisitLimits)
    ua_filter: UAFilter = Field(default_factory=UAFilter)
    country_restriction: CountryRestriction = Field(default_factory=CountryRestriction)
    risk_alert: RiskAlertConfig = Field(default_factory=RiskAlertConfig)
    custom_headers: dict[str, str] = Field(default_factory=dict)
    visit_history: list[VisitEntry] = Field(default_factory=list)
    last_visit_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires = self.expires_at if self.expires_at.tzinfo else self.expires_at.replace(tzinfo=timezone.utc)
        return expires < datetime.now(timezone.utc)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# snake_case / renamed keys written by older versions of the service
_LEGACY_KEYS = {
    "long_url": "targetUrl",
    "longUrl": "targetUrl",
    "short_key": "shortKey",
    "is_active": "isActive",
    "expires_at": "expiresAt",
    "access_mode": "accessMode",
    "password_hash": "passwordHash",
    "password": "passwordHash",
    "visit_limit_mode": "visitLimitMode",
    "max_visits": "maxVisits",
    "max_devices": "maxDevices",
    "current_visits": "currentVisits",
    "total_visits": "totalVisits",
    "visit_limits": "visitLimits",
    "ua_filter": "uaFilter",
    "country_restriction": "countryRestriction",
    "risk_alert": "riskAlert",
    "custom_headers": "customHeaders",
    "visit_history": "visitHistory",
    "last_visit_at": "lastVisitAt",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

_NESTED = ("visitLimits", "uaFilter", "countryRestriction", "riskAlert", "customHeaders")
_COUNTERS = ("maxVisits", "maxDevices", "currentVisits", "totalVisits")


def _enum_or_default(value: Any, enum: type[Enum], default: Enum) -> Enum:
    try:
        return enum(str(value).lower())
    except ValueError:
        return default


_FALSE_STRINGS = {"false", "0", "no", "off", ""}


def _flag(value: Any, default: bool) -> bool:
    """Stored booleans may be null or strings; null means the default."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _flatten_visit(item: dict[str, Any]) -> dict[str, Any]:
    # Older history entries nest the fingerprint under deviceInfo
    info = item.get("deviceInfo")
    if not isinstance(info, dict):
        return item
    flat = dict(item)
    for key in ("deviceId", "userAgent"):
        if not flat.get(key) and info.get(key):
            flat[key] = info[key]
    return flat


def normalize_link_record(raw: dict[str, Any], short_key: str | None = None) -> LinkRecord:
    """Build a LinkRecord from a stored dict, defaulting every absent field.

    Raises ValueError when the dict cannot describe a link at all (no
    destination, or values pydantic cannot coerce).
    """
    data: dict[str, Any] = {}
    for key, value in raw.items():
        target = _LEGACY_KEYS.get(key, key)
        # camelCase wins over a legacy spelling of the same field
        if target in data and key != target:
            continue
        data[target] = value

    if short_key and not data.get("shortKey"):
        data["shortKey"] = short_key
    if not data.get("targetUrl"):
        raise ValueError("link record has no destination")

    for key in _NESTED:
        value = data.get(key)
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else None
            except json.JSONDecodeError:
                value = None
        if not isinstance(value, dict):
            data.pop(key, None)
        else:
            data[key] = value

    for key in _COUNTERS:
        if key in data:
            data[key] = _count(data[key]) if data[key] is not None else (-1 if key.startswith("max") else 0)

    data["accessMode"] = _enum_or_default(data.get("accessMode") or "redirect", AccessMode, AccessMode.REDIRECT)
    data["visitLimitMode"] = _enum_or_default(
        data.get("visitLimitMode") or "none", VisitLimitMode, VisitLimitMode.NONE
    )
    data["isActive"] = _flag(data.get("isActive"), default=True)
    if not data.get("passwordHash"):
        data["passwordHash"] = None
    if not data.get("expiresAt"):
        data["expiresAt"] = None

    history = data.get("visitHistory")
    entries: list[VisitEntry] = []
    if isinstance(history, list):
        for item in history:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(VisitEntry.model_validate(_flatten_visit(item)))
            except ValidationError:
                continue
    data["visitHistory"] = entries[:HISTORY_LIMIT]

    try:
        return LinkRecord.model_validate(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e
