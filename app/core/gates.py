"""
Gate chain — ordered admission checks for a visitor against a link.

Order (first denial wins, so it decides which message a visitor sees):
  1. lifecycle        disabled / expired
  2. blocklist        device or IP blocked by an admin
  3. country          edge country not allowed (proxy clients get a mock node)
  4. ua_filter        browser/automation/crawler blocking, UA patterns
  5. visit_limits     fine-grained total/perDevice/perIP/perDeviceIP thresholds
  6. visit_limit_mode coarse total-visits / distinct-devices caps

A gate returns None to pass. Missing optional config means "no restriction".
Store failures during a gate deny the visit: gating reads fail closed.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from app.core.fingerprint import VisitorFingerprint
from app.core.mock_node import country_name, mock_node_payload
from app.core.risk import RiskAssessment
from app.models.block import BlockSubject
from app.models.link import LinkRecord, VisitLimitMode
from app.store.base import StoreError
from app.store.policy import CounterDimension, PolicyStoreAdapter

import structlog

logger = structlog.get_logger()

DEFAULT_ALLOWED_COUNTRIES = ["HK", "JP", "US", "SG", "TW"]


def lifecycle_reason(link: LinkRecord) -> str | None:
    """Why a link cannot be used at all, or None."""
    if not link.is_active:
        return "This link has been disabled"
    if link.is_expired:
        return "This link has expired"
    return None


@dataclass(frozen=True)
class Admit:
    pass


@dataclass(frozen=True)
class Deny:
    reason: str
    status_code: int = 403
    gate: str = ""


@dataclass(frozen=True)
class MockNode:
    """Country gate outcome for proxy clients: 200 with a placeholder config."""
    country: str
    payload: dict = field(default_factory=dict)
    status_code: int = 200


GateResult = Admit | Deny | MockNode

ADMIT = Admit()


@dataclass
class GateContext:
    link: LinkRecord
    fingerprint: VisitorFingerprint
    risk: RiskAssessment
    ip: str
    country: str = ""


@dataclass
class VisitLimitViolation:
    type: str
    message: str
    limit: int
    current: int


Gate = Callable[[GateContext], Awaitable[Deny | MockNode | None]]


class GateChain:
    def __init__(
        self,
        policy: PolicyStoreAdapter,
        default_allowed_countries: list[str] | None = None,
    ) -> None:
        self.policy = policy
        self.default_allowed_countries = default_allowed_countries or DEFAULT_ALLOWED_COUNTRIES
        self.gates: list[tuple[str, Gate]] = [
            ("lifecycle", self.lifecycle),
            ("blocklist", self.blocklist),
            ("country", self.country),
            ("ua_filter", self.ua_filter),
            ("visit_limits", self.visit_limits),
            ("visit_limit_mode", self.visit_limit_mode),
        ]

    async def evaluate(self, ctx: GateContext) -> GateResult:
        for name, gate in self.gates:
            try:
                result = await gate(ctx)
            except StoreError as e:
                logger.error("gate_read_failed", gate=name, short_key=ctx.link.short_key, error=str(e))
                return Deny("Access check unavailable, please retry later", gate=name)
            if result is None:
                continue
            if isinstance(result, Deny):
                result = Deny(result.reason, result.status_code, gate=name)
            return result
        return ADMIT

    # --- 1. Lifecycle ---

    async def lifecycle(self, ctx: GateContext) -> Deny | None:
        reason = lifecycle_reason(ctx.link)
        return Deny(reason) if reason else None

    # --- 2. Blocklist ---

    async def blocklist(self, ctx: GateContext) -> Deny | None:
        device = await self.policy.get_block(BlockSubject.DEVICE, ctx.fingerprint.device_id)
        if device is not None:
            return Deny(f"Device blocked: {device.reason}")
        ip = await self.policy.get_block(BlockSubject.IP, ctx.ip)
        if ip is not None:
            return Deny(f"IP blocked: {ip.reason}")
        return None

    # --- 3. Country ---

    async def country(self, ctx: GateContext) -> Deny | MockNode | None:
        restriction = ctx.link.country_restriction
        if not restriction.enabled:
            return None
        allowed = restriction.allowed_countries or self.default_allowed_countries
        if ctx.country and ctx.country.upper() in allowed:
            return None
        if ctx.risk.is_proxy_tool:
            return MockNode(country=ctx.country, payload=mock_node_payload(ctx.country))
        return Deny(f"Access from your region ({country_name(ctx.country)}) is not allowed for this link")

    # --- 4. UA filters ---

    async def ua_filter(self, ctx: GateContext) -> Deny | None:
        ua_filter = ctx.link.ua_filter
        risk = ctx.risk
        if ua_filter.block_browsers:
            if risk.is_browser:
                return Deny("Browser access is not allowed for this link")
            if risk.is_automation_tool:
                return Deny("Automated tool access is blocked")
            if risk.is_crawler:
                return Deny("Crawler access is blocked")

        ua = ctx.fingerprint.user_agent.lower()
        if ua_filter.blocked_patterns and any(p.lower() in ua for p in ua_filter.blocked_patterns):
            return Deny("Your client is not allowed to access this link")
        if ua_filter.allowed_patterns and not any(p.lower() in ua for p in ua_filter.allowed_patterns):
            return Deny("Your client is not in the allowed list for this link")
        return None

    # --- 5. Fine-grained visit limits ---

    async def check_visit_limits(self, ctx: GateContext) -> list[VisitLimitViolation]:
        """Evaluate every configured threshold; no short-circuit between them."""
        link = ctx.link
        limits = link.visit_limits
        device_id = ctx.fingerprint.device_id
        violations: list[VisitLimitViolation] = []

        if limits.total and link.total_visits >= limits.total:
            violations.append(VisitLimitViolation(
                "total_limit", "Total visit limit reached", limits.total, link.total_visits,
            ))

        checks = [
            (limits.per_device, CounterDimension.DEVICE, device_id, "device_limit", "Device visit limit reached"),
            (limits.per_ip, CounterDimension.IP, ctx.ip, "ip_limit", "IP visit limit reached"),
            (limits.per_device_ip, CounterDimension.DEVICE_IP, f"{device_id}:{ctx.ip}",
             "device_ip_limit", "Device and IP visit limit reached"),
        ]
        for limit, dimension, subject, kind, message in checks:
            if not limit:
                continue
            current = await self.policy.read_counter(dimension, link.short_key, subject)
            if current >= limit:
                violations.append(VisitLimitViolation(kind, message, limit, current))

        return violations

    async def visit_limits(self, ctx: GateContext) -> Deny | None:
        if ctx.link.visit_limits.is_empty:
            return None
        violations = await self.check_visit_limits(ctx)
        if not violations:
            return None
        logger.info(
            "visit_limit_violations",
            short_key=ctx.link.short_key,
            violations=[v.type for v in violations],
        )
        return Deny(violations[0].message)

    # --- 6. Coarse visit-limit modes ---

    async def visit_limit_mode(self, ctx: GateContext) -> Deny | None:
        link = ctx.link
        if link.visit_limit_mode == VisitLimitMode.DEVICES and link.max_devices > 0:
            devices = await self.policy.known_devices(link.short_key)
            # Known devices are always re-admitted, even at the cap
            if len(devices) >= link.max_devices and ctx.fingerprint.device_id not in devices:
                return Deny(f"Device limit reached ({link.max_devices} devices)")
            return None

        # total mode, legacy records with no mode, and devices mode without a device cap
        if link.max_visits > 0 and link.current_visits >= link.max_visits:
            return Deny("This link has reached its visit limit")
        return None
