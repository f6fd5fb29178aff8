"""
Best-effort visit recording.

Runs after a visit is admitted and the dispatcher says it counts. Each step
is guarded on its own: a failed write is logged and the visitor still
reaches the destination. Nothing here is transactional; concurrent visits
to the same link can lose counter updates.
"""

import uuid
from datetime import datetime, timezone

from app.core.anomaly import detect_anomalies
from app.core.fingerprint import VisitorFingerprint
from app.core.risk import RiskAssessment
from app.models.link import HISTORY_LIMIT, LinkRecord, VisitEntry, VisitLimitMode
from app.services.alerts import Notifier, RiskAlert, send_alert
from app.store.policy import CounterDimension, PolicyStoreAdapter

import structlog

logger = structlog.get_logger()


def build_visit_entry(fp: VisitorFingerprint, risk: RiskAssessment, ip: str, country: str,
                      now: datetime | None = None) -> VisitEntry:
    return VisitEntry(
        id=uuid.uuid4().hex,
        timestamp=now or datetime.now(timezone.utc),
        device_id=fp.device_id,
        ip_address=ip,
        user_agent=fp.user_agent[:500],
        country=country,
        risk_score=risk.risk_score,
        classification=risk.classification.value,
    )


def apply_visit(link: LinkRecord, entry: VisitEntry, history_size: int = HISTORY_LIMIT) -> LinkRecord:
    """Return a copy of the link with counters, timestamps and history updated."""
    return link.model_copy(update={
        "current_visits": link.current_visits + 1,
        "total_visits": link.total_visits + 1,
        "last_visit_at": entry.timestamp,
        "updated_at": entry.timestamp,
        "visit_history": [entry, *link.visit_history][:min(history_size, HISTORY_LIMIT)],
    })


async def record_visit(
    policy: PolicyStoreAdapter,
    link: LinkRecord,
    fp: VisitorFingerprint,
    risk: RiskAssessment,
    ip: str,
    country: str,
    window_seconds: int,
    known_device_ttl: int,
    history_size: int = HISTORY_LIMIT,
) -> LinkRecord:
    entry = build_visit_entry(fp, risk, ip, country)
    updated = apply_visit(link, entry, history_size)

    # --- 1. Link counters + history ---
    try:
        await policy.save_link(updated)
    except Exception as e:
        logger.warning("visit_record_failed", step="link", short_key=link.short_key, error=str(e))

    # --- 2. Soft counters (TTL = 2x window) ---
    limits = link.visit_limits
    ttl = 2 * (limits.window_seconds or window_seconds)
    counters = [
        (limits.per_device, CounterDimension.DEVICE, fp.device_id),
        (limits.per_ip, CounterDimension.IP, ip),
        (limits.per_device_ip, CounterDimension.DEVICE_IP, f"{fp.device_id}:{ip}"),
    ]
    for limit, dimension, subject in counters:
        if not limit:
            continue
        try:
            await policy.increment_counter(dimension, link.short_key, subject, ttl=ttl)
        except Exception as e:
            logger.warning("visit_record_failed", step=f"counter:{dimension.value}",
                           short_key=link.short_key, error=str(e))

    # --- 3. Known devices ---
    if link.visit_limit_mode == VisitLimitMode.DEVICES and link.max_devices > 0:
        try:
            await policy.add_known_device(link.short_key, fp.device_id, ttl=known_device_ttl)
        except Exception as e:
            logger.warning("visit_record_failed", step="devices", short_key=link.short_key, error=str(e))

    return updated


def maybe_alert(
    notifier: Notifier,
    link: LinkRecord,
    risk: RiskAssessment,
    ip: str,
    window_seconds: int,
    min_history: int,
) -> bool:
    """Run anomaly detection on the updated history and schedule an alert if warranted."""
    alert_cfg = link.risk_alert
    if not alert_cfg.enabled or risk.risk_score < alert_cfg.alert_threshold:
        return False
    try:
        anomalies = detect_anomalies(link.visit_history, window_seconds=window_seconds, min_history=min_history)
        if not anomalies:
            return False
        send_alert(notifier, RiskAlert(
            short_key=link.short_key,
            risk_score=risk.risk_score,
            ip=ip,
            device_id=risk.device_id,
            anomalies=anomalies,
            destination=alert_cfg.destination,
        ))
        return True
    except Exception as e:
        logger.warning("risk_alert_failed", short_key=link.short_key, error=str(e))
        return False
