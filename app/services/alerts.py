"""
Risk alerting.

Alerts are side effects of anomaly detection and never influence admission.
Delivery sits behind the Notifier protocol; the default notifier only logs.
Alerts are scheduled as background tasks so a slow or failing notifier
cannot delay or break the visitor's response.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from app.core.anomaly import Anomaly

import structlog

logger = structlog.get_logger()

# Keep references so scheduled alerts are not garbage collected mid-flight
_pending: set[asyncio.Task] = set()


@dataclass
class RiskAlert:
    short_key: str
    risk_score: int
    ip: str
    device_id: str
    anomalies: list[Anomaly] = field(default_factory=list)
    destination: str | None = None


class Notifier(Protocol):
    async def notify(self, alert: RiskAlert) -> None: ...


class LoggingNotifier:
    async def notify(self, alert: RiskAlert) -> None:
        logger.warning(
            "risk_alert_raised",
            short_key=alert.short_key,
            risk=alert.risk_score,
            ip=alert.ip,
            device_id=alert.device_id,
            destination=alert.destination,
            anomalies=[f"{a.type}:{a.severity.value}" for a in alert.anomalies],
        )


async def _deliver(notifier: Notifier, alert: RiskAlert) -> None:
    try:
        await notifier.notify(alert)
    except Exception as e:
        logger.warning("risk_alert_failed", short_key=alert.short_key, error=str(e))


def send_alert(notifier: Notifier, alert: RiskAlert) -> asyncio.Task:
    task = asyncio.create_task(_deliver(notifier, alert))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task
