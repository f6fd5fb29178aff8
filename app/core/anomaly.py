"""
Anomaly detection over a link's recent visit history.

Rules (evaluated independently):
  rapid_visits              > 10 visits inside the trailing window   (high)
  multiple_devices_same_ip  one IP seen with > 5 device IDs in window (medium)
  high_risk_devices         > 3 visits with risk score > 70          (high)

Reports are ephemeral: they decide whether to alert and are never stored.
"""

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from app.models.link import VisitEntry

MIN_HISTORY = 5
WINDOW_SECONDS = 300
RAPID_VISIT_THRESHOLD = 10
DEVICES_PER_IP_THRESHOLD = 5
HIGH_RISK_SCORE = 70
HIGH_RISK_VISIT_THRESHOLD = 3


class Severity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class Anomaly:
    type: str
    severity: Severity
    message: str
    evidence: dict = field(default_factory=dict)


def _utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def detect_anomalies(
    history: Sequence[VisitEntry],
    now: datetime | None = None,
    window_seconds: int = WINDOW_SECONDS,
    min_history: int = MIN_HISTORY,
) -> list[Anomaly]:
    if len(history) < min_history:
        return []

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=window_seconds)
    recent = [v for v in history if _utc(v.timestamp) >= cutoff]
    anomalies: list[Anomaly] = []

    if len(recent) > RAPID_VISIT_THRESHOLD:
        anomalies.append(Anomaly(
            type="rapid_visits",
            severity=Severity.HIGH,
            message=f"{len(recent)} visits within {window_seconds // 60} minutes",
            evidence={"count": len(recent)},
        ))

    devices_by_ip: dict[str, set[str]] = defaultdict(set)
    for visit in recent:
        devices_by_ip[visit.ip_address].add(visit.device_id)
    for ip, devices in devices_by_ip.items():
        if len(devices) > DEVICES_PER_IP_THRESHOLD:
            anomalies.append(Anomaly(
                type="multiple_devices_same_ip",
                severity=Severity.MEDIUM,
                message=f"IP {ip} associated with {len(devices)} different devices",
                evidence={"ip": ip, "device_count": len(devices)},
            ))

    high_risk = [v for v in history if v.risk_score > HIGH_RISK_SCORE]
    if len(high_risk) > HIGH_RISK_VISIT_THRESHOLD:
        anomalies.append(Anomaly(
            type="high_risk_devices",
            severity=Severity.HIGH,
            message=f"{len(high_risk)} high-risk visits detected",
            evidence={"count": len(high_risk)},
        ))

    return anomalies
