"""Tests for best-effort visit recording and alert triggering."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from app.core.fingerprint import extract_fingerprint
from app.core.risk import assess
from app.core.visits import apply_visit, build_visit_entry, maybe_alert, record_visit
from app.models.link import VisitEntry
from app.store.base import StoreError
from app.store.policy import CounterDimension, PolicyStoreAdapter

HEADERS = {"user-agent": "clash-verge/v1.3.8", "accept-encoding": "gzip"}
IP = "203.0.113.7"


def _fp_risk(headers=HEADERS):
    fp = extract_fingerprint(headers)
    return fp, assess(fp)


def _record(policy, link, **kwargs):
    fp, risk = _fp_risk()
    return asyncio.run(record_visit(
        policy, link, fp, risk, IP, "US",
        window_seconds=kwargs.get("window_seconds", 3600),
        known_device_ttl=86400,
    ))


class TestApplyVisit:
    def test_counters_and_history(self, make_link):
        fp, risk = _fp_risk()
        link = make_link(currentVisits=2, totalVisits=7)
        entry = build_visit_entry(fp, risk, IP, "US")
        updated = apply_visit(link, entry)
        assert updated.current_visits == 3
        assert updated.total_visits == 8
        assert updated.visit_history[0] == entry
        assert updated.last_visit_at == entry.timestamp
        assert link.current_visits == 2

    def test_history_capped(self, make_link):
        fp, risk = _fp_risk()
        link = make_link()
        for _ in range(12):
            link = apply_visit(link, build_visit_entry(fp, risk, IP, "US"))
        assert len(link.visit_history) == 10

    def test_entry_fields(self):
        fp, risk = _fp_risk()
        entry = build_visit_entry(fp, risk, IP, "US")
        assert entry.device_id == fp.device_id
        assert entry.ip_address == IP
        assert entry.classification == "ProxyTool"
        assert entry.risk_score == risk.risk_score


class TestRecordVisit:
    def test_persists_link(self, policy, make_link):
        updated = _record(policy, make_link())
        stored = asyncio.run(policy.load_link("abc123"))
        assert stored.current_visits == 1
        assert stored == updated

    def test_only_configured_counters(self, policy, store, make_link):
        fp, _ = _fp_risk()
        _record(policy, make_link(visitLimits={"perIP": 5}))
        assert asyncio.run(policy.read_counter(CounterDimension.IP, "abc123", IP)) == 1
        assert asyncio.run(policy.read_counter(CounterDimension.DEVICE, "abc123", fp.device_id)) == 0

    def test_counter_ttl_is_twice_window(self, policy, store, make_link):
        before = datetime.now(timezone.utc).timestamp()
        _record(policy, make_link(visitLimits={"perIP": 5}), window_seconds=100)
        _, expires_at = store._data[f"counter:ip:abc123:{IP}"]
        assert before + 199 <= expires_at <= before + 260

    def test_link_window_overrides_default(self, policy, store, make_link):
        before = datetime.now(timezone.utc).timestamp()
        _record(policy, make_link(visitLimits={"perIP": 5, "windowSeconds": 10}), window_seconds=100)
        _, expires_at = store._data[f"counter:ip:abc123:{IP}"]
        assert expires_at <= before + 60

    def test_devices_mode_tracks_device(self, policy, make_link):
        fp, _ = _fp_risk()
        _record(policy, make_link(visitLimitMode="devices", maxDevices=3))
        assert asyncio.run(policy.known_devices("abc123")) == [fp.device_id]

    def test_uncapped_devices_mode_skips_tracking(self, policy, make_link):
        _record(policy, make_link(visitLimitMode="devices", maxDevices=-1))
        assert asyncio.run(policy.known_devices("abc123")) == []

    def test_store_failures_are_swallowed(self, make_link):
        failing = AsyncMock()
        failing.get.side_effect = StoreError("down")
        failing.put.side_effect = StoreError("down")
        link = make_link(visitLimits={"perDevice": 1}, visitLimitMode="devices", maxDevices=1)
        updated = _record(PolicyStoreAdapter(failing), link)
        assert updated.current_visits == 1


class RecordingNotifier:
    def __init__(self):
        self.alerts = []

    async def notify(self, alert):
        self.alerts.append(alert)


def _risky_history(n=5):
    now = datetime.now(timezone.utc)
    return [
        {"id": f"v{i}", "timestamp": (now - timedelta(seconds=i)).isoformat(), "deviceId": f"d{i}",
         "ipAddress": IP, "riskScore": 90}
        for i in range(n)
    ]


class TestMaybeAlert:
    def _run(self, link, score):
        notifier = RecordingNotifier()
        fp, risk = _fp_risk()
        risk.risk_score = score

        async def go():
            sent = maybe_alert(notifier, link, risk, IP, window_seconds=300, min_history=5)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            return sent

        return asyncio.run(go()), notifier

    def test_alert_sent(self, make_link):
        link = make_link(riskAlert={"enabled": True, "alertThreshold": 70}, visitHistory=_risky_history())
        sent, notifier = self._run(link, 85)
        assert sent is True
        assert len(notifier.alerts) == 1
        assert notifier.alerts[0].anomalies[0].type == "high_risk_devices"

    def test_disabled(self, make_link):
        link = make_link(riskAlert={"enabled": False}, visitHistory=_risky_history())
        sent, notifier = self._run(link, 85)
        assert sent is False
        assert notifier.alerts == []

    def test_below_threshold(self, make_link):
        link = make_link(riskAlert={"enabled": True, "alertThreshold": 90}, visitHistory=_risky_history())
        assert self._run(link, 85)[0] is False

    def test_no_anomalies(self, make_link):
        link = make_link(riskAlert={"enabled": True}, visitHistory=_risky_history(3))
        assert self._run(link, 85)[0] is False


def test_visit_entry_roundtrip_timestamp_is_utc():
    entry = VisitEntry(id="v", timestamp=datetime(2026, 1, 1, 12, 0))
    assert entry.timestamp.tzinfo == timezone.utc
