"""
Risk-control admin API — block lists, visit stats, anomaly reports.

Security:
  - Requires the operator key (X-API-Key)
  - Only touches blocklist entries; link records are read, never edited here
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.api.deps import get_policy
from app.config import get_settings
from app.core.anomaly import detect_anomalies
from app.core.fingerprint import client_country, client_ip, extract_fingerprint
from app.core.risk import assess
from app.middleware.auth import require_admin_key
from app.models.block import BlockEntry, BlockSubject
from app.models.link import LinkRecord
from app.store.base import StoreError
from app.store.policy import LegacyRedirect, PolicyStoreAdapter

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/risk", tags=["risk-control"], dependencies=[Depends(require_admin_key)])


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BlockDeviceRequest(_Body):
    device_id: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    duration: int | None = Field(default=None, gt=0)


class BlockIPRequest(_Body):
    ip_address: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    duration: int | None = Field(default=None, gt=0)


class LinkStats(_Body):
    short_key: str
    total_visits: int
    current_visits: int
    max_visits: int
    known_devices: int
    unique_devices: int
    unique_ips: int
    average_risk: float
    last_visit_at: datetime | None
    recent_visits: list[dict]


def _dump(entry: BlockEntry) -> dict:
    return entry.model_dump(mode="json", by_alias=True)


async def _load_record(policy: PolicyStoreAdapter, short_key: str) -> LinkRecord:
    try:
        loaded = await policy.load_link(short_key)
    except StoreError as e:
        logger.error("link_load_failed", short_key=short_key, error=str(e))
        raise HTTPException(status_code=500, detail="Storage unavailable")
    if loaded is None or isinstance(loaded, LegacyRedirect):
        raise HTTPException(status_code=404, detail="Link not found")
    return loaded


@router.post("/block/device", status_code=201)
async def block_device(req: BlockDeviceRequest, policy: PolicyStoreAdapter = Depends(get_policy)):
    entry = BlockEntry.create(BlockSubject.DEVICE, req.device_id, req.reason, req.duration)
    await policy.block(entry)
    logger.info("device_blocked", device_id=req.device_id, reason=req.reason, duration=req.duration)
    return {"success": True, "data": _dump(entry)}


@router.post("/block/ip", status_code=201)
async def block_ip(req: BlockIPRequest, policy: PolicyStoreAdapter = Depends(get_policy)):
    entry = BlockEntry.create(BlockSubject.IP, req.ip_address, req.reason, req.duration)
    await policy.block(entry)
    logger.info("ip_blocked", ip=req.ip_address, reason=req.reason, duration=req.duration)
    return {"success": True, "data": _dump(entry)}


@router.delete("/block/device/{device_id}")
async def unblock_device(device_id: str, policy: PolicyStoreAdapter = Depends(get_policy)):
    await policy.unblock(BlockSubject.DEVICE, device_id)
    logger.info("device_unblocked", device_id=device_id)
    return {"success": True, "data": {"deviceId": device_id}}


@router.delete("/block/ip/{ip_address}")
async def unblock_ip(ip_address: str, policy: PolicyStoreAdapter = Depends(get_policy)):
    await policy.unblock(BlockSubject.IP, ip_address)
    logger.info("ip_unblocked", ip=ip_address)
    return {"success": True, "data": {"ipAddress": ip_address}}


@router.get("/blocked")
async def list_blocked(policy: PolicyStoreAdapter = Depends(get_policy)):
    entries = await policy.list_blocks()
    return {"success": True, "data": [_dump(e) for e in entries]}


@router.get("/stats/{short_key}")
async def link_stats(short_key: str, policy: PolicyStoreAdapter = Depends(get_policy)):
    link = await _load_record(policy, short_key)
    history = link.visit_history
    devices = await policy.known_devices(short_key)

    stats = LinkStats(
        short_key=link.short_key,
        total_visits=link.total_visits,
        current_visits=link.current_visits,
        max_visits=link.max_visits,
        known_devices=len(devices),
        unique_devices=len({v.device_id for v in history}),
        unique_ips=len({v.ip_address for v in history}),
        average_risk=round(sum(v.risk_score for v in history) / len(history), 1) if history else 0.0,
        last_visit_at=link.last_visit_at,
        recent_visits=[v.model_dump(mode="json", by_alias=True) for v in history],
    )
    return {"success": True, "data": stats.model_dump(mode="json", by_alias=True)}


@router.get("/anomalies/{short_key}")
async def link_anomalies(short_key: str, policy: PolicyStoreAdapter = Depends(get_policy)):
    settings = get_settings()
    link = await _load_record(policy, short_key)
    anomalies = detect_anomalies(
        link.visit_history,
        window_seconds=settings.anomaly_window_seconds,
        min_history=settings.anomaly_min_history,
    )
    return {
        "success": True,
        "data": [
            {"type": a.type, "severity": a.severity.value, "message": a.message, "evidence": a.evidence}
            for a in anomalies
        ],
    }


@router.post("/inspect")
async def inspect_request(request: Request):
    """Show how the pipeline sees the calling client."""
    settings = get_settings()
    fp = extract_fingerprint(request.headers)
    risk = assess(fp)
    return {
        "success": True,
        "data": {
            "deviceId": fp.device_id,
            "ip": client_ip(request.headers, settings.client_ip_headers,
                            fallback=request.client.host if request.client else None),
            "country": client_country(request.headers, settings.country_header) or None,
            "platform": fp.platform,
            "browser": fp.browser,
            "screen": {"width": fp.screen.width, "height": fp.screen.height, "source": fp.screen.source},
            "timezone": fp.timezone,
            "riskScore": risk.risk_score,
            "classification": risk.classification.value,
            "confidence": risk.confidence,
            "isBrowser": risk.is_browser,
            "isAutomationTool": risk.is_automation_tool,
            "isCrawler": risk.is_crawler,
            "isProxyTool": risk.is_proxy_tool,
        },
    }
