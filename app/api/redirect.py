"""
Visitor endpoint — /{short_key}

Flow:
  1. Load link record (legacy bare URL → permanent redirect)
  2. Fingerprint visitor from headers, resolve edge IP + country
  3. Score risk + classify client
  4. Gate chain (first denial wins; proxy clients may get a mock node)
  5. Access dispatcher picks redirect / password / warning / iframe / proxy
  6. If the visit counts: update counters + history (best-effort),
     run anomaly detection, schedule alert
  7. Respond: redirect (with probed + custom headers), page, or forwarded response

Denials are 403 with a readable reason. Storage failures while recording a
visit never block an admitted visitor; storage failures while READING
policy deny the visit.
"""

import time

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from app.api.deps import get_forwarder, get_http_client, get_notifier, get_policy
from app.api.pages import iframe_page, password_page, warning_page
from app.config import get_settings
from app.core.dispatch import DispatchInput, ForwardTo, Page, RenderPage, dispatch
from app.core.fingerprint import client_country, client_ip, extract_fingerprint
from app.core.gates import Deny, GateChain, GateContext, MockNode
from app.core.risk import assess
from app.core.visits import maybe_alert, record_visit
from app.models.link import LinkRecord
from app.services.alerts import Notifier
from app.services.forwarder import Forwarder, ForwardRequest
from app.services.header_probe import merge_redirect_headers, probe_headers
from app.store.base import StoreError
from app.store.policy import LegacyRedirect, PolicyStoreAdapter

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["visit"])

RESERVED_KEYS = {"health", "docs", "redoc", "openapi.json", "favicon.ico", "robots.txt", "v1", "api"}


async def _redirect_headers(
    client: httpx.AsyncClient,
    link: LinkRecord,
    user_agent: str,
) -> dict[str, str]:
    settings = get_settings()
    probed: dict[str, str] = {}
    if settings.header_probe_enabled:
        probed = await probe_headers(
            client,
            link.target_url,
            allowed=settings.propagated_headers,
            timeout=settings.header_probe_timeout_seconds,
            user_agent=user_agent or settings.proxy_user_agent,
        )
    return merge_redirect_headers(probed, link.custom_headers)


@router.api_route("/{short_key}", methods=["GET", "HEAD", "POST"])
async def visit(
    request: Request,
    short_key: str,
    policy: PolicyStoreAdapter = Depends(get_policy),
    client: httpx.AsyncClient = Depends(get_http_client),
    notifier: Notifier = Depends(get_notifier),
    forwarder: Forwarder = Depends(get_forwarder),
):
    server_start = time.monotonic()
    settings = get_settings()

    if short_key.lower() in RESERVED_KEYS:
        raise HTTPException(status_code=404, detail="Not found")

    # --- 1. Load link ---
    try:
        loaded = await policy.load_link(short_key)
    except StoreError as e:
        logger.error("link_load_failed", short_key=short_key, error=str(e))
        raise HTTPException(status_code=500, detail="Storage unavailable")

    if loaded is None:
        raise HTTPException(status_code=404, detail="Short link not found")
    if isinstance(loaded, LegacyRedirect):
        logger.info("legacy_redirect", short_key=short_key)
        return RedirectResponse(url=loaded.url, status_code=301)
    link = loaded

    # --- 2. Fingerprint + edge metadata ---
    fp = extract_fingerprint(request.headers)
    ip = client_ip(
        request.headers,
        settings.client_ip_headers,
        fallback=request.client.host if request.client else None,
    )
    country = client_country(request.headers, settings.country_header)

    # --- 3. Risk ---
    risk = assess(fp)

    # --- 4. Gates ---
    chain = GateChain(policy, settings.default_allowed_countries)
    result = await chain.evaluate(GateContext(link=link, fingerprint=fp, risk=risk, ip=ip, country=country))

    if isinstance(result, Deny):
        logger.info("link_denied", short_key=short_key, gate=result.gate, reason=result.reason,
                    ip=ip, device_id=fp.device_id, risk=risk.risk_score)
        raise HTTPException(status_code=result.status_code, detail=result.reason)
    if isinstance(result, MockNode):
        logger.info("mock_node_served", short_key=short_key, country=result.country, ip=ip)
        return JSONResponse(
            content=result.payload,
            status_code=result.status_code,
            headers={"Cache-Control": "no-store"},
        )

    # --- 5. Dispatch ---
    outcome = dispatch(link, DispatchInput.from_query(dict(request.query_params)))

    # --- 6. Record visit ---
    if outcome.counts_visit:
        link = await record_visit(
            policy, link, fp, risk, ip, country,
            window_seconds=settings.visit_limit_window_seconds,
            known_device_ttl=settings.known_device_ttl_seconds,
            history_size=settings.visit_history_size,
        )
        maybe_alert(
            notifier, link, risk, ip,
            window_seconds=settings.anomaly_window_seconds,
            min_history=settings.anomaly_min_history,
        )

    logger.info("link_visit",
                short_key=short_key,
                outcome=type(outcome).__name__,
                classification=risk.classification.value,
                risk=risk.risk_score,
                device_id=fp.device_id,
                ip=ip,
                country=country or None,
                elapsed_ms=int((time.monotonic() - server_start) * 1000))

    # --- 7. Respond ---
    if isinstance(outcome, RenderPage):
        if outcome.page == Page.PASSWORD_PROMPT:
            return password_page(error=outcome.error, status_code=outcome.status_code)
        if outcome.page == Page.WARNING:
            return warning_page(link, password=request.query_params.get("password"))
        return iframe_page(link)

    if isinstance(outcome, ForwardTo):
        return await forwarder.forward(outcome.url, ForwardRequest(
            method=request.method,
            headers=request.headers,
            body=await request.body(),
            custom_headers=link.custom_headers,
        ))

    headers = await _redirect_headers(client, link, fp.user_agent)
    response: Response = RedirectResponse(url=outcome.url, status_code=outcome.status_code)
    for name, value in headers.items():
        if name == "location":
            continue
        response.headers[name] = value
    return response
