"""
Proxy-mode forwarding collaborator.

The pipeline only decides to forward; this module performs the fetch. The
destination sees a server-controlled identity (no visitor IP, cookies or
forwarding headers) and the visitor only ever sees this service's URL.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from fastapi import HTTPException
from fastapi.responses import Response

from app.services.header_probe import sendable_headers

import structlog

logger = structlog.get_logger()

PASSTHROUGH_REQUEST_HEADERS = ("accept", "accept-language", "cache-control", "pragma", "content-type")

HOP_BY_HOP = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade",
    # body is re-encoded by us
    "content-encoding", "content-length",
    # upstream cookies belong to the upstream origin
    "set-cookie",
}


@dataclass
class ForwardRequest:
    method: str
    headers: Mapping[str, str]
    body: bytes = b""
    custom_headers: dict[str, str] = field(default_factory=dict)


class Forwarder(Protocol):
    async def forward(self, target_url: str, req: ForwardRequest) -> Response: ...


def outbound_headers(visitor_headers: Mapping[str, str], default_user_agent: str) -> dict[str, str]:
    h = {k.lower(): v for k, v in visitor_headers.items()}
    out = {name: h[name] for name in PASSTHROUGH_REQUEST_HEADERS if h.get(name)}
    out["user-agent"] = h.get("user-agent") or default_user_agent
    out.setdefault("accept", "*/*")
    return out


class HttpxForwarder:
    def __init__(self, client: httpx.AsyncClient, default_user_agent: str, timeout: float) -> None:
        self.client = client
        self.default_user_agent = default_user_agent
        self.timeout = timeout

    async def forward(self, target_url: str, req: ForwardRequest) -> Response:
        try:
            upstream = await self.client.request(
                req.method,
                target_url,
                headers=outbound_headers(req.headers, self.default_user_agent),
                content=req.body or None,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.warning("proxy_forward_failed", url=target_url, error=str(e) or type(e).__name__)
            raise HTTPException(status_code=502, detail="Failed to proxy request")

        headers = {k: v for k, v in upstream.headers.items() if k.lower() not in HOP_BY_HOP}
        headers.update(sendable_headers({k.lower(): v for k, v in req.custom_headers.items()}))
        return Response(content=upstream.content, status_code=upstream.status_code, headers=headers)
