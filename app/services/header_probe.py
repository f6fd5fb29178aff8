"""
Destination header probe for redirect responses.

Before redirecting, the destination is asked for its response headers (HEAD,
short timeout) so that a curated set — subscription usage, download
filename, cache metadata — can ride along on the redirect. Proxy clients
read these from the first response they see. Any failure means "no probed
headers", never a failed redirect.
"""

import re
from urllib.parse import quote

import httpx

import structlog

logger = structlog.get_logger()

_FILENAME = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)


async def probe_headers(
    client: httpx.AsyncClient,
    url: str,
    allowed: list[str],
    timeout: float,
    user_agent: str | None = None,
) -> dict[str, str]:
    headers = {"User-Agent": user_agent} if user_agent else {}
    try:
        resp = await client.head(url, headers=headers, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.info("header_probe_failed", url=url, error=str(e) or type(e).__name__)
        return {}

    if resp.status_code >= 400:
        logger.info("header_probe_rejected", url=url, status=resp.status_code)
        return {}

    wanted = {h.lower() for h in allowed}
    return {name: value for name, value in resp.headers.items() if name.lower() in wanted}


def merge_redirect_headers(probed: dict[str, str], custom: dict[str, str]) -> dict[str, str]:
    """Link-level custom headers always override probed ones (case-insensitive)."""
    merged = {k.lower(): v for k, v in probed.items()}
    merged.update({k.lower(): v for k, v in custom.items()})
    return sendable_headers(merged)


def _latin1(value: str) -> bool:
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def _encode_filename(match: re.Match) -> str:
    return "filename*=UTF-8''" + quote(match.group(1).strip(), safe="")


def sendable_headers(headers: dict[str, str]) -> dict[str, str]:
    """Keep only headers HTTP can carry. Non-latin-1 filenames use RFC 5987 encoding."""
    out: dict[str, str] = {}
    for name, value in headers.items():
        if not name.isascii():
            logger.warning("header_dropped", header=name, reason="non-ascii name")
            continue
        if not _latin1(value) and name.lower() == "content-disposition":
            value = _FILENAME.sub(_encode_filename, value)
        if not _latin1(value):
            logger.warning("header_dropped", header=name, reason="non-latin-1 value")
            continue
        out[name] = value
    return out
