"""
Visitor fingerprinting from request headers only.

No client script is involved: everything here comes from headers a client
happens to send. The device ID is a truncated SHA-256 over the sorted
feature set, so identical header sets always map to the same ID. It is a
best-effort identity, not an unguessable one.
"""

import hashlib
import ipaddress
import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field

UNKNOWN = "unknown"
DEVICE_ID_LENGTH = 32

# Ordered (substring, label) tables. First match wins.
PLATFORM_PATTERNS: list[tuple[tuple[str, ...], str]] = [
    (("windows",), "Windows"),
    (("iphone", "ipad", "ipod"), "iOS"),
    (("android",), "Android"),
    (("macintosh", "mac os"), "macOS"),
    (("cros",), "ChromeOS"),
    (("linux",), "Linux"),
]

BROWSER_PATTERNS: list[tuple[tuple[str, ...], str]] = [
    (("clash", "mihomo"), "Clash"),
    (("v2ray",), "V2Ray"),
    (("quantumult",), "Quantumult"),
    (("surge",), "Surge"),
    (("shadowrocket",), "Shadowrocket"),
    (("sing-box",), "Sing-Box"),
    (("edg/", "edge/", "edga/", "edgios/"), "Edge"),
    (("opr/", "opera"), "Opera"),
    (("chrome", "crios"), "Chrome"),
    (("firefox", "fxios"), "Firefox"),
    (("safari",), "Safari"),
]

VIEWPORT_WIDTH_HEADERS = ("sec-ch-viewport-width", "sec-ch-ua-viewport-width", "viewport-width")
VIEWPORT_HEIGHT_HEADERS = ("sec-ch-viewport-height", "sec-ch-ua-viewport-height", "viewport-height")
TIMEZONE_HEADERS = ("cf-timezone", "x-timezone")


@dataclass
class ScreenInfo:
    width: str = UNKNOWN
    height: str = UNKNOWN
    source: str = "none"

    @property
    def known(self) -> bool:
        return self.source != "none"


@dataclass
class BrowserSignals:
    """Presence of headers that real, modern browsers send on their own."""
    has_sec_fetch: bool = False
    has_sec_ch_ua: bool = False
    has_upgrade_insecure_requests: bool = False
    has_dnt: bool = False
    has_save_data: bool = False
    has_viewport_info: bool = False
    has_referer: bool = False
    has_origin: bool = False
    is_ajax: bool = False
    is_fetch: bool = False
    is_navigation: bool = False

    @property
    def any_modern(self) -> bool:
        return (
            self.has_sec_fetch
            or self.has_sec_ch_ua
            or self.has_upgrade_insecure_requests
            or self.has_dnt
            or self.has_save_data
            or self.has_viewport_info
        )


@dataclass
class VisitorFingerprint:
    device_id: str
    user_agent: str
    accept_language: str
    accept_encoding: str
    connection: str
    cache_control: str
    referer: str
    origin: str
    platform: str
    browser: str
    screen: ScreenInfo = field(default_factory=ScreenInfo)
    timezone: str = UNKNOWN
    signals: BrowserSignals = field(default_factory=BrowserSignals)

    def features(self) -> dict:
        data = asdict(self)
        data.pop("device_id")
        return data


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def _match(ua: str, table: list[tuple[tuple[str, ...], str]]) -> str:
    lowered = ua.lower()
    for needles, label in table:
        if any(n in lowered for n in needles):
            return label
    return "Unknown"


def extract_platform(user_agent: str) -> str:
    return _match(user_agent, PLATFORM_PATTERNS)


def extract_browser(user_agent: str) -> str:
    return _match(user_agent, BROWSER_PATTERNS)


def _first(h: dict[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        value = h.get(name, "").strip()
        if value:
            return value
    return ""


def _screen(h: dict[str, str]) -> ScreenInfo:
    width = _first(h, VIEWPORT_WIDTH_HEADERS)
    height = _first(h, VIEWPORT_HEIGHT_HEADERS)
    if width and height:
        return ScreenInfo(width=width, height=height, source="client-hints")
    return ScreenInfo()


def _signals(h: dict[str, str]) -> BrowserSignals:
    fetch_mode = h.get("sec-fetch-mode", "")
    return BrowserSignals(
        has_sec_fetch=any(h.get(k) for k in ("sec-fetch-site", "sec-fetch-mode", "sec-fetch-dest", "sec-fetch-user")),
        has_sec_ch_ua=any(h.get(k) for k in ("sec-ch-ua", "sec-ch-ua-mobile", "sec-ch-ua-platform")),
        has_upgrade_insecure_requests=h.get("upgrade-insecure-requests") == "1",
        has_dnt=h.get("dnt") == "1",
        has_save_data=h.get("save-data", "").lower() == "on",
        has_viewport_info=bool(_first(h, VIEWPORT_WIDTH_HEADERS + VIEWPORT_HEIGHT_HEADERS)),
        has_referer=bool(h.get("referer")),
        has_origin=bool(h.get("origin")),
        is_ajax=h.get("x-requested-with") == "XMLHttpRequest",
        is_fetch=fetch_mode == "cors",
        is_navigation=fetch_mode == "navigate",
    )


def compute_device_id(features: dict) -> str:
    payload = json.dumps(features, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode()).hexdigest()[:DEVICE_ID_LENGTH]


def extract_fingerprint(headers: Mapping[str, str]) -> VisitorFingerprint:
    """Build a fingerprint from request headers. Never fails; absent headers are empty."""
    h = _lower_headers(headers)
    ua = h.get("user-agent", "")

    fp = VisitorFingerprint(
        device_id="",
        user_agent=ua,
        accept_language=h.get("accept-language", ""),
        accept_encoding=h.get("accept-encoding", ""),
        connection=h.get("connection", ""),
        cache_control=h.get("cache-control", ""),
        referer=h.get("referer", ""),
        origin=h.get("origin", ""),
        platform=extract_platform(ua),
        browser=extract_browser(ua),
        screen=_screen(h),
        timezone=_first(h, TIMEZONE_HEADERS) or UNKNOWN,
        signals=_signals(h),
    )
    fp.device_id = compute_device_id(fp.features())
    return fp


# --- Edge-provided client metadata ---

def _is_private(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not addr.is_global


def client_ip(headers: Mapping[str, str], ip_headers: list[str], fallback: str | None = None) -> str:
    """Extract the client IP from the edge headers, in configured order."""
    h = _lower_headers(headers)
    for name in ip_headers:
        value = h.get(name.lower(), "").strip()
        if not value:
            continue
        ips = [ip.strip() for ip in value.split(",") if ip.strip()]
        # First public IP in a forwarded chain is the client
        for ip in ips:
            if not _is_private(ip):
                return ip
        if ips:
            return ips[0]
    return fallback or "unknown"


def client_country(headers: Mapping[str, str], country_header: str) -> str:
    h = _lower_headers(headers)
    return h.get(country_header.lower(), "").strip().upper()
