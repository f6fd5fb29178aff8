"""
Risk scoring and client classification.

Produces a risk_score 0–100 and a classification:
  Chrome | Firefox | Safari | Edge | MobileBrowser | ProxyTool | Unknown

Classification is an ordered table, first match wins:
  1. Proxy-client UA substrings (Clash, V2Ray, Surge, ...)
  2. Automation-tool UA substrings (curl, Selenium, headless, ...)
  3. Crawler UA substrings (Googlebot, facebookexternalhit, ...)
  4. Browser-family UA substrings
  5. Unknown

Proxy clients score LOWER than browsers: subscription links are meant to be
fetched by proxy clients, so those fetches are expected traffic. Browsers
opening a subscription link are the scraping risk.

The score is advisory. It feeds thresholds and alerting; nothing treats it
as a hard boolean.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from user_agents import parse as parse_ua

from app.core.fingerprint import VisitorFingerprint


class Classification(str, Enum):
    CHROME = "Chrome"
    FIREFOX = "Firefox"
    SAFARI = "Safari"
    EDGE = "Edge"
    MOBILE_BROWSER = "MobileBrowser"
    PROXY_TOOL = "ProxyTool"
    UNKNOWN = "Unknown"


class ClientKind(str, Enum):
    PROXY = "proxy"
    AUTOMATION = "automation"
    CRAWLER = "crawler"
    BROWSER = "browser"
    UNKNOWN = "unknown"


PROXY_TOOL_UA = (
    "clash", "mihomo", "v2ray", "quantumult", "surge", "shadowrocket",
    "shadowsocks", "loon", "stash", "sing-box", "hysteria", "trojan",
    "nekobox", "hiddify",
)

AUTOMATION_UA = (
    "selenium", "webdriver", "phantomjs", "headless", "puppeteer",
    "playwright", "cypress", "testcafe", "python-requests", "python-urllib",
    "curl/", "wget/", "postman", "insomnia", "go-http-client", "scrapy",
    "aiohttp", "node-fetch", "axios/", "java/", "libwww-perl", "scraper",
)

CRAWLER_UA = (
    "googlebot", "bingbot", "slurp", "duckduckbot", "baiduspider",
    "yandexbot", "facebookexternalhit", "twitterbot", "linkedinbot",
    "whatsapp", "telegrambot", "discordbot", "slackbot", "applebot",
    "ia_archiver", "archive.org", "crawler", "spider", "bot/", "bot;",
)

BROWSER_UA = ("mozilla", "chrome", "safari", "firefox", "edge", "opera", "webkit", "gecko", "trident")

PROXY_CLIENT_FAMILIES = {"Clash", "V2Ray", "Quantumult", "Surge", "Shadowrocket", "Sing-Box"}


def _contains(*needles: str) -> Callable[[str, VisitorFingerprint], bool]:
    def predicate(ua: str, fp: VisitorFingerprint) -> bool:
        return any(n in ua for n in needles)
    return predicate


def _headless_xhr(ua: str, fp: VisitorFingerprint) -> bool:
    """XHR with no origin/referer and none of the headers a browser always sends."""
    s = fp.signals
    missing_browser_headers = not (s.has_sec_fetch or fp.accept_language or fp.accept_encoding)
    return s.is_ajax and not s.has_origin and not s.has_referer and missing_browser_headers


EDGE_TOKENS = ("edg/", "edge/", "edga/", "edgios/")


def _edge(ua: str, fp: VisitorFingerprint) -> bool:
    return any(t in ua for t in EDGE_TOKENS)


# (predicate over lowercased UA + fingerprint, kind, classification)
CLASSIFICATION_TABLE: list[tuple[Callable[[str, VisitorFingerprint], bool], ClientKind, Classification]] = [
    (_contains(*PROXY_TOOL_UA), ClientKind.PROXY, Classification.PROXY_TOOL),
    (_contains(*AUTOMATION_UA), ClientKind.AUTOMATION, Classification.UNKNOWN),
    (_headless_xhr, ClientKind.AUTOMATION, Classification.UNKNOWN),
    (_contains(*CRAWLER_UA), ClientKind.CRAWLER, Classification.UNKNOWN),
    (_edge, ClientKind.BROWSER, Classification.EDGE),
    (_contains("chrome", "crios"), ClientKind.BROWSER, Classification.CHROME),
    (_contains("firefox", "fxios"), ClientKind.BROWSER, Classification.FIREFOX),
    (_contains("safari"), ClientKind.BROWSER, Classification.SAFARI),
    (_contains("mobile", "android", "iphone"), ClientKind.BROWSER, Classification.MOBILE_BROWSER),
]

CLASSIFICATION_DELTA: dict[Classification, int] = {
    Classification.CHROME: 15,
    Classification.FIREFOX: 12,
    Classification.SAFARI: 10,
    Classification.EDGE: 15,
    Classification.MOBILE_BROWSER: 5,
    Classification.PROXY_TOOL: -15,
    Classification.UNKNOWN: 25,
}

BASE_CONFIDENCE: dict[ClientKind, float] = {
    ClientKind.PROXY: 0.9,
    ClientKind.BROWSER: 0.5,
    ClientKind.AUTOMATION: 0.1,
    ClientKind.CRAWLER: 0.1,
    ClientKind.UNKNOWN: 0.1,
}

BASE_SCORE = 10


@dataclass
class RiskAssessment:
    device_id: str
    risk_score: int
    classification: Classification
    confidence: float
    is_automation_tool: bool = False
    is_crawler: bool = False
    is_proxy_tool: bool = False
    is_browser: bool = False
    kind: ClientKind = ClientKind.UNKNOWN


def classify(fp: VisitorFingerprint) -> tuple[ClientKind, Classification]:
    ua = fp.user_agent.lower()
    for predicate, kind, classification in CLASSIFICATION_TABLE:
        if predicate(ua, fp):
            return kind, classification
    return ClientKind.UNKNOWN, Classification.UNKNOWN


def is_browser_user_agent(user_agent: str) -> bool:
    ua = user_agent.lower()
    return any(p in ua for p in BROWSER_UA)


def _confidence(kind: ClientKind, fp: VisitorFingerprint) -> float:
    s = fp.signals
    confidence = BASE_CONFIDENCE[kind]

    if len(fp.user_agent) > 10:
        confidence += 0.2
    if s.any_modern:
        confidence += 0.2
    if fp.screen.known or fp.timezone != "unknown":
        confidence += 0.1

    # Individual browser signals
    if s.has_sec_fetch:
        confidence += 0.2
    if s.has_sec_ch_ua:
        confidence += 0.15
    if s.has_upgrade_insecure_requests:
        confidence += 0.1
    if s.has_dnt:
        confidence += 0.05
    if s.has_save_data:
        confidence += 0.05
    if s.has_viewport_info:
        confidence += 0.1

    return round(max(0.0, min(confidence, 1.0)), 3)


def _score(fp: VisitorFingerprint, classification: Classification, confidence: float) -> int:
    s = fp.signals
    ua = fp.user_agent
    score = BASE_SCORE

    # --- Classification ---
    if is_browser_user_agent(ua):
        score += 20
    score += CLASSIFICATION_DELTA[classification]

    if confidence < 0.3:
        score += 20
    elif confidence > 0.8:
        score -= 5

    if fp.platform in ("Android", "iOS"):
        score -= 5
    if fp.browser in PROXY_CLIENT_FAMILIES:
        score -= 10

    # --- UA sanity ---
    if len(ua) < 10 or len(ua) > 500:
        score += 30

    # --- Header sanity ---
    if not fp.accept_language:
        score += 15
    if not fp.accept_encoding:
        score += 10

    if s.has_sec_fetch or s.has_sec_ch_ua:
        score -= 10
    elif ua:
        score += 15

    if fp.screen.known:
        score -= 5
    if fp.timezone != "unknown":
        score -= 3

    # --- Request shape ---
    if s.is_ajax and not s.has_origin:
        score += 10
    if s.is_fetch and not s.has_referer:
        score += 15
    if not s.has_referer and not s.has_origin and ua:
        score += 10

    return max(0, min(score, 100))


def assess(fp: VisitorFingerprint) -> RiskAssessment:
    """Score and classify a fingerprint. Pure and deterministic."""
    kind, classification = classify(fp)

    # user_agents catches crawlers the substring table does not know
    if kind in (ClientKind.BROWSER, ClientKind.UNKNOWN) and fp.user_agent and parse_ua(fp.user_agent).is_bot:
        kind, classification = ClientKind.CRAWLER, Classification.UNKNOWN

    confidence = _confidence(kind, fp)
    is_proxy = kind == ClientKind.PROXY
    is_automation = kind == ClientKind.AUTOMATION
    is_crawler = kind == ClientKind.CRAWLER
    is_browser = (
        not is_proxy
        and not is_automation
        and not is_crawler
        and (classification != Classification.UNKNOWN or confidence > 0.5)
    )

    return RiskAssessment(
        device_id=fp.device_id,
        risk_score=_score(fp, classification, confidence),
        classification=classification,
        confidence=confidence,
        is_automation_tool=is_automation,
        is_crawler=is_crawler,
        is_proxy_tool=is_proxy,
        is_browser=is_browser,
        kind=kind,
    )
