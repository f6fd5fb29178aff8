"""Tests for risk scoring and client classification."""

import pytest
from app.core.fingerprint import extract_fingerprint
from app.core.risk import Classification, ClientKind, assess


REAL_CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

REAL_HEADERS = {
    "user-agent": REAL_CHROME_UA,
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate, br",
    "sec-fetch-dest": "document",
    "sec-fetch-mode": "navigate",
    "sec-fetch-site": "cross-site",
    "referer": "https://t.me/",
}


def _assess(ua: str, **extra):
    headers = dict(REAL_HEADERS, **{"user-agent": ua})
    headers.update(extra)
    return assess(extract_fingerprint(headers))


class TestClassification:
    @pytest.mark.parametrize("ua", [
        "ClashMeta/1.16",
        "clash-verge/v1.3.8",
        "Shadowrocket/2070 CFNetwork/1410 Darwin/22.6.0",
        "Surge iOS/2920",
        "Quantumult%20X/1.4.1",
        "v2rayN/6.23",
        "sing-box 1.8.0",
        "Stash/2.4.7",
    ])
    def test_proxy_clients(self, ua):
        r = _assess(ua)
        assert r.classification == Classification.PROXY_TOOL
        assert r.is_proxy_tool is True
        assert r.is_browser is False

    @pytest.mark.parametrize("ua", [
        "curl/7.88.1",
        "python-requests/2.31.0",
        "Go-http-client/1.1",
        "Scrapy/2.11.0",
        "Mozilla/5.0 HeadlessChrome/120.0",
        "puppeteer",
    ])
    def test_automation_tools(self, ua):
        r = _assess(ua)
        assert r.is_automation_tool is True
        assert r.kind == ClientKind.AUTOMATION
        assert r.classification == Classification.UNKNOWN
        assert r.is_browser is False

    @pytest.mark.parametrize("ua", [
        "Googlebot/2.1 (+http://www.google.com/bot.html)",
        "facebookexternalhit/1.1",
        "Twitterbot/1.0",
        "LinkedInBot/1.0",
    ])
    def test_crawlers(self, ua):
        r = _assess(ua)
        assert r.is_crawler is True
        assert r.is_automation_tool is False
        assert r.is_browser is False

    @pytest.mark.parametrize("ua,expected", [
        (REAL_CHROME_UA, Classification.CHROME),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
         "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0", Classification.EDGE),
        ("Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0", Classification.FIREFOX),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
         "(KHTML, like Gecko) Version/17.0 Safari/605.1.15", Classification.SAFARI),
    ])
    def test_browsers(self, ua, expected):
        r = _assess(ua)
        assert r.classification == expected
        assert r.is_browser is True

    @pytest.mark.parametrize("ua,expected", [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
         "(KHTML, like Gecko) EdgiOS/120.0 Mobile/15E148 Safari/605.1.15", Classification.EDGE),
        ("Mozilla/5.0 (Linux; Android 14) AppleWebKit/537.36 (KHTML, like Gecko) "
         "Chrome/120.0 Mobile Safari/537.36 EdgA/120.0", Classification.EDGE),
        ("Mozilla/5.0 (Linux; Android 14; Sledgehammer) AppleWebKit/537.36 "
         "(KHTML, like Gecko) Chrome/120.0 Mobile Safari/537.36", Classification.CHROME),
    ])
    def test_edge_needs_version_token(self, ua, expected):
        assert _assess(ua).classification == expected

    def test_headless_xhr_is_automation(self):
        fp = extract_fingerprint({"user-agent": "MyApp/1.0", "x-requested-with": "XMLHttpRequest"})
        r = assess(fp)
        assert r.is_automation_tool is True


class TestScore:
    def test_real_browser(self):
        r = _assess(REAL_CHROME_UA)
        assert r.risk_score == 30
        assert r.confidence == 1.0

    def test_proxy_client_scores_below_browser(self):
        browser = _assess(REAL_CHROME_UA)
        proxy = assess(extract_fingerprint({"user-agent": "clash-verge/v1.3.8", "accept-encoding": "gzip"}))
        assert proxy.risk_score < browser.risk_score

    def test_bare_curl_is_high_risk(self):
        r = assess(extract_fingerprint({"user-agent": "curl/8.4.0"}))
        assert r.risk_score >= 80

    def test_missing_accept_language_adds_risk(self):
        headers = {k: v for k, v in REAL_HEADERS.items() if k != "accept-language"}
        baseline = _assess(REAL_CHROME_UA).risk_score
        assert assess(extract_fingerprint(headers)).risk_score == baseline + 15

    def test_fetch_without_referer_adds_risk(self):
        headers = {k: v for k, v in REAL_HEADERS.items() if k != "referer"}
        headers["sec-fetch-mode"] = "cors"
        assert assess(extract_fingerprint(headers)).risk_score > _assess(REAL_CHROME_UA).risk_score

    def test_timezone_hint_lowers_risk(self):
        assert _assess(REAL_CHROME_UA, **{"cf-timezone": "Asia/Tokyo"}).risk_score == 27

    @pytest.mark.parametrize("headers", [
        {},
        {"user-agent": "x" * 600},
        {"user-agent": "curl/8.4.0", "x-requested-with": "XMLHttpRequest", "sec-fetch-mode": "cors"},
        REAL_HEADERS,
    ])
    def test_score_bounded(self, headers):
        r = assess(extract_fingerprint(headers))
        assert 0 <= r.risk_score <= 100
        assert 0.0 <= r.confidence <= 1.0

    def test_deterministic(self):
        fp = extract_fingerprint(REAL_HEADERS)
        assert assess(fp) == assess(fp)

    def test_device_id_carried_through(self):
        fp = extract_fingerprint(REAL_HEADERS)
        assert assess(fp).device_id == fp.device_id
