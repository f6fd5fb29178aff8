"""Tests for header-only visitor fingerprinting."""

import pytest
from app.core.fingerprint import (
    UNKNOWN,
    client_country,
    client_ip,
    extract_browser,
    extract_fingerprint,
    extract_platform,
)


class TestDeviceId:
    def test_identical_headers_same_device(self, browser_headers):
        a = extract_fingerprint(browser_headers)
        b = extract_fingerprint(dict(browser_headers))
        assert a.device_id == b.device_id
        assert len(a.device_id) == 32

    def test_header_name_case_does_not_matter(self, browser_headers):
        upper = {k.title(): v for k, v in browser_headers.items()}
        assert extract_fingerprint(upper).device_id == extract_fingerprint(browser_headers).device_id

    @pytest.mark.parametrize("header,value", [
        ("user-agent", "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0"),
        ("accept-language", "zh-CN,zh;q=0.9"),
        ("referer", "https://example.org/"),
        ("origin", "https://example.org"),
    ])
    def test_differing_header_changes_device(self, browser_headers, header, value):
        changed = dict(browser_headers, **{header: value})
        assert extract_fingerprint(changed).device_id != extract_fingerprint(browser_headers).device_id

    def test_empty_headers_never_fail(self):
        fp = extract_fingerprint({})
        assert fp.user_agent == ""
        assert fp.platform == "Unknown"
        assert fp.browser == "Unknown"
        assert fp.device_id


class TestUserAgentParsing:
    @pytest.mark.parametrize("ua,platform", [
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "Windows"),
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)", "iOS"),
        ("Mozilla/5.0 (Linux; Android 14; Pixel 8)", "Android"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)", "macOS"),
        ("Mozilla/5.0 (X11; Linux x86_64)", "Linux"),
        ("clash-verge/v1.3.8", "Unknown"),
    ])
    def test_platform(self, ua, platform):
        assert extract_platform(ua) == platform

    @pytest.mark.parametrize("ua,browser", [
        ("Mozilla/5.0 AppleWebKit/537.36 Chrome/120.0 Safari/537.36 Edg/120.0", "Edge"),
        ("Mozilla/5.0 AppleWebKit/537.36 Chrome/120.0 Safari/537.36", "Chrome"),
        ("Mozilla/5.0 Gecko/20100101 Firefox/121.0", "Firefox"),
        ("Mozilla/5.0 AppleWebKit/605.1.15 Version/17.0 Safari/605.1.15", "Safari"),
        ("ClashMeta/1.16", "Clash"),
        ("Shadowrocket/2070 CFNetwork", "Shadowrocket"),
        ("something-else/1.0", "Unknown"),
    ])
    def test_browser(self, ua, browser):
        assert extract_browser(ua) == browser


class TestHints:
    def test_screen_and_timezone_unknown_without_headers(self, browser_headers):
        fp = extract_fingerprint(browser_headers)
        assert fp.screen.width == UNKNOWN
        assert fp.screen.known is False
        assert fp.timezone == UNKNOWN

    def test_viewport_client_hints(self, browser_headers):
        fp = extract_fingerprint(dict(browser_headers, **{
            "sec-ch-viewport-width": "1440",
            "sec-ch-viewport-height": "900",
        }))
        assert fp.screen.width == "1440"
        assert fp.screen.height == "900"
        assert fp.screen.known is True
        assert fp.signals.has_viewport_info is True

    def test_edge_timezone_preferred(self):
        fp = extract_fingerprint({"cf-timezone": "Asia/Tokyo", "x-timezone": "Europe/Paris"})
        assert fp.timezone == "Asia/Tokyo"

    def test_modern_signals(self, browser_headers):
        s = extract_fingerprint(dict(browser_headers, dnt="1", **{"save-data": "on"})).signals
        assert s.has_sec_fetch and s.has_dnt and s.has_save_data
        assert s.is_navigation and not s.is_fetch
        assert s.any_modern

    def test_no_modern_signals_for_bare_client(self, clash_headers):
        assert extract_fingerprint(clash_headers).signals.any_modern is False


class TestEdgeMetadata:
    IP_HEADERS = ["cf-connecting-ip", "x-forwarded-for", "x-real-ip"]

    def test_edge_ip_header_wins(self):
        h = {"CF-Connecting-IP": "203.0.113.7", "X-Forwarded-For": "1.1.1.1"}
        assert client_ip(h, self.IP_HEADERS) == "203.0.113.7"

    def test_forwarded_chain_skips_private(self):
        h = {"x-forwarded-for": "10.0.0.5, 100.64.0.9, 8.8.4.4, 172.16.0.1"}
        assert client_ip(h, self.IP_HEADERS) == "8.8.4.4"

    def test_all_private_chain_uses_first_hop(self):
        h = {"x-forwarded-for": "10.0.0.5, 192.168.1.2"}
        assert client_ip(h, self.IP_HEADERS) == "10.0.0.5"

    def test_documentation_range_is_not_public(self):
        h = {"x-forwarded-for": "198.51.100.9, 1.1.1.1"}
        assert client_ip(h, self.IP_HEADERS) == "1.1.1.1"

    def test_fallback(self):
        assert client_ip({}, self.IP_HEADERS, fallback="127.0.0.1") == "127.0.0.1"
        assert client_ip({}, self.IP_HEADERS) == "unknown"

    def test_country_uppercased(self):
        assert client_country({"CF-IPCountry": "us"}, "cf-ipcountry") == "US"
        assert client_country({}, "cf-ipcountry") == ""
