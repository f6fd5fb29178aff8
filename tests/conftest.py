"""Pytest configuration."""

import asyncio
import os

# Ensure test environment
os.environ.setdefault("SG_STORE_URL", "memory://")
os.environ.setdefault("SG_ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("SG_HEADER_PROBE_ENABLED", "false")
os.environ.setdefault("SG_DEBUG", "true")

import pytest

from app.models.link import normalize_link_record
from app.store.memory import MemoryPolicyStore
from app.store.policy import PolicyStoreAdapter

CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "user-agent": CHROME_UA,
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate, br",
    "sec-fetch-dest": "document",
    "sec-fetch-mode": "navigate",
    "sec-fetch-site": "cross-site",
    "referer": "https://t.me/",
}

CLASH_HEADERS = {
    "user-agent": "clash-verge/v1.3.8",
    "accept-encoding": "gzip",
}


@pytest.fixture
def store():
    return MemoryPolicyStore()


@pytest.fixture
def policy(store):
    return PolicyStoreAdapter(store)


@pytest.fixture
def make_link():
    def _make(**fields):
        raw = {"shortKey": "abc123", "targetUrl": "https://example.com/sub.yaml"}
        raw.update(fields)
        return normalize_link_record(raw)
    return _make


@pytest.fixture
def save_link(policy):
    def _save(link):
        asyncio.run(policy.save_link(link))
        return link
    return _save


@pytest.fixture
def browser_headers():
    return dict(BROWSER_HEADERS)


@pytest.fixture
def clash_headers():
    return dict(CLASH_HEADERS)
