"""
Shortgate configuration.
All secrets/tunables come from environment variables.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # --- App ---
    app_name: str = "Shortgate"
    debug: bool = False
    base_url: str = "https://sg.example.com"

    # --- Storage (memory://, redis://host:port/db, or empty = not bound) ---
    store_url: str = "memory://"

    # --- Admin ---
    admin_api_key: str = ""

    # --- Edge headers ---
    client_ip_headers: list[str] = ["cf-connecting-ip", "x-forwarded-for", "x-real-ip"]
    country_header: str = "cf-ipcountry"

    # --- Policy tunables ---
    default_allowed_countries: list[str] = ["HK", "JP", "US", "SG", "TW"]
    visit_limit_window_seconds: int = 86400  # soft counters live 2x this
    known_device_ttl_seconds: int = 86400 * 30
    visit_history_size: int = 10
    anomaly_window_seconds: int = 300
    anomaly_min_history: int = 5

    # --- Destination header probe ---
    header_probe_enabled: bool = True
    header_probe_timeout_seconds: float = 2.0
    propagated_headers: list[str] = [
        "subscription-userinfo",
        "content-disposition",
        "profile-update-interval",
        "profile-web-page-url",
        "cache-control",
        "etag",
        "last-modified",
        "expires",
    ]

    # --- Proxy mode ---
    proxy_user_agent: str = "ClashMeta"
    proxy_timeout_seconds: float = 15.0

    model_config = {"env_prefix": "SG_", "env_file": ".env"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
