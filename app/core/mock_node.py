"""
Mock node payload for proxy clients fetching from a disallowed country.

The node is deliberately non-functional (loopback server, dummy password).
Its name tells the user which region they connected from so they switch to
an allowed node and refresh the subscription.
"""

COUNTRY_NAMES = {
    "HK": "Hong Kong",
    "JP": "Japan",
    "US": "United States",
    "SG": "Singapore",
    "TW": "Taiwan",
    "CN": "China",
    "KR": "South Korea",
    "GB": "United Kingdom",
    "DE": "Germany",
    "FR": "France",
    "CA": "Canada",
    "AU": "Australia",
}


def country_name(country: str) -> str:
    return COUNTRY_NAMES.get(country, country or "Unknown region")


def mock_node_payload(country: str) -> dict:
    name = country_name(country)
    node = {
        "name": f"Please use an allowed node (current: {name})",
        "type": "ss",
        "server": "127.0.0.1",
        "port": 8080,
        "cipher": "aes-256-gcm",
        "password": "mock-password",
        "udp": True,
        "remark": f"Current node: {name} - switch to an allowed country and update the subscription",
    }
    return {
        "proxies": [node],
        "proxy-groups": [
            {"name": "PROXY", "type": "select", "proxies": [node["name"]]},
        ],
        "rules": [
            "DOMAIN-SUFFIX,local,PROXY",
            "IP-CIDR,127.0.0.0/8,PROXY",
            "MATCH,PROXY",
        ],
    }
