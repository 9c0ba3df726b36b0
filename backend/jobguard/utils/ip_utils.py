"""
Client IP extraction and classification utilities.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Mapping, Optional

# RFC 5737 documentation ranges; real traffic from them is spoofed.
MALICIOUS_NETWORKS = [
    ipaddress.ip_network("192.0.2.0/24"),
    ipaddress.ip_network("198.51.100.0/24"),
    ipaddress.ip_network("203.0.113.0/24"),
]

SUSPICIOUS_USER_AGENTS = [
    re.compile(r"bot|crawler|spider", re.IGNORECASE),
    re.compile(r"curl|wget|httpclient", re.IGNORECASE),
    re.compile(r"scanner|nikto|sqlmap", re.IGNORECASE),
    re.compile(r"python-requests|go-http-client", re.IGNORECASE),
    re.compile(r"masscan|nmap", re.IGNORECASE),
]

LEGITIMATE_BOTS = re.compile(
    r"googlebot|bingbot|slurp|duckduckbot|facebookexternalhit|twitterbot|linkedinbot",
    re.IGNORECASE,
)


def normalize_ip(raw: str) -> str:
    """
    Clean up a raw address into a canonical IP string.

    Handles:
    - " 10.0.0.1 " → 10.0.0.1
    - 10.0.0.1:8080 → 10.0.0.1
    - [2001:DB8::1]:443 → 2001:db8::1
    - ::ffff:10.0.0.1 → 10.0.0.1
    Non-IP input (e.g. "unknown") is returned stripped but otherwise unchanged.
    """
    value = raw.strip()
    if value.startswith("["):
        value = value[1:].split("]", 1)[0]
    elif value.count(":") == 1:
        value = value.split(":", 1)[0]

    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return raw.strip()

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return str(address.ipv4_mapped)
    return str(address)


def get_client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Resolve the client address behind proxies.
    Precedence: cf-connecting-ip, x-real-ip, first x-forwarded-for hop, socket peer.
    """
    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return normalize_ip(cf_ip)

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return normalize_ip(real_ip)

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return normalize_ip(first)

    return normalize_ip(peer) if peer else "unknown"


def is_known_malicious_ip(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in MALICIOUS_NETWORKS)


def is_suspicious_user_agent(user_agent: str) -> bool:
    if LEGITIMATE_BOTS.search(user_agent):
        return False
    return any(p.search(user_agent) for p in SUSPICIOUS_USER_AGENTS)


def is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True
