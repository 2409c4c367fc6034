"""URL helpers shared by the acquirer, discoverer, and rate limiter.

Derives the politeness host of a URL, normalizes camp websites, and
decides which links are eligible for crawling: same site, http(s) only,
no social-media hosts, no local or private addresses.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from urllib.parse import urljoin, urldefrag, urlparse

ALLOWED_SCHEMES = frozenset({"http", "https"})

SOCIAL_HOSTS = (
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "youtube.com",
    "tiktok.com",
    "linkedin.com",
    "pinterest.com",
)

PRIVATE_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]


@dataclass(frozen=True)
class URLValidationResult:
    allowed: bool
    reason: str


def host_of(url: str) -> str | None:
    """Return the lowercase hostname without a leading ``www.``, or None."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    hostname = hostname.lower().rstrip(".")
    return hostname[4:] if hostname.startswith("www.") else hostname


def normalize_website(raw: str) -> str:
    """Trim a website cell and give it an https:// scheme when it has none."""
    url = raw.strip()
    if not url:
        return ""
    if not urlparse(url).scheme:
        url = f"https://{url.lstrip('/')}"
    return url


def absolutize(href: str, base_url: str) -> str:
    """Resolve ``href`` against ``base_url`` and drop any fragment."""
    return urldefrag(urljoin(base_url, href.strip()))[0]


def same_site(url: str, base_url: str) -> bool:
    host = host_of(url)
    return host is not None and host == host_of(base_url)


def is_social(url: str) -> bool:
    host = host_of(url) or ""
    return any(host == s or host.endswith("." + s) for s in SOCIAL_HOSTS)


def _is_private_ip(hostname: str) -> str | None:
    try:
        addr = ipaddress.ip_address(hostname)
    except ValueError:
        return None
    for network in PRIVATE_NETWORKS:
        if addr in network:
            return str(network)
    return None


def validate_target_url(url: str) -> URLValidationResult:
    """Check that a camp URL is fetchable.

    Checks:
    1. Scheme must be http or https
    2. Hostname must be present and not localhost or .local
    3. Literal IPs must not be in private/reserved ranges
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return URLValidationResult(allowed=False, reason="Unparsable URL")

    if parsed.scheme not in ALLOWED_SCHEMES:
        return URLValidationResult(
            allowed=False,
            reason=f"Scheme '{parsed.scheme}' not allowed",
        )

    hostname = parsed.hostname or ""
    if not hostname:
        return URLValidationResult(allowed=False, reason="No hostname in URL")

    if hostname == "localhost" or hostname.endswith(".local"):
        return URLValidationResult(
            allowed=False,
            reason=f"Hostname '{hostname}' is blocked",
        )

    match = _is_private_ip(hostname)
    if match:
        return URLValidationResult(
            allowed=False,
            reason=f"IP {hostname} is in private range {match}",
        )

    return URLValidationResult(allowed=True, reason="OK")


def is_crawlable_link(url: str, base_url: str) -> bool:
    """A discovered link is crawlable when it is same-site, http(s), and not social."""
    if urlparse(url).scheme not in ALLOWED_SCHEMES:
        return False
    return same_site(url, base_url) and not is_social(url)
