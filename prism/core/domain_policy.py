"""
Domain Policy — which pages may be scanned and which resources get fetched.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urljoin, urlparse

from prism.models.scan_models import ScanSettings

logger = logging.getLogger("prism.policy")

RESTRICTED_PREFIXES = (
    "chrome:",
    "about:",
    "edge:",
    "view-source:",
    "chrome-extension:",
    "chrome-search:",
)


def is_restricted_url(url: str) -> bool:
    """Browser-internal pages are never scanned."""
    return url.startswith(RESTRICTED_PREFIXES)


def _exclusion_regex(pattern: str) -> str:
    if "*" in pattern and not pattern.startswith("^") and "(" not in pattern:
        regex = pattern.replace("*", ".*")
        if not regex.startswith("^") and not regex.startswith(".*"):
            regex = r"(^|\.)" + regex
        return regex
    if not pattern.startswith("^") and not any(c in pattern for c in "*(["):
        # Plain domain: itself or any subdomain
        return r"(^|\.)" + re.escape(pattern) + "$"
    return pattern


def _matches_exclusion(hostname: str, pattern: str) -> bool:
    try:
        return re.search(_exclusion_regex(pattern), hostname, re.IGNORECASE) is not None
    except re.error:
        lower_host = hostname.lower()
        lower_pattern = pattern.lower().replace("*", "")
        return lower_pattern in lower_host


def is_domain_excluded(url: str, excluded_domains: list[str]) -> bool:
    """
    True if the URL must not be scanned.

    Patterns may be plain domains ("example.com" also covers subdomains),
    wildcards ("*.cdn.net") or anchored regular expressions ("^internal\\.").
    """
    if not url or is_restricted_url(url):
        return True
    if not excluded_domains:
        return False

    hostname = urlparse(url).hostname
    if not hostname:
        return False
    return any(_matches_exclusion(hostname, pattern) for pattern in excluded_domains)


def is_same_domain(url: str, page_url: str) -> bool:
    """True if url (resolved against the page) is served from the page's host."""
    try:
        return urlparse(urljoin(page_url, url)).hostname == urlparse(page_url).hostname
    except ValueError:
        return False


def select_resources(urls: list[str], page_url: str, scan_settings: ScanSettings) -> list[str]:
    """Apply the same-domain / third-party settings to a list of resource URLs."""
    if scan_settings.scan_current_domain_only or not scan_settings.scan_third_party_resources:
        selected = [u for u in urls if is_same_domain(u, page_url)]
        if len(selected) != len(urls):
            logger.debug(f"Dropped {len(urls) - len(selected)} third-party resources")
        return selected
    return list(urls)
