"""Validation helpers for API request payloads."""

from __future__ import annotations

from urllib.parse import urlparse

from fastapi import HTTPException

from pagepick.config.settings import URLPolicyConfig


def normalize_page_url(url: str) -> str:
    """Trim the URL and default to ``https://`` when no scheme was typed."""
    url = url.strip()
    if not url:
        raise HTTPException(status_code=400, detail="url must not be empty.")
    if "://" not in url:
        url = f"https://{url}"
    return url


def validate_page_url(url: str, policy: URLPolicyConfig) -> None:
    """Validate a page URL against scheme/hostname/domain policy."""
    parsed = urlparse(url)

    if parsed.scheme.lower() not in policy.allowed_schemes:
        allowed = ", ".join(policy.allowed_schemes)
        raise HTTPException(
            status_code=400,
            detail=f"Invalid URL scheme '{parsed.scheme}'. Allowed schemes: {allowed}.",
        )

    if not parsed.hostname:
        raise HTTPException(status_code=400, detail="url must include a hostname.")

    hostname = parsed.hostname.lower().rstrip(".")

    if policy.denied_domains and _domain_matches(hostname, policy.denied_domains):
        raise HTTPException(status_code=400, detail="url domain is denied by policy.")

    if policy.allowed_domains and not _domain_matches(hostname, policy.allowed_domains):
        raise HTTPException(status_code=400, detail="url domain is not in allowlist.")


def _domain_matches(hostname: str, domains: list[str]) -> bool:
    return any(hostname == domain or hostname.endswith(f".{domain}") for domain in domains)
