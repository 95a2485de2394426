from __future__ import annotations

import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

_ALLOWED_SCHEMES: frozenset[str] = frozenset(["http", "https"])


def validate_url(url: str) -> str:
    """Validate a URL before it is sent to the server.

    The URL is returned stripped but otherwise untouched; the server keeps
    the address exactly as saved.

    Raises:
        ValueError: If the URL is empty, too long, not http(s) or has no host
    """
    if not isinstance(url, str):
        msg = "URL must be a string"
        raise ValueError(msg)
    url = url.strip()
    if not url:
        msg = "URL cannot be empty"
        raise ValueError(msg)
    if len(url) > MAX_URL_LENGTH:
        msg = "URL too long"
        raise ValueError(msg)
    if any(ord(char) < 32 for char in url):
        msg = "URL contains control characters"
        raise ValueError(msg)

    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        scheme_name = parsed.scheme or "<none>"
        msg = f"Unsupported URL scheme: {scheme_name}. Only http and https are allowed."
        raise ValueError(msg)
    if not parsed.hostname:
        msg = "Invalid URL: missing hostname"
        raise ValueError(msg)

    logger.debug("validate_url", extra={"url": url[:100]})
    return url
