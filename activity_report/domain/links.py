from __future__ import annotations

import re
from typing import Final
from urllib.parse import urlsplit, urlunsplit

ALLOWED_LINK_HOSTS: Final[frozenset[str]] = frozenset({"x.com", "twitter.com"})

_STATUS_ID_RE = re.compile(r"/status/(\d+)")


def normalize_link(url: str | None) -> str | None:
    """Return the X/Twitter post URL without its query string, or ``None``.

    Anything that does not parse as an http(s) URL on one of the two accepted
    hosts is rejected; callers treat ``None`` as "no link".
    """
    if not url:
        return None
    try:
        parsed = urlsplit(str(url).strip())
        hostname = parsed.hostname
    except ValueError:
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    if hostname not in ALLOWED_LINK_HOSTS:
        return None
    return urlunsplit((parsed.scheme, parsed.netloc.lower(), parsed.path or "/", "", parsed.fragment))


def extract_status_id(url: str | None) -> str | None:
    normalized = normalize_link(url)
    if normalized is None:
        return None
    match = _STATUS_ID_RE.search(urlsplit(normalized).path)
    return match.group(1) if match else None
