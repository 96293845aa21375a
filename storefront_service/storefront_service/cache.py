"""In-process response cache for public catalog reads.

Entries are keyed by request path plus query parameters sorted by name then
value, expire lazily on lookup, and are dropped all at once whenever the catalog
is written. The cache is per process: separate workers keep separate copies.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import parse_qsl, urlsplit

from .logger import logger

MIN_TTL_MS = 1_000

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Return the current wall-clock time in milliseconds."""
    return time.time() * 1000


def build_cache_key(url: str) -> str:
    """Build the canonical cache key for a request URL.

    Args:
        url: Absolute or relative request URL.

    Returns:
        str: ``path`` or ``path?name=value&...`` with parameters sorted.
    """
    parts = urlsplit(url)
    params = sorted(parse_qsl(parts.query, keep_blank_values=True))
    if not params:
        return parts.path
    return parts.path + "?" + "&".join(f"{name}={value}" for name, value in params)


def expiry_for(now_ms: float, ttl_ms: float) -> float:
    """Absolute expiry for an entry stored at ``now_ms``, with a one second floor."""
    return now_ms + max(ttl_ms, MIN_TTL_MS)


@dataclass(frozen=True)
class CachedResponse:
    """A memoized HTTP response.

    Attributes:
        status: HTTP status code.
        body: Serialized JSON body.
        headers: Response headers.
        expires_at: Absolute expiry in clock milliseconds.
    """

    status: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)
    expires_at: float = 0.0


class ResponseCache:
    """Keyed map of memoized responses with per-entry TTL.

    Args:
        clock: Callable returning the current time in milliseconds.
    """

    def __init__(self, clock: Clock = wall_clock_ms):
        self._clock = clock
        self._entries: dict[str, CachedResponse] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, url: str) -> Optional[CachedResponse]:
        """Return the live entry for ``url``, evicting it first if it has expired."""
        key = build_cache_key(url)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            logger.debug(f"Cache entry expired | key={key}")
            return None
        return CachedResponse(entry.status, entry.body, dict(entry.headers), entry.expires_at)

    def set(self, url: str, status: int, body: str, headers: dict[str, str], ttl_ms: float) -> None:
        """Store a response for ``url``, replacing any existing entry."""
        key = build_cache_key(url)
        self._entries[key] = CachedResponse(
            status=status,
            body=body,
            headers=dict(headers),
            expires_at=expiry_for(self._clock(), ttl_ms),
        )

    def clear(self) -> None:
        """Drop every entry."""
        if self._entries:
            logger.info(f"Clearing response cache | entries={len(self._entries)}")
            self._entries.clear()
