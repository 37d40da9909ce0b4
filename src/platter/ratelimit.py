import logging
import math
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

LIMIT_HEADER = "X-Discogs-Ratelimit"
REMAINING_HEADER = "X-Discogs-Ratelimit-Remaining"
RESET_HEADER = "X-Discogs-Ratelimit-Reset"

logger = logging.getLogger("platter")


@dataclass(frozen=True)
class RateLimitSnapshot:
    limit: int
    remaining: int
    reset_at: float  # seconds since epoch

    @property
    def is_approaching_limit(self) -> bool:
        # 10% of the window, never less than one request
        return self.remaining <= max(1, self.limit // 10)

    def delay_until_reset(self, now: Union[float, None] = None) -> float:
        now = time.time() if now is None else now
        return max(0.0, self.reset_at - now)


def _header(headers: Mapping[str, str], name: str) -> Union[str, None]:
    wanted = name.lower()
    for k, v in headers.items():
        if k.lower() == wanted:
            return v
    return None


def parse_rate_limit_headers(headers: Mapping[str, str]) -> Union[RateLimitSnapshot, None]:
    """Build a snapshot from response headers, or None if any header is absent or malformed."""
    raw = [_header(headers, h) for h in (LIMIT_HEADER, REMAINING_HEADER, RESET_HEADER)]
    if any(v is None for v in raw):
        return None
    try:
        limit = int(str(raw[0]).strip())
        remaining = int(str(raw[1]).strip())
        reset_at = float(str(raw[2]).strip())
    except ValueError:
        return None
    if not math.isfinite(reset_at):
        return None
    return RateLimitSnapshot(limit=limit, remaining=remaining, reset_at=reset_at)


class RateLimitTracker:
    """Holds the most recent rate-limit snapshot seen by one executor.

    Writes are serialized; reads are lock-free and may lag one response behind.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Union[RateLimitSnapshot, None] = None

    @property
    def current(self) -> Union[RateLimitSnapshot, None]:
        return self._snapshot

    def update(self, headers: Mapping[str, str]) -> Union[RateLimitSnapshot, None]:
        parsed = parse_rate_limit_headers(headers)
        if parsed is None:
            return None
        with self._lock:
            self._snapshot = parsed
        if parsed.is_approaching_limit:
            logger.warning(
                f"approaching rate limit: {parsed.remaining}/{parsed.limit} requests left, "
                f"resets in {parsed.delay_until_reset():.0f}s"
            )
        return parsed

    def is_approaching_limit(self) -> bool:
        snap = self._snapshot
        return snap is not None and snap.is_approaching_limit

    def delay_until_reset(self, now: Union[float, None] = None) -> float:
        snap = self._snapshot
        return 0.0 if snap is None else snap.delay_until_reset(now)
