from __future__ import annotations

import threading
from datetime import datetime, timedelta

from app.thrifter.utils import utcnow


class SlidingWindowLimiter:
    """
    In-process per-key limiter: at most `limit` hits within `window_seconds`.
    State lives in this process only; every gunicorn worker keeps its own.
    Keys with no hits inside the window are dropped.
    """

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._hits: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.limit > 0 and self.window.total_seconds() > 0

    def _prune(self, key: str, now: datetime) -> list[datetime]:
        cutoff = now - self.window
        hits = [t for t in self._hits.get(key, ()) if t > cutoff]
        if hits:
            self._hits[key] = hits
        else:
            self._hits.pop(key, None)
        return hits

    def is_limited(self, key: str) -> bool:
        if not self.enabled:
            return False
        with self._lock:
            return len(self._prune(key, utcnow())) >= self.limit

    def record(self, key: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            now = utcnow()
            hits = self._prune(key, now)
            hits.append(now)
            self._hits[key] = hits

    def hit(self, key: str) -> bool:
        """Record a hit; True when the key was already over its limit."""
        if not self.enabled:
            return False
        with self._lock:
            now = utcnow()
            hits = self._prune(key, now)
            if len(hits) >= self.limit:
                return True
            hits.append(now)
            self._hits[key] = hits
            return False

    def retry_after(self, key: str) -> int:
        """Seconds until the oldest hit in the window expires (0 = not limited)."""
        with self._lock:
            now = utcnow()
            hits = self._prune(key, now)
            if not hits:
                return 0
            remaining = (hits[0] + self.window - now).total_seconds()
            return max(0, int(remaining) + 1)

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def __len__(self) -> int:
        return len(self._hits)
