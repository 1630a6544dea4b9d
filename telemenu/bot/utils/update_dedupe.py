"""In-memory dedupe cache for Telegram update ids."""

from __future__ import annotations

import time
from collections import OrderedDict


class UpdateDedupeCache:
    """Remember recently handled update ids, bounded by age and count.

    Telegram may redeliver an update after a webhook timeout or a polling
    restart; a redelivered answer must not be fed to a conversation twice.
    """

    def __init__(self, *, ttl_seconds: int = 300, max_size: int = 5000) -> None:
        self.ttl_seconds = max(1, int(ttl_seconds))
        self.max_size = max(1, int(max_size))
        self._seen: OrderedDict[int, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def check_and_mark(self, update_id: int) -> bool:
        """Return True for an id seen within the TTL; otherwise record it."""
        key = int(update_id)
        now = time.monotonic()
        self._drop_expired(now)

        seen = key in self._seen
        self._seen[key] = now
        self._seen.move_to_end(key)
        if not seen:
            while len(self._seen) > self.max_size:
                self._seen.popitem(last=False)
        return seen

    def _drop_expired(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        while self._seen:
            oldest_id, seen_at = next(iter(self._seen.items()))
            if seen_at >= cutoff:
                break
            del self._seen[oldest_id]
