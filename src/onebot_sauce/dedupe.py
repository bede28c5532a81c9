from __future__ import annotations

import time
from collections import OrderedDict


class DedupeCache:
    """Remembers recently delivered event keys.

    OneBot implementations re-post an event when the webhook answers
    slowly; the first delivery wins until ``ttl_seconds`` pass. At most
    ``max_entries`` keys are kept, oldest first out.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 4096) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._expiry: OrderedDict[str, float] = OrderedDict()

    def mark_once(self, key: str) -> bool:
        now = time.monotonic()
        self._evict(now)

        if key in self._expiry:
            return False

        self._expiry[key] = now + self._ttl_seconds
        while len(self._expiry) > self._max_entries:
            self._expiry.popitem(last=False)
        return True

    def __len__(self) -> int:
        return len(self._expiry)

    def _evict(self, now: float) -> None:
        # Insertion order equals expiry order since the ttl is fixed.
        while self._expiry:
            key, expires_at = next(iter(self._expiry.items()))
            if expires_at > now:
                return
            del self._expiry[key]
