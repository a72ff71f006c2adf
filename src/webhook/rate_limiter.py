"""Per-sender minimum-interval throttle for inbound messages."""

from __future__ import annotations

import threading
import time


class SenderRateLimiter:
    """Accept at most one message per sender per window.

    Only accepted messages refresh a sender's clock: a burst of rejected
    messages all measure against the last accepted one. Entries that have
    aged past the window are swept at most once per ``sweep_interval``.
    """

    def __init__(
        self,
        window_seconds: float = 2.0,
        sweep_interval: float = 60.0,
    ) -> None:
        self._window_seconds = window_seconds
        self._sweep_interval = sweep_interval
        self._last_accepted: dict[str, float] = {}
        self._last_sweep: float | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_accepted)

    def is_limited(self, sender_id: str, now: float | None = None) -> bool:
        """Return True if the sender must be throttled at ``now`` (seconds)."""
        if now is None:
            now = time.monotonic()

        with self._lock:
            self._maybe_sweep(now)
            last = self._last_accepted.get(sender_id)
            if last is not None and now - last < self._window_seconds:
                return True
            self._last_accepted[sender_id] = now
            return False

    def _maybe_sweep(self, now: float) -> None:
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self._sweep_interval:
            return
        cutoff = now - self._window_seconds
        # A stale entry can no longer limit anyone, so dropping it is invisible
        self._last_accepted = {
            sender: ts for sender, ts in self._last_accepted.items() if ts > cutoff
        }
        self._last_sweep = now
