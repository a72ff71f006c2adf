"""Bounded cache of processed WhatsApp message ids for at-most-once handling."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

logger = logging.getLogger(__name__)


class MessageCache:
    """Set of processed message ids with an explicit arrival-order log.

    Once the cache grows past ``max_size`` it is compacted down to the
    ``keep_size`` most recently inserted ids.
    """

    def __init__(self, max_size: int = 1000, keep_size: int = 500) -> None:
        if keep_size > max_size:
            raise ValueError("keep_size must not exceed max_size")
        self._max_size = max_size
        self._keep_size = keep_size
        # Keys are ids, ordered oldest first
        self._ids: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def has_processed(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._ids

    def mark_processed(self, message_id: str) -> None:
        """Record an id. Re-marking a known id keeps its original position."""
        with self._lock:
            self._ids.setdefault(message_id, None)

    def maybe_compact(self) -> None:
        with self._lock:
            self._compact_locked()

    def claim(self, message_id: str) -> bool:
        """Atomically check, mark and compact.

        Returns True only for the first caller to present ``message_id``.
        """
        with self._lock:
            if message_id in self._ids:
                return False
            self._ids[message_id] = None
            self._compact_locked()
            return True

    def _compact_locked(self) -> None:
        if len(self._ids) <= self._max_size:
            return
        while len(self._ids) > self._keep_size:
            self._ids.popitem(last=False)
        logger.info("Message cache compacted, size now %d", len(self._ids))
