"""Delivery log: one JSON object per line for every handled webhook delivery."""

from __future__ import annotations

import asyncio
import threading
from collections import Counter
from pathlib import Path

from src.models import AuditEvent, AuditEventType


class AuditLogger:
    """Appends delivery outcomes (replies, drops, failures) to a JSON Lines file."""

    def __init__(self, log_path: str) -> None:
        self.log_path = Path(log_path)
        self._lock = threading.Lock()

    def log(self, event: AuditEvent) -> None:
        line = event.model_dump_json()
        with self._lock:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    async def record(self, event: AuditEvent) -> None:
        """Write ``event`` off the event loop."""
        await asyncio.to_thread(self.log, event)


def read_events(log_path: Path) -> list[AuditEvent]:
    text = log_path.read_text(encoding="utf-8")
    return [AuditEvent.model_validate_json(line) for line in text.splitlines() if line.strip()]


def summarize(events: list[AuditEvent]) -> dict[AuditEventType, int]:
    """Count events per type, most frequent first."""
    return dict(Counter(e.event_type for e in events).most_common())
