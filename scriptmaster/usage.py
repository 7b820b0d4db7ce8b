"""Per-day count of successfully rendered images."""
from __future__ import annotations

import json
import logging
import threading
from datetime import date
from pathlib import Path

from .config import USAGE_FILE

log = logging.getLogger(__name__)


class DailyUsageCounter:
    """JSON file keyed by ISO date. Only today's entry survives a write."""

    def __init__(self, path: Path = USAGE_FILE):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Usage file %s unreadable, starting from 0: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def count(self, today: date | None = None) -> int:
        key = (today or date.today()).isoformat()
        try:
            return int(self._read().get(key, 0))
        except (TypeError, ValueError):
            return 0

    def increment(self, today: date | None = None) -> int:
        key = (today or date.today()).isoformat()
        with self._lock:
            n = self.count(today) + 1
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps({key: n}, indent=2), encoding="utf-8")
        return n
