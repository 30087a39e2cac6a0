"""Operational utilities for Spaardoel."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional


class HealthMonitor:
    """Aggregate runtime health information for the status endpoint."""

    def __init__(self, *, database_probe: Optional[Callable[[], bool]] = None) -> None:
        self._database_probe = database_probe
        self.started_at = datetime.utcnow()
        self.last_error: Optional[str] = None

    def database_online(self) -> bool:
        if self._database_probe is None:
            return True
        try:
            return bool(self._database_probe())
        except Exception as exc:  # noqa: BLE001 - any driver error means the database is down
            self.last_error = str(exc)
            return False

    def uptime_seconds(self) -> int:
        return int((datetime.utcnow() - self.started_at).total_seconds())

    def status(self) -> Dict[str, object]:
        database_ok = self.database_online()
        payload: Dict[str, object] = {
            "status": "ok" if database_ok else "degraded",
            "database": "ok" if database_ok else "down",
            "uptime_seconds": self.uptime_seconds(),
        }
        if not database_ok and self.last_error:
            payload["error"] = self.last_error
        return payload


class StructuredLogger:
    """Write JSON lines log entries for later inspection."""

    def __init__(self, *, path: Path | None = None) -> None:
        self.path = path
        self._entries: list[dict] = []

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": datetime.utcnow().isoformat(), "event": event_type, **fields}
        self._entries.append(entry)
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._entries[-limit:])

    def events(self, event_type: str) -> tuple[dict, ...]:
        return tuple(entry for entry in self._entries if entry["event"] == event_type)


__all__ = ["HealthMonitor", "StructuredLogger"]
