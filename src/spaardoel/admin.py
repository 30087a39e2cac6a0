"""Audit trail of who changed which goal or account."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

AUDIT_RETENTION_DAYS = 365


@dataclass(slots=True)
class AuditEvent:
    actor: str
    action: str
    target: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    details: Dict[str, Any] = field(default_factory=dict)

    def matches(self, **criteria: Optional[str]) -> bool:
        return all(value is None or getattr(self, name) == value for name, value in criteria.items())


class AuditLog:
    """Append-only record of parent, child and system actions."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    def record(
        self,
        actor: str,
        action: str,
        target: str,
        *,
        details: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditEvent:
        event = AuditEvent(actor, action, target, details=dict(details or {}))
        if timestamp is not None:
            event.timestamp = timestamp
        self._events.append(event)
        return event

    def entries(
        self,
        *,
        actor: str | None = None,
        action: str | None = None,
        target: str | None = None,
    ) -> tuple[AuditEvent, ...]:
        return tuple(event for event in self._events if event.matches(actor=actor, action=action, target=target))

    def latest(self) -> AuditEvent | None:
        return self._events[-1] if self._events else None

    def purge_older_than(self, days: int = AUDIT_RETENTION_DAYS, *, at: Optional[datetime] = None) -> int:
        """Forget events older than ``days`` and return how many were dropped."""

        cutoff = (at or datetime.utcnow()) - timedelta(days=days)
        before = len(self._events)
        self._events = [event for event in self._events if event.timestamp >= cutoff]
        return before - len(self._events)


__all__ = ["AUDIT_RETENTION_DAYS", "AuditEvent", "AuditLog"]
