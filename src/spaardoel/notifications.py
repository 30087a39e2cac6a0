"""Messages about goal progress, kept per recipient."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import DefaultDict, Dict, List, Optional, Sequence


class NotificationChannel(str, Enum):
    IN_APP = "in_app"
    EMAIL = "email"


class NotificationType(str, Enum):
    LINK_CONTRIBUTION = "link_contribution"
    GOAL_MILESTONE = "goal_milestone"
    GOAL_COMPLETED = "goal_completed"


@dataclass(slots=True)
class Notification:
    recipient: str
    type: NotificationType
    subject: str
    body: str
    channel: NotificationChannel = NotificationChannel.IN_APP
    metadata: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    read_at: Optional[datetime] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def as_dict(self) -> Dict[str, str]:
        return {
            **self.metadata,
            "recipient": self.recipient,
            "type": self.type.value,
            "channel": self.channel.value,
            "subject": self.subject,
            "body": self.body,
            "created_at": self.created_at.isoformat(),
        }


class NotificationCenter:
    """In-app inboxes keyed by recipient, plus a queue of mail waiting to go out.

    Mail moves from the queue to the history when :meth:`pop_all` hands it to
    a sender.
    """

    def __init__(self) -> None:
        self._inboxes: DefaultDict[str, List[Notification]] = defaultdict(list)
        self._outgoing: List[Notification] = []
        self._delivered: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        if notification.channel is NotificationChannel.EMAIL:
            self._outgoing.append(notification)
            return
        self._inboxes[notification.recipient].append(notification)

    def inbox(self, recipient: str, *, unread_only: bool = False) -> Sequence[Notification]:
        messages = self._inboxes.get(recipient, [])
        if unread_only:
            return tuple(message for message in messages if not message.is_read)
        return tuple(messages)

    def mark_read(self, recipient: str, *, at: Optional[datetime] = None) -> int:
        unread = self.inbox(recipient, unread_only=True)
        stamp = at or datetime.utcnow()
        for message in unread:
            message.read_at = stamp
        return len(unread)

    def pending(self, *, notification_type: NotificationType | None = None) -> Sequence[Notification]:
        return tuple(
            message
            for message in self._outgoing
            if notification_type is None or message.type is notification_type
        )

    def pop_all(self) -> Sequence[Notification]:
        batch, self._outgoing = tuple(self._outgoing), []
        self._delivered.extend(batch)
        return batch

    def history(self) -> Sequence[Notification]:
        return tuple(self._delivered)

    def purge_recipient(self, recipient: str) -> None:
        """Forget everything addressed to ``recipient``.

        Queued mail is addressed to an email address and names its user in
        ``metadata["user"]``; both forms are dropped.
        """

        self._inboxes.pop(recipient, None)
        self._outgoing = [
            message
            for message in self._outgoing
            if recipient not in (message.recipient, message.metadata.get("user"))
        ]


__all__ = [
    "Notification",
    "NotificationCenter",
    "NotificationChannel",
    "NotificationType",
]
