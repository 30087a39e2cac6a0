from datetime import datetime, timedelta

from spaardoel.admin import AuditLog
from spaardoel.emailing import EmailClient
from spaardoel.i18n import Translator
from spaardoel.notifications import (
    Notification,
    NotificationCenter,
    NotificationChannel,
    NotificationType,
)


def test_notification_center_separates_inbox_and_email_queue() -> None:
    center = NotificationCenter()
    center.notify(Notification("ava", NotificationType.GOAL_MILESTONE, "25%", "Halfway to half"))
    center.notify(
        Notification(
            "mum@example.com",
            NotificationType.GOAL_COMPLETED,
            "Done",
            "Bicycle is fully grown",
            channel=NotificationChannel.EMAIL,
        )
    )

    assert [n.subject for n in center.inbox("ava")] == ["25%"]
    assert center.mark_read("ava") == 1
    assert center.inbox("ava", unread_only=True) == ()
    assert len(center.pending(notification_type=NotificationType.GOAL_COMPLETED)) == 1

    sent = center.pop_all()
    assert [n.recipient for n in sent] == ["mum@example.com"]
    assert center.pending() == ()
    assert center.history() == sent

    center.purge_recipient("ava")
    assert center.inbox("ava") == ()


def test_email_client_keeps_mail_without_smtp_host() -> None:
    client = EmailClient("", 587, sender="noreply@example.com")
    note = Notification("mum", NotificationType.LINK_CONTRIBUTION, "Grandma helped", "Grandma added €5.00")

    assert client.send_notification(note, "mum@example.com") is False

    (message,) = client.deliveries()
    assert message["To"] == "mum@example.com"
    assert message["From"] == "noreply@example.com"
    assert message["Subject"] == "Grandma helped"


def test_translator_labels_stages_per_locale() -> None:
    translator = Translator("en")

    assert translator.stage_label("fruiting") == "Fully grown"
    assert translator.stage_label("seed", locale="nl") == "Zaadje"
    assert translator.translate("unknown.key") == "unknown.key"
    assert translator.translate("dashboard.title", locale="fr") == "My savings garden"
    assert translator.available_locales() == ("en", "nl")


def test_audit_log_filters_and_purges() -> None:
    log = AuditLog()
    now = datetime(2024, 1, 1)
    log.record("mum", "create_goal", "g1", timestamp=now - timedelta(days=400))
    log.record("ava", "contribute", "g1", timestamp=now)

    assert [e.actor for e in log.entries(target="g1")] == ["mum", "ava"]
    assert log.purge_older_than(365, at=now) == 1
    assert log.latest().action == "contribute"


def test_purging_a_recipient_drops_mail_sent_to_their_address() -> None:
    center = NotificationCenter()
    center.notify(
        Notification(
            "mum@example.com",
            NotificationType.GOAL_MILESTONE,
            "50%",
            "Halfway",
            channel=NotificationChannel.EMAIL,
            metadata={"user": "mum"},
        )
    )
    center.notify(
        Notification(
            "dad@example.com",
            NotificationType.GOAL_MILESTONE,
            "50%",
            "Halfway",
            channel=NotificationChannel.EMAIL,
            metadata={"user": "dad"},
        )
    )

    center.purge_recipient("mum")

    assert [n.recipient for n in center.pending()] == ["dad@example.com"]
