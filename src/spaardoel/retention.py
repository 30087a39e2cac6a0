"""GDPR data-retention audit for the Spaardoel database."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlmodel import Session, select

from .webapp.persistence import (
    GOAL_STATUS_COMPLETED,
    ROLE_CHILD,
    Contribution,
    DeletedUser,
    LoginSession,
    Milestone,
    SavingsGoal,
    ShareLink,
    UserAccount,
    engine,
    utcnow,
)

logger = logging.getLogger(__name__)

# Days each kind of record may be kept.
RETENTION_POLICIES: Dict[str, int] = {
    "user_sessions": 30,
    "audit_logs": 2555,
    "child_profiles": 2555,
    "financial_data": 2555,
    "plant_data": 365,
    "consent_records": 2555,
    "deleted_user_data": 30,
}

ADULT_AGE = 18

RECOMMENDED_ACTIONS: Dict[str, str] = {
    "user_sessions": "Run: spaardoel retention --apply (removes expired sessions)",
    "deleted_user_data": "Run: spaardoel retention --apply (purges deleted user records)",
    "plant_data": "Run: spaardoel retention --apply (removes long completed goals)",
    "child_profiles": "Review and migrate adult accounts manually",
}


@dataclass(slots=True)
class RetentionIssue:
    type: str
    count: int
    severity: str
    message: str

    @property
    def high(self) -> bool:
        return self.severity == "high"


@dataclass(slots=True)
class RetentionReport:
    checked_at: datetime
    issues: List[RetentionIssue] = field(default_factory=list)

    @property
    def compliant(self) -> bool:
        return not self.issues

    @property
    def has_high_severity(self) -> bool:
        return any(issue.high for issue in self.issues)

    @property
    def exit_code(self) -> int:
        return 1 if self.has_high_severity else 0


def _cutoff(now: datetime, policy: str) -> datetime:
    return now - timedelta(days=RETENTION_POLICIES[policy])


def adult_birth_cutoff(day: date) -> date:
    """Children born before this date are adults on ``day``."""

    try:
        return day.replace(year=day.year - ADULT_AGE)
    except ValueError:
        # 29 February in a year without one.
        return day.replace(year=day.year - ADULT_AGE, day=28)


def expired_sessions(session: Session, now: datetime) -> List[LoginSession]:
    cutoff = _cutoff(now, "user_sessions")
    return session.exec(select(LoginSession).where(LoginSession.expires_at < cutoff)).all()


def stale_deleted_users(session: Session, now: datetime) -> List[DeletedUser]:
    cutoff = _cutoff(now, "deleted_user_data")
    return session.exec(select(DeletedUser).where(DeletedUser.deleted_at < cutoff)).all()


def stale_completed_goals(session: Session, now: datetime) -> List[SavingsGoal]:
    cutoff = _cutoff(now, "plant_data")
    return session.exec(
        select(SavingsGoal).where(
            SavingsGoal.status == GOAL_STATUS_COMPLETED,
            SavingsGoal.completed_at != None,  # noqa: E711
            SavingsGoal.completed_at < cutoff,
        )
    ).all()


def adult_child_profiles(session: Session, now: datetime) -> List[UserAccount]:
    cutoff = adult_birth_cutoff(now.date())
    return session.exec(
        select(UserAccount).where(
            UserAccount.role == ROLE_CHILD,
            UserAccount.birth_date != None,  # noqa: E711
            UserAccount.birth_date < cutoff,
        )
    ).all()


def audit(session: Session, *, now: Optional[datetime] = None) -> RetentionReport:
    """Collect records that outlived their retention policy."""

    moment = now or utcnow()
    report = RetentionReport(checked_at=moment)

    sessions = len(expired_sessions(session, moment))
    if sessions:
        report.issues.append(
            RetentionIssue("user_sessions", sessions, "medium", f"{sessions} expired sessions should be deleted")
        )
    deleted = len(stale_deleted_users(session, moment))
    if deleted:
        report.issues.append(
            RetentionIssue(
                "deleted_user_data",
                deleted,
                "high",
                f"{deleted} deleted user records should be permanently removed",
            )
        )
    goals = len(stale_completed_goals(session, moment))
    if goals:
        report.issues.append(
            RetentionIssue("plant_data", goals, "medium", f"{goals} completed goals data should be archived or deleted")
        )
    adults = len(adult_child_profiles(session, moment))
    if adults:
        report.issues.append(
            RetentionIssue(
                "child_profiles",
                adults,
                "high",
                f"{adults} child profiles belong to adults and need account migration",
            )
        )
    for issue in report.issues:
        logger.info("Retention issue %s: %s record(s), severity %s", issue.type, issue.count, issue.severity)
    return report


def apply_cleanup(session: Session, *, now: Optional[datetime] = None) -> Dict[str, int]:
    """Delete what the automatic policies cover; adult profiles stay for manual review."""

    moment = now or utcnow()
    removed = {"user_sessions": 0, "deleted_user_data": 0, "plant_data": 0}
    for row in expired_sessions(session, moment):
        session.delete(row)
        removed["user_sessions"] += 1
    for row in stale_deleted_users(session, moment):
        session.delete(row)
        removed["deleted_user_data"] += 1
    for goal in stale_completed_goals(session, moment):
        for model in (Contribution, ShareLink, Milestone):
            for row in session.exec(select(model).where(model.goal_id == goal.id)).all():
                session.delete(row)
        session.delete(goal)
        removed["plant_data"] += 1
    session.commit()
    logger.info("Retention cleanup removed %s", removed)
    return removed


def format_report(report: RetentionReport) -> str:
    if report.compliant:
        return "All data retention policies are compliant"
    lines = ["Data retention compliance issues found:"]
    for issue in report.issues:
        marker = "[HIGH]" if issue.high else "[MEDIUM]"
        lines.append(f"{marker} {issue.message}")
    lines.append("")
    lines.append("Recommended actions:")
    for issue in report.issues:
        lines.append(f"- {RECOMMENDED_ACTIONS[issue.type]}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check GDPR data retention compliance")
    parser.add_argument("--apply", action="store_true", help="Delete records covered by automatic policies")
    args = parser.parse_args(argv)

    with Session(engine) as session:
        report = audit(session)
        print(format_report(report))
        if args.apply and not report.compliant:
            removed = apply_cleanup(session, now=report.checked_at)
            print("Removed: " + ", ".join(f"{key}={value}" for key, value in removed.items()))
            report = audit(session, now=report.checked_at)
    return report.exit_code


__all__ = [
    "RECOMMENDED_ACTIONS",
    "RETENTION_POLICIES",
    "RetentionIssue",
    "RetentionReport",
    "adult_birth_cutoff",
    "apply_cleanup",
    "audit",
    "format_report",
    "main",
]
