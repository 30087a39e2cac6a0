"""Persistence and SQLModel definitions for the Spaardoel web frontend."""
from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlmodel import Field, Session, SQLModel, create_engine

from .config import DEFAULT_PLANT_TYPE, SQLITE_FILE_NAME

# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
engine = create_engine(
    f"sqlite:///{SQLITE_FILE_NAME}",
    echo=False,
    connect_args={"check_same_thread": False},
)

# Ensure fresh metadata when re-importing in test contexts.
SQLModel.metadata.clear()


if getattr(Session.__init__, "__name__", "") != "_session_init_no_expire":
    _SESSION_INIT = Session.__init__

    def _session_init_no_expire(self, *args: Any, **kwargs: Any) -> None:  # pragma: no cover - simple wrapper
        if "expire_on_commit" not in kwargs:
            kwargs["expire_on_commit"] = False
        _SESSION_INIT(self, *args, **kwargs)

    Session.__init__ = _session_init_no_expire  # type: ignore[assignment]


ROLE_PARENT = "parent"
ROLE_CHILD = "child"

GOAL_STATUS_ACTIVE = "active"
GOAL_STATUS_COMPLETED = "completed"
GOAL_STATUS_ARCHIVED = "archived"

SOURCE_CHILD = "child"
SOURCE_PARENT = "parent"
SOURCE_EXTERNAL = "external"


def utcnow() -> datetime:
    """Timestamps are stored timezone-aware, in UTC."""

    return datetime.now(timezone.utc)


class UserAccount(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    name: str
    role: str  # parent|child
    pin: str = ""
    email: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, index=True)
    birth_date: Optional[date] = None
    created_at: datetime = Field(default_factory=utcnow)


class SavingsGoal(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    name: str
    target_cents: int
    saved_cents: int = 0
    plant_type: str = DEFAULT_PLANT_TYPE
    status: str = GOAL_STATUS_ACTIVE  # active|completed|archived
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class Contribution(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(index=True)
    amount_cents: int
    source: str  # child|parent|external
    contributor_name: str = ""
    message: str = ""
    share_link_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class ShareLink(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(index=True)
    token: str = Field(index=True, unique=True)
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    use_count: int = 0
    active: bool = True


class Milestone(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(index=True)
    percentage: int
    reward: str = ""
    reached_at: Optional[datetime] = None


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    type: str
    subject: str
    body: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    read_at: Optional[datetime] = None


class LoginSession(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    session_key: str = Field(index=True, unique=True)
    user_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


class DeletedUser(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str
    deleted_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Database initialisation & migrations
# ---------------------------------------------------------------------------
def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.execute(f"PRAGMA table_info({table});")
    return any(row[1] == column for row in cur.fetchall())


def run_migrations() -> None:
    """Add columns introduced after the first release to older databases."""

    raw = sqlite3.connect(SQLITE_FILE_NAME)
    try:
        if not _column_exists(raw, "savingsgoal", "plant_type"):
            raw.execute(
                f"ALTER TABLE savingsgoal ADD COLUMN plant_type TEXT DEFAULT '{DEFAULT_PLANT_TYPE}';"
            )
        if not _column_exists(raw, "savingsgoal", "completed_at"):
            raw.execute("ALTER TABLE savingsgoal ADD COLUMN completed_at TEXT;")
        if not _column_exists(raw, "sharelink", "max_uses"):
            raw.execute("ALTER TABLE sharelink ADD COLUMN max_uses INTEGER;")
        if not _column_exists(raw, "sharelink", "use_count"):
            raw.execute("ALTER TABLE sharelink ADD COLUMN use_count INTEGER DEFAULT 0;")
        if not _column_exists(raw, "useraccount", "birth_date"):
            raw.execute("ALTER TABLE useraccount ADD COLUMN birth_date TEXT;")
        raw.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_contribution_goal_created
            ON contribution(goal_id, created_at);
            """
        )
        raw.commit()
    finally:
        raw.close()


create_db_and_tables()
run_migrations()


__all__ = [
    "engine",
    "UserAccount",
    "SavingsGoal",
    "Contribution",
    "ShareLink",
    "Milestone",
    "Notification",
    "LoginSession",
    "DeletedUser",
    "ROLE_PARENT",
    "ROLE_CHILD",
    "GOAL_STATUS_ACTIVE",
    "GOAL_STATUS_COMPLETED",
    "GOAL_STATUS_ARCHIVED",
    "SOURCE_CHILD",
    "SOURCE_PARENT",
    "SOURCE_EXTERNAL",
    "create_db_and_tables",
    "run_migrations",
    "utcnow",
]
