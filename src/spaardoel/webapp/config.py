"""Configuration constants for the Spaardoel web frontend."""
from __future__ import annotations

import os
from typing import Dict, Tuple

from ..account import DEFAULT_MILESTONES
from ..plant import DEFAULT_PLANT_TYPE, PLANT_COLORS
from ..service import SHARE_TOKEN_BYTES
from ..settings import LOG_PATH, MAIL_SENDER, SESSION_LIFETIME, SESSION_SECRET, SMTP_HOST, SMTP_PORT

# Read directly so tests can point a reloaded app at a temporary database.
SQLITE_FILE_NAME = os.environ.get("SPAARDOEL_SQLITE", "spaardoel.db")
PLANT_TYPES: Tuple[str, ...] = tuple(PLANT_COLORS)
PLANT_TYPE_LABELS: Dict[str, str] = {
    "sunflower": "Sunflower",
    "rose": "Rose",
    "tulip": "Tulip",
    "daisy": "Daisy",
}
MAX_SHARE_LINK_DAYS = 90
DEFAULT_LOCALE = os.environ.get("SPAARDOEL_LOCALE", "en")

__all__ = [
    "DEFAULT_LOCALE",
    "DEFAULT_MILESTONES",
    "DEFAULT_PLANT_TYPE",
    "LOG_PATH",
    "MAIL_SENDER",
    "MAX_SHARE_LINK_DAYS",
    "PLANT_TYPES",
    "PLANT_TYPE_LABELS",
    "SESSION_LIFETIME",
    "SESSION_SECRET",
    "SHARE_TOKEN_BYTES",
    "SMTP_HOST",
    "SMTP_PORT",
    "SQLITE_FILE_NAME",
]
