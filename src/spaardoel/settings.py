"""Environment driven settings shared by the web app and the ops commands."""
from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_path(name: str) -> Optional[Path]:
    raw = os.environ.get(name, "").strip()
    return Path(raw) if raw else None


SESSION_SECRET = os.environ.get("SESSION_SECRET", "change-this-session-secret")
BASE_URL = os.environ.get("SPAARDOEL_BASE_URL", "http://localhost:8000")
LOG_PATH = _env_path("SPAARDOEL_LOG_PATH")
SMTP_HOST = os.environ.get("SPAARDOEL_SMTP_HOST", "")
SMTP_PORT = _env_int("SPAARDOEL_SMTP_PORT", 587)
MAIL_SENDER = os.environ.get("SPAARDOEL_MAIL_SENDER", "noreply@spaardoel.local")
DATADOG_API_KEY = os.environ.get("DATADOG_API_KEY", "")
SENTRY_AUTH_TOKEN = os.environ.get("SENTRY_AUTH_TOKEN", "")
RELEASE_VERSION = os.environ.get("GITHUB_SHA", "unknown")
DEPLOY_ENVIRONMENT = os.environ.get("SPAARDOEL_ENVIRONMENT", "production")

SESSION_LIFETIME = timedelta(days=_env_int("SPAARDOEL_SESSION_DAYS", 7))

__all__ = [
    "BASE_URL",
    "DATADOG_API_KEY",
    "DEPLOY_ENVIRONMENT",
    "LOG_PATH",
    "MAIL_SENDER",
    "RELEASE_VERSION",
    "SENTRY_AUTH_TOKEN",
    "SESSION_LIFETIME",
    "SESSION_SECRET",
    "SMTP_HOST",
    "SMTP_PORT",
]
