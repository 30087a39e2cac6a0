"""Family web app: database tables here, the FastAPI ``app`` on first access."""
from __future__ import annotations

from typing import Any

from .persistence import *  # noqa: F401,F403
from .persistence import __all__ as _table_names

__all__ = [*_table_names, "app"]


def __getattr__(name: str) -> Any:
    if name == "app":
        from .application import app

        return app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
