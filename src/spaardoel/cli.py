"""Unified command line interface for the operational commands.

Usage::

    spaardoel <command> [args]

Each command maps to a module in the package exposing ``main(argv) -> int``.
"""

from __future__ import annotations

import argparse
import logging
from importlib import import_module
from typing import Dict, List, Optional

COMMANDS: Dict[str, str] = {
    "health-check": "spaardoel.healthcheck",
    "canary": "spaardoel.canary",
    "retention": "spaardoel.retention",
    "setup-monitoring": "spaardoel.monitoring",
}


def main(argv: Optional[List[str]] = None) -> int:
    """Run a subcommand and return its exit code."""
    parser = argparse.ArgumentParser(prog="spaardoel", description="Spaardoel operational commands")
    parser.add_argument("--log-level", default="WARNING", help="Logging level for the command")
    parser.add_argument("command", choices=sorted(COMMANDS))
    parser.add_argument("args", nargs=argparse.REMAINDER)
    ns = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, ns.log_level.upper(), logging.WARNING))
    module = import_module(COMMANDS[ns.command])
    return module.main(ns.args)


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())
