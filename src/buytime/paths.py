"""Helpers for locating application directories."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "BuyTime"
APP_AUTHOR = "BuyTime"


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_ledger_path() -> Path:
    """Database shared by the app, the monitor and the spend overlay."""
    return get_data_dir() / "ledger.sqlite3"


def get_cache_path() -> Path:
    """Database private to the foreground app."""
    return get_data_dir() / "local.sqlite3"


def get_log_path() -> Path:
    return get_data_dir() / "buytime.log"
