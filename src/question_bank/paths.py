"""
Path utilities for locating per-user state files.

QUESTION_BANK_HOME overrides everything (tests, portable installs).
Otherwise the platform's standard application-data location is used.
"""
from __future__ import annotations

import os
import platform
from pathlib import Path

APP_DIR_NAME = "Question Bank"
TAXONOMY_FILENAME = "taxonomies.json"


def get_app_data_dir() -> Path:
    """
    Get the application data directory for internal state files.

    Windows: %LOCALAPPDATA%/Question Bank
    macOS:   ~/Library/Application Support/Question Bank
    Linux:   $XDG_DATA_HOME/Question Bank (default ~/.local/share)
    """
    override = os.environ.get("QUESTION_BANK_HOME")
    if override:
        return Path(override)

    system = platform.system()
    if system == "Windows":
        base = os.environ.get("LOCALAPPDATA", os.environ.get("APPDATA"))
        return Path(base) / APP_DIR_NAME if base else Path.home() / ".question_bank"
    if system == "Darwin":
        return Path.home() / "Library/Application Support" / APP_DIR_NAME
    xdg = os.environ.get("XDG_DATA_HOME")
    base_dir = Path(xdg) if xdg else Path.home() / ".local/share"
    return base_dir / APP_DIR_NAME


def get_taxonomy_path() -> Path:
    """Location of the saved subject/level/title lists."""
    return get_app_data_dir() / TAXONOMY_FILENAME
