#!/usr/bin/env python3
"""
paths.py
-------------------
Path constants for the OMT-G integrity guard.

The project structure:
    ROOT/
    ├── omtg/          # Package code
    ├── data/          # Default SQLite database
    ├── logs/          # Application logs
    └── omtg.yaml      # Optional configuration file

All paths are resolved at import time. They are defaults only; every
one of them can be overridden from the configuration file or the CLI.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from pathlib import Path


def _get_project_root() -> Path:
    """
    Determine project root directory.

    Assumes this file is at ROOT/omtg/core/paths.py.

    Returns:
        Path object for project root
    """
    return Path(__file__).resolve().parent.parent.parent


# ----- Project directory -----
ROOT: Path = _get_project_root()
DATA_DIR = ROOT / "data"

# --- Database ---
DB_PATH = DATA_DIR / "omtg.db"
DB_URL = f"sqlite:///{DB_PATH}"

# --- Logs ---
LOG_DIR = ROOT / "logs"

# --- Configuration ---
CONFIG_PATH = ROOT / "omtg.yaml"
