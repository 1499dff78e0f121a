"""Updater-level constants shared across modules."""
from __future__ import annotations

REPO_KEY = "REPO"


class RUN_STATUS:
    UPDATED = "UPDATED"
    UP_TO_DATE = "UP_TO_DATE"
