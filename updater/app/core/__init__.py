"""Shared core identifiers."""
from __future__ import annotations

SERVICE_NAME = "metadata-updater"
