"""Database models and utilities.

This module exports all database models.
"""

from __future__ import annotations

from grailseeker.db.models import ScanCorrection, metadata

__all__ = [
    "metadata",
    "ScanCorrection",
]
