"""Reconciliation modes."""

from enum import Enum


class SyncMode(str, Enum):
    """How a sync pass compares local and remote state."""

    FULL = "full"
    """Compare every id on both sides, ignoring the previous snapshot"""

    DELTA = "delta"
    """Only inspect remote files whose modified time changed since the snapshot"""
