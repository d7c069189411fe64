"""Synchronization module for RAM Profile Manager.

Philosophy: THE SOURCE WINS.

This module provides:
- SyncEngine: one-way mirror (copy plus delete) between disk and RAM
- SyncStats: what a mirror did

Load mirrors disk to RAM before mounting; save mirrors RAM to disk after
unmounting.
"""

from ram_profile_manager.sync.engine import SyncEngine, SyncStats

__all__ = [
    "SyncEngine",
    "SyncStats",
]
