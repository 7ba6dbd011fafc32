"""
Pass scheduling

Runs reconciliation passes on a fixed period using APScheduler.
"""

from .scheduler import SyncScheduler

__all__ = ["SyncScheduler"]
