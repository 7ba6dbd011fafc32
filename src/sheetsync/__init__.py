"""
Bidirectional sync between a Google Sheets worksheet and a PostgreSQL table

This package keeps a spreadsheet and a relational table consistent by
periodically snapshotting both sides and applying the writes needed to
converge them.

Components:
- identifiers: Label to storage-key normalization
- snapshot: Position-keyed reads of both sides
- reconciler: Diff and apply one reconciliation pass
- session: Session ownership, scheduling and the public command surface
- stores: Google Sheets and PostgreSQL adapters

Usage:
    from sheetsync.session import SyncEngine
    from sheetsync.stores import GoogleSheetsStore, PostgresTableStore
"""

__version__ = "1.0.0"
__all__ = ["identifiers", "snapshot", "reconciler", "session", "stores"]
