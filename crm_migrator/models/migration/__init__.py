"""
Migration ledger models: upload sessions awaiting confirmation and committed
import batches that can be rolled back.
"""

from .schema import MigrationBatch, MigrationBatchStatus, MigrationSession, MigrationSessionStatus

__all__ = [
    "MigrationBatch",
    "MigrationBatchStatus",
    "MigrationSession",
    "MigrationSessionStatus",
]
