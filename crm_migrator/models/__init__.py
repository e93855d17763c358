# crm_migrator/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .migration import MigrationBatch, MigrationBatchStatus, MigrationSession, MigrationSessionStatus
from .organization import Organization
from .records import Contact, Invoice, Job

__all__ = [
    "db",
    "BaseModel",
    "Organization",
    # Migrated records
    "Contact",
    "Job",
    "Invoice",
    # Migration ledger
    "MigrationSession",
    "MigrationSessionStatus",
    "MigrationBatch",
    "MigrationBatchStatus",
]
