"""
SQLAlchemy models for the migration session and batch ledger.

A session tracks one uploaded file between preview and confirmation. A batch
records one committed import so it can be rolled back by its identifier.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


def _new_identifier() -> str:
    return str(uuid4())


class MigrationSessionStatus(str, enum.Enum):
    """Lifecycle states for an uploaded migration file."""

    PENDING = "pending"
    COMMITTED = "committed"
    DISCARDED = "discarded"
    EXPIRED = "expired"


class MigrationBatchStatus(str, enum.Enum):
    """Lifecycle states for a committed import batch."""

    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class MigrationSession(BaseModel):
    """An uploaded CSV awaiting confirmation."""

    __tablename__ = "migration_sessions"

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=_new_identifier)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_system: Mapped[str] = mapped_column(db.String(50), nullable=False)
    entity: Mapped[str] = mapped_column(db.String(20), nullable=False)
    status: Mapped[MigrationSessionStatus] = mapped_column(
        Enum(MigrationSessionStatus, name="migration_session_status_enum"),
        nullable=False,
        default=MigrationSessionStatus.PENDING,
        index=True,
    )
    original_filename: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    column_mapping_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    mapping_overridden: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    summary_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    batches = relationship("MigrationBatch", back_populates="session")

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # SQLite drops tzinfo on round trip.
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<MigrationSession id={self.id} status={self.status.value}>"


class MigrationBatch(BaseModel):
    """A committed import whose records share one batch identifier."""

    __tablename__ = "migration_batches"

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=_new_identifier)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[str | None] = mapped_column(
        ForeignKey("migration_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    source_system: Mapped[str] = mapped_column(db.String(50), nullable=False)
    entity: Mapped[str] = mapped_column(db.String(20), nullable=False)
    status: Mapped[MigrationBatchStatus] = mapped_column(
        Enum(MigrationBatchStatus, name="migration_batch_status_enum"),
        nullable=False,
        default=MigrationBatchStatus.COMMITTED,
        index=True,
    )
    inserted_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    updated_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    timed_out: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    rolled_back_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    rollback_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    session = relationship("MigrationSession", back_populates="batches")

    __table_args__ = (Index("idx_migration_batches_org_status", "organization_id", "status"),)

    def to_dict(self) -> dict:
        return {
            "batch_id": self.id,
            "session_id": self.session_id,
            "source_system": self.source_system,
            "entity": self.entity,
            "status": self.status.value,
            "inserted_count": self.inserted_count,
            "updated_count": self.updated_count,
            "error_count": self.error_count,
            "timed_out": self.timed_out,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "rolled_back_at": self.rolled_back_at.isoformat() if self.rolled_back_at else None,
            "rollback": self.rollback_json,
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<MigrationBatch id={self.id} entity={self.entity} status={self.status.value}>"
