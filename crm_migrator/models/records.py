"""
Tenant-scoped business records populated by CRM migrations.

Every record carries the ``migration_batch_id`` of the import that inserted
it so a committed batch can later be removed in one sweep.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class _MigratedRecordMixin:
    source_system: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    imported_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    migration_batch_id: Mapped[str | None] = mapped_column(db.String(36), nullable=True, index=True)


class Contact(_MigratedRecordMixin, BaseModel):
    """A person or business the tenant works with."""

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    address_street: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    address_city: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    address_state: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    address_zip: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    company: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    type: Mapped[str] = mapped_column(db.String(50), nullable=False, default="contact")
    status: Mapped[str] = mapped_column(db.String(50), nullable=False, default="lead")
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    tags: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    organization = relationship("Organization", back_populates="contacts")
    jobs = relationship("Job", back_populates="contact", passive_deletes=True)

    __table_args__ = (
        Index("idx_contacts_org_email", "organization_id", "email"),
        Index("idx_contacts_org_name", "organization_id", "last_name", "first_name"),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Contact id={self.id} email={self.email!r}>"


class Job(_MigratedRecordMixin, BaseModel):
    """A project or service job, optionally owned by a contact."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[int | None] = mapped_column(
        ForeignKey("contacts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    status: Mapped[str] = mapped_column(db.String(50), nullable=False, default="active")
    type: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    value: Mapped[float | None] = mapped_column(db.Float, nullable=True)
    address_street: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    address_city: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    address_state: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    address_zip: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    organization = relationship("Organization", back_populates="jobs")
    contact = relationship("Contact", back_populates="jobs")
    invoices = relationship("Invoice", back_populates="job", passive_deletes=True)

    __table_args__ = (Index("idx_jobs_org_title", "organization_id", "title"),)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Job id={self.id} title={self.title!r}>"


class Invoice(_MigratedRecordMixin, BaseModel):
    """A bill issued to a contact, optionally tied to a job."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[int | None] = mapped_column(
        ForeignKey("contacts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    job_id: Mapped[int | None] = mapped_column(
        ForeignKey("jobs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    invoice_number: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    amount: Mapped[float] = mapped_column(db.Float, nullable=False)
    paid_amount: Mapped[float] = mapped_column(db.Float, nullable=False, default=0)
    status: Mapped[str] = mapped_column(db.String(50), nullable=False, default="sent")
    issue_date: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    paid_date: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    organization = relationship("Organization", back_populates="invoices")
    contact = relationship("Contact")
    job = relationship("Job", back_populates="invoices")

    __table_args__ = (Index("idx_invoices_org_number", "organization_id", "invoice_number"),)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Invoice id={self.id} number={self.invoice_number!r}>"
