"""
Tenant-scoped persistence for migrated records.

The store offers natural-key resolution (``resolve``), insert-or-update per
entity, and delete-by-batch. All queries are scoped to one organization.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Mapping

from sqlalchemy import func
from sqlalchemy.orm import Session

from crm_migrator.models.records import Contact, Invoice, Job

from ..contracts import EntityType

UpsertAction = Literal["created", "updated"]

CONTACT_SECONDARY_FIELDS: tuple[str, ...] = (
    "phone",
    "address_street",
    "address_city",
    "address_state",
    "address_zip",
    "company",
    "status",
    "notes",
    "tags",
)
JOB_OPTIONAL_OVERWRITE_FIELDS: tuple[str, ...] = ("value", "start_date", "end_date", "notes")
INVOICE_OPTIONAL_OVERWRITE_FIELDS: tuple[str, ...] = ("paid_amount", "paid_date")
DATE_FIELDS: frozenset[str] = frozenset(
    {"created_at", "start_date", "end_date", "issue_date", "due_date", "paid_date"}
)

DEFAULT_CONTACT_TYPE = "contact"
DEFAULT_CONTACT_STATUS = "lead"
DEFAULT_JOB_STATUS = "active"
DEFAULT_INVOICE_STATUS = "sent"

_MODELS = {
    EntityType.CONTACT: Contact,
    EntityType.JOB: Job,
    EntityType.INVOICE: Invoice,
}


@dataclass(frozen=True)
class UpsertOutcome:
    entity: EntityType
    action: UpsertAction
    record_id: int


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _prepare(row: Mapping[str, Any], name: str) -> Any:
    value = row.get(name)
    if name in DATE_FIELDS:
        return _as_datetime(value)
    return value


def split_contact_name(name: str | None) -> tuple[str | None, str | None]:
    """Split a full name into first token and remaining tokens."""

    parts = (name or "").split()
    if not parts:
        return None, None
    return parts[0], " ".join(parts[1:]) or None


class TenantStore:
    """Natural-key resolution and upserts for one organization."""

    def __init__(self, session: Session, organization_id: int, *, source_system: str | None = None) -> None:
        self.session = session
        self.organization_id = organization_id
        self.source_system = source_system

    def bind(self, session: Session) -> "TenantStore":
        """Return a copy of this store using ``session``."""

        return TenantStore(session, self.organization_id, source_system=self.source_system)

    def _query(self, model, *columns):
        return self.session.query(*(columns or (model,))).filter(model.organization_id == self.organization_id)

    # Resolution -----------------------------------------------------------

    def resolve(self, kind: EntityType | str, **keys: Any) -> int | None:
        """
        Look up a record id by natural key.

        ``contact`` accepts ``email`` and/or ``name``; ``job`` accepts
        ``title`` and ``contact_id``.
        """

        entity = EntityType.coerce(kind)
        if entity is EntityType.CONTACT:
            return self.resolve_contact(email=keys.get("email"), name=keys.get("name"))
        if entity is EntityType.JOB:
            return self.resolve_job(title=keys.get("title"), contact_id=keys.get("contact_id"))
        raise ValueError(f"Natural-key resolution is not supported for {entity.value}.")

    def resolve_contact(self, *, email: str | None = None, name: str | None = None) -> int | None:
        if email:
            contact_id = (
                self._query(Contact, Contact.id)
                .filter(func.lower(Contact.email) == email.strip().lower())
                .order_by(Contact.id)
                .limit(1)
                .scalar()
            )
            if contact_id is not None:
                return contact_id

        first_name, last_name = split_contact_name(name)
        if first_name is None:
            return None
        query = self._query(Contact, Contact.id).filter(func.lower(Contact.first_name) == first_name.lower())
        if last_name is not None:
            query = query.filter(func.lower(Contact.last_name) == last_name.lower())
        return query.order_by(Contact.id).limit(1).scalar()

    def resolve_job(self, *, title: str | None, contact_id: int | None) -> int | None:
        if not title:
            return None
        query = self._query(Job, Job.id).filter(func.lower(Job.title) == title.strip().lower())
        if contact_id is None:
            query = query.filter(Job.contact_id.is_(None))
        else:
            query = query.filter(Job.contact_id == contact_id)
        return query.order_by(Job.id).limit(1).scalar()

    # Upserts --------------------------------------------------------------

    def _stamp(self, record, batch_id: str) -> None:
        record.organization_id = self.organization_id
        record.source_system = self.source_system
        record.imported_at = datetime.now(timezone.utc)
        record.migration_batch_id = batch_id

    def _find_contact(self, row: Mapping[str, Any]) -> Contact | None:
        email = row.get("email")
        if email:
            return (
                self._query(Contact)
                .filter(func.lower(Contact.email) == email.lower())
                .order_by(Contact.id)
                .first()
            )
        return (
            self._query(Contact)
            .filter(
                Contact.email.is_(None),
                func.lower(Contact.first_name) == row["first_name"].lower(),
                func.lower(Contact.last_name) == row["last_name"].lower(),
            )
            .order_by(Contact.id)
            .first()
        )

    def upsert_contact(self, row: Mapping[str, Any], batch_id: str) -> UpsertOutcome:
        contact = self._find_contact(row)
        if contact is not None:
            contact.first_name = row["first_name"]
            contact.last_name = row["last_name"]
            for name in CONTACT_SECONDARY_FIELDS:
                if row.get(name) is not None:
                    setattr(contact, name, row[name])
            self.session.flush()
            return UpsertOutcome(EntityType.CONTACT, "updated", contact.id)

        contact = Contact(
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row.get("email"),
            type=row.get("type") or DEFAULT_CONTACT_TYPE,
            status=row.get("status") or DEFAULT_CONTACT_STATUS,
        )
        for name in CONTACT_SECONDARY_FIELDS:
            if name != "status":
                setattr(contact, name, row.get(name))
        created_at = _prepare(row, "created_at")
        if created_at is not None:
            contact.created_at = created_at
        self._stamp(contact, batch_id)
        self.session.add(contact)
        self.session.flush()
        return UpsertOutcome(EntityType.CONTACT, "created", contact.id)

    def _resolve_row_contact(self, row: Mapping[str, Any]) -> int | None:
        return self.resolve_contact(email=row.get("contact_email"), name=row.get("contact_name"))

    def upsert_job(self, row: Mapping[str, Any], batch_id: str) -> UpsertOutcome:
        contact_id = self._resolve_row_contact(row)
        job_id = self.resolve_job(title=row["title"], contact_id=contact_id)
        if job_id is not None:
            job = self.session.get(Job, job_id)
            job.status = row.get("status") or DEFAULT_JOB_STATUS
            for name in JOB_OPTIONAL_OVERWRITE_FIELDS:
                value = _prepare(row, name)
                if value is not None:
                    setattr(job, name, value)
            self.session.flush()
            return UpsertOutcome(EntityType.JOB, "updated", job.id)

        job = Job(
            title=row["title"],
            contact_id=contact_id,
            status=row.get("status") or DEFAULT_JOB_STATUS,
            type=row.get("type"),
            description=row.get("description"),
            start_date=_prepare(row, "start_date"),
            end_date=_prepare(row, "end_date"),
            value=row.get("value"),
            address_street=row.get("address_street"),
            address_city=row.get("address_city"),
            address_state=row.get("address_state"),
            address_zip=row.get("address_zip"),
            notes=row.get("notes"),
        )
        created_at = _prepare(row, "created_at")
        if created_at is not None:
            job.created_at = created_at
        self._stamp(job, batch_id)
        self.session.add(job)
        self.session.flush()
        return UpsertOutcome(EntityType.JOB, "created", job.id)

    def _find_invoice(
        self,
        row: Mapping[str, Any],
        contact_id: int | None,
        job_id: int | None,
    ) -> Invoice | None:
        number = row.get("invoice_number")
        if number:
            return self._query(Invoice).filter(Invoice.invoice_number == number).order_by(Invoice.id).first()

        query = self._query(Invoice).filter(
            Invoice.invoice_number.is_(None),
            Invoice.amount == row["amount"],
        )
        query = query.filter(Invoice.contact_id.is_(None) if contact_id is None else Invoice.contact_id == contact_id)
        query = query.filter(Invoice.job_id.is_(None) if job_id is None else Invoice.job_id == job_id)
        issue_date = _prepare(row, "issue_date")
        query = query.filter(Invoice.issue_date.is_(None) if issue_date is None else Invoice.issue_date == issue_date)
        return query.order_by(Invoice.id).first()

    def upsert_invoice(self, row: Mapping[str, Any], batch_id: str) -> UpsertOutcome:
        contact_id = self._resolve_row_contact(row)
        job_id = None
        if contact_id is not None and row.get("job_title"):
            job_id = self.resolve_job(title=row["job_title"], contact_id=contact_id)

        invoice = self._find_invoice(row, contact_id, job_id)
        if invoice is not None:
            invoice.status = row.get("status") or DEFAULT_INVOICE_STATUS
            for name in INVOICE_OPTIONAL_OVERWRITE_FIELDS:
                value = _prepare(row, name)
                if value is not None:
                    setattr(invoice, name, value)
            self.session.flush()
            return UpsertOutcome(EntityType.INVOICE, "updated", invoice.id)

        paid_amount = row.get("paid_amount")
        invoice = Invoice(
            invoice_number=row.get("invoice_number"),
            contact_id=contact_id,
            job_id=job_id,
            amount=row["amount"],
            paid_amount=paid_amount if paid_amount is not None else 0,
            status=row.get("status") or DEFAULT_INVOICE_STATUS,
            issue_date=_prepare(row, "issue_date"),
            due_date=_prepare(row, "due_date"),
            paid_date=_prepare(row, "paid_date"),
            notes=row.get("notes"),
        )
        self._stamp(invoice, batch_id)
        self.session.add(invoice)
        self.session.flush()
        return UpsertOutcome(EntityType.INVOICE, "created", invoice.id)

    def upsert(self, entity: EntityType | str, row: Mapping[str, Any], batch_id: str) -> UpsertOutcome:
        entity_type = EntityType.coerce(entity)
        if entity_type is EntityType.CONTACT:
            return self.upsert_contact(row, batch_id)
        if entity_type is EntityType.JOB:
            return self.upsert_job(row, batch_id)
        return self.upsert_invoice(row, batch_id)

    # Rollback -------------------------------------------------------------

    def count_batch(self, entity: EntityType | str, batch_id: str) -> int:
        model = _MODELS[EntityType.coerce(entity)]
        return self._query(model).filter(model.migration_batch_id == batch_id).count()

    def delete_batch(self, entity: EntityType | str, batch_id: str) -> int:
        """Delete every ``entity`` record tagged with ``batch_id``; returns the count."""

        model = _MODELS[EntityType.coerce(entity)]
        return (
            self._query(model)
            .filter(model.migration_batch_id == batch_id)
            .delete(synchronize_session=False)
        )
