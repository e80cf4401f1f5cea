"""
Relational record store for billing documents.

Each public method is one transaction: it commits before returning or rolls
back and raises. No transaction is left open across an artifact store call.
Owner scoping is applied on every read and write; a document belonging to
another owner is reported as not found.
"""
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.exceptions import BillingError, NotFound, StoreUnavailable, ValidationFailed
from app.modules.contacts.models import Client
from app.modules.documents.reminders import serialize_reminder_repetition
from app.modules.documents.schemas import (
    DocumentKind, DocumentStatus, PartyProfile, PaymentTerms,
    RenderableDocument, RenderContext, RenderLineItem
)
from app.modules.documents.status import derive_status, effective_status, resolve_status
from app.modules.files.schemas import ArtifactCategory
from app.modules.items.models import Item
from app.modules.projects.models import Project
from app.modules.users.models import User

logger = logging.getLogger(__name__)

_UNSET = object()


class DocumentRepository:
    """Base record store; subclasses bind the model and kind-specific rules"""

    model = None
    line_item_model = None
    kind: DocumentKind = None
    label = "Document"
    client_required = False
    date_field = "created_at"
    # Artifact pointer columns and the sub-folder each one lives in
    artifact_fields: Dict[str, Optional[ArtifactCategory]] = {}
    generated_pdf_field: str = None

    def __init__(self, db: Session):
        self.db = db

    # ===== transaction helpers =====

    @contextmanager
    def _transaction(self, action: str):
        try:
            yield
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to {action}: {e.orig}")
            raise ValidationFailed(f"Could not {action}: a referenced record is missing or a value is duplicated") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while trying to {action}: {e}")
            raise StoreUnavailable(f"Could not {action}") from e

    @contextmanager
    def _reading(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while trying to {action}: {e}")
            raise StoreUnavailable(f"Could not {action}") from e

    # ===== referential checks =====

    def _require_owner(self, owner_id: int) -> User:
        owner = self.db.get(User, owner_id)
        if not owner:
            raise ValidationFailed("User not found")
        return owner

    def _require_client(self, client_id: int, owner_id: int) -> Client:
        client = self.db.query(Client).filter(
            Client.id == client_id,
            Client.owner_id == owner_id
        ).first()
        if not client:
            raise ValidationFailed("Client not found or does not belong to user")
        return client

    def _require_project(self, project_id: int, owner_id: int) -> Project:
        project = self.db.query(Project).filter(
            Project.id == project_id,
            Project.owner_id == owner_id
        ).first()
        if not project:
            raise ValidationFailed("Project not found or does not belong to user")
        return project

    def _require_items(self, line_items, owner_id: int) -> None:
        item_ids = {line.item_id for line in line_items}
        if not item_ids:
            return
        found = {
            row.id for row in self.db.query(Item.id).filter(
                Item.id.in_(item_ids),
                Item.owner_id == owner_id
            )
        }
        missing = sorted(item_ids - found)
        if missing:
            raise ValidationFailed(f"Items not found or do not belong to user: {missing}")

    def _build_line_items(self, line_items) -> list:
        return [
            self.line_item_model(
                item_id=line.item_id,
                position=position,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for position, line in enumerate(line_items)
        ]

    @staticmethod
    def _totals(line_items, subtotal, tax_rate, total):
        """Fill subtotal/total from the items when the caller did not"""
        tax_rate = Decimal(tax_rate or 0)
        if subtotal is None:
            subtotal = sum((Decimal(line.quantity) * Decimal(line.unit_price) for line in line_items), Decimal("0"))
        if total is None:
            total = Decimal(subtotal) + Decimal(subtotal) * tax_rate / Decimal(100)
        return Decimal(subtotal).quantize(Decimal("0.01")), tax_rate, Decimal(total).quantize(Decimal("0.01"))

    # ===== hooks =====

    def _kind_fields(self, owner: User, data, values: dict) -> dict:
        """Kind-specific columns for a new record"""
        return {}

    def _on_status_reverted(self, document) -> None:
        """Called inside the update transaction when a paid document is reverted"""

    def document_number(self, document) -> str:
        return str(document.id)

    def counterparty(self, document) -> PartyProfile:
        raise NotImplementedError

    def _base_query(self):
        return self.db.query(self.model).options(selectinload(self.model.line_items))

    # ===== contract =====

    def create_record(self, owner_id: int, data, today: Optional[date] = None):
        """Insert header and line items in one transaction; status is derived from the due date"""
        with self._transaction(f"create {self.label.lower()}"):
            owner = self._require_owner(owner_id)
            client_id = getattr(data, "client_id", None)
            if client_id is not None:
                self._require_client(client_id, owner_id)
            elif self.client_required:
                raise ValidationFailed("Client is required")
            if data.project_id is not None:
                self._require_project(data.project_id, owner_id)
            self._require_items(data.items, owner_id)

            subtotal, tax_rate, total = self._totals(data.items, data.subtotal, data.tax_rate, data.total)
            values = dict(
                owner_id=owner_id,
                project_id=data.project_id,
                due_date=data.due_date,
                subtotal=subtotal,
                tax_rate=tax_rate,
                total=total,
                currency=(data.currency or owner.currency or settings.DEFAULT_CURRENCY).upper(),
                payment_terms=data.payment_terms or PaymentTerms.FULL,
                advance_amount=data.advance_amount,
                balance_due=data.balance_due,
                balance_due_date=data.balance_due_date,
                status=derive_status(data.due_date, today),
                notes=data.notes,
                payment_reminder_repetition=serialize_reminder_repetition(data.payment_reminder_repetition),
            )
            values.update(self._kind_fields(owner, data, values))

            document = self.model(**values)
            document.line_items = self._build_line_items(data.items)
            self.db.add(document)
            self.db.flush()

        self.db.refresh(document)
        logger.info(f"{self.label} {document.id} created for owner {owner_id}")
        return document

    def get_record(self, document_id: int, owner_id: int):
        with self._reading(f"load {self.label.lower()} {document_id}"):
            document = self._base_query().filter(
                self.model.id == document_id,
                self.model.owner_id == owner_id
            ).first()
        if not document:
            raise NotFound(f"{self.label} not found")
        return document

    def list_records(
        self,
        owner_id: int,
        project_id: Optional[int] = None,
        client_id: Optional[int] = None,
    ) -> List:
        with self._reading(f"list {self.label.lower()}s"):
            query = self._base_query().filter(self.model.owner_id == owner_id)
            if project_id is not None:
                query = query.filter(self.model.project_id == project_id)
            if client_id is not None:
                query = query.filter(self.model.client_id == client_id)
            return query.order_by(
                desc(getattr(self.model, self.date_field)),
                desc(self.model.created_at),
                desc(self.model.id)
            ).all()

    def update_record(self, document_id: int, owner_id: int, patch, today: Optional[date] = None):
        """
        Apply a partial update.

        Status rules: an explicit ``paid`` always wins; explicit ``pending`` or
        ``overdue`` is accepted when reverting from paid or when it matches the
        due date. Without an explicit status a due date change re-derives the
        status unless the document is paid.
        """
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationFailed("No fields to update")

        with self._transaction(f"update {self.label.lower()} {document_id}"):
            document = self._base_query().filter(
                self.model.id == document_id,
                self.model.owner_id == owner_id
            ).first()
            if not document:
                raise NotFound(f"{self.label} not found")

            requested = changes.pop("status", None)
            line_items = changes.pop("items", None)
            repetition = changes.pop("payment_reminder_repetition", _UNSET)

            if "client_id" in changes:
                if changes["client_id"] is not None:
                    self._require_client(changes["client_id"], owner_id)
                elif self.client_required:
                    raise ValidationFailed("Client is required")
            if changes.get("project_id") is not None:
                self._require_project(changes["project_id"], owner_id)
            if changes.get("currency"):
                changes["currency"] = changes["currency"].upper()

            due_date_changed = "due_date" in changes and changes["due_date"] != document.due_date

            for field, value in changes.items():
                setattr(document, field, value)

            if line_items is not None:
                items = patch.items
                self._require_items(items, owner_id)
                document.line_items = self._build_line_items(items)
                if "subtotal" not in changes or "total" not in changes:
                    subtotal, tax_rate, total = self._totals(
                        items, changes.get("subtotal"), document.tax_rate, changes.get("total")
                    )
                    document.subtotal, document.total = subtotal, total
            elif ("tax_rate" in changes or "subtotal" in changes) and "total" not in changes:
                _, _, document.total = self._totals([], document.subtotal, document.tax_rate, None)

            if repetition is not _UNSET:
                document.payment_reminder_repetition = serialize_reminder_repetition(repetition)

            new_status, reverted = resolve_status(
                document.status, requested, document.due_date, due_date_changed, today
            )
            if reverted:
                self._on_status_reverted(document)
            document.status = new_status
            document.updated_at = func.now()
            self.db.flush()

        self.db.refresh(document)
        logger.info(f"{self.label} {document_id} updated for owner {owner_id}")
        return document

    def delete_record(self, document_id: int, owner_id: int) -> Dict[str, Optional[str]]:
        """Delete the row and its line items; returns the artifact pointers it held"""
        with self._transaction(f"delete {self.label.lower()} {document_id}"):
            document = self.db.query(self.model).filter(
                self.model.id == document_id,
                self.model.owner_id == owner_id
            ).first()
            if not document:
                raise NotFound(f"{self.label} not found")
            file_names = {field: getattr(document, field) for field in self.artifact_fields}
            self.db.delete(document)

        logger.info(f"{self.label} {document_id} deleted for owner {owner_id}")
        return file_names

    def set_file_name(self, document_id: int, owner_id: int, field: str, file_name: Optional[str]):
        """Move an artifact pointer; the coordinator calls this only after the upload succeeded"""
        if field not in self.artifact_fields:
            raise ValidationFailed(f"Unknown artifact field: {field}")

        with self._transaction(f"set {field} on {self.label.lower()} {document_id}"):
            document = self.db.query(self.model).filter(
                self.model.id == document_id,
                self.model.owner_id == owner_id
            ).first()
            if not document:
                raise NotFound(f"{self.label} not found")
            setattr(document, field, file_name)
            document.updated_at = func.now()
            self.db.flush()

        self.db.refresh(document)
        return document

    def get_render_context(self, document_id: int, owner_id: int, today: Optional[date] = None) -> RenderContext:
        document = self.get_record(document_id, owner_id)
        with self._reading(f"load render data for {self.label.lower()} {document_id}"):
            owner = self.db.get(User, owner_id)
            item_names = dict(
                self.db.query(Item.id, Item.name).filter(
                    Item.id.in_([line.item_id for line in document.line_items])
                ).all()
            ) if document.line_items else {}
            counterparty = self.counterparty(document)

        renderable = RenderableDocument(
            kind=self.kind,
            number=self.document_number(document),
            document_date=getattr(document, self.date_field, None),
            due_date=document.due_date,
            subtotal=document.subtotal,
            tax_rate=document.tax_rate,
            total=document.total,
            currency=document.currency,
            payment_terms=document.payment_terms,
            advance_amount=document.advance_amount,
            balance_due=document.balance_due,
            balance_due_date=document.balance_due_date,
            status=effective_status(document.status, document.due_date, today),
            notes=document.notes,
        )
        line_items = [
            RenderLineItem(
                name=item_names.get(line.item_id, f"Item {line.item_id}"),
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in document.line_items
        ]
        return RenderContext(
            document=renderable,
            line_items=line_items,
            owner=PartyProfile(
                full_name=owner.full_name,
                organization=owner.organization,
                email=owner.email,
                phone=owner.mobile_number,
                gstin=owner.gstin,
                pan=owner.pan,
                country=owner.country,
            ),
            counterparty=counterparty,
            logo_path=owner.logo,
            file_names={field: getattr(document, field) for field in self.artifact_fields},
        )
