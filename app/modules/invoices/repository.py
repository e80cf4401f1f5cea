from typing import List, Optional
import logging

from sqlalchemy import desc

from app.core.config import settings
from app.core.exceptions import NotFound, ValidationFailed
from app.modules.contacts.models import Client
from app.modules.documents.repository import DocumentRepository
from app.modules.documents.schemas import DocumentKind, DocumentStatus, PartyProfile
from app.modules.invoices.models import (
    Invoice, InvoiceLineItem, InvoiceSequence, Payment, PaymentMethod
)
from app.modules.invoices.schemas import PaymentCreate

logger = logging.getLogger(__name__)


class InvoiceRepository(DocumentRepository):
    model = Invoice
    line_item_model = InvoiceLineItem
    kind = DocumentKind.INVOICE
    label = "Invoice"
    client_required = True
    date_field = "invoice_date"
    artifact_fields = {"invoice_file_name": None}
    generated_pdf_field = "invoice_file_name"

    def generate_invoice_number(self, owner_id: int) -> str:
        """Next number from the owner's sequence; runs inside the caller's transaction"""
        sequence = self.db.query(InvoiceSequence).filter(
            InvoiceSequence.owner_id == owner_id
        ).with_for_update().first()

        if not sequence:
            sequence = InvoiceSequence(
                owner_id=owner_id,
                current_number=0,
                prefix=settings.INVOICE_NUMBER_PREFIX
            )
            self.db.add(sequence)
            self.db.flush()

        sequence.current_number += 1
        return f"{sequence.prefix or settings.INVOICE_NUMBER_PREFIX}{sequence.current_number:06d}"

    def _kind_fields(self, owner, data, values: dict) -> dict:
        return dict(
            client_id=data.client_id,
            invoice_number=data.invoice_number or self.generate_invoice_number(owner.id),
            invoice_date=data.invoice_date,
            total_installments=data.total_installments,
            current_installment=data.current_installment,
            notes=values["notes"] if values["notes"] is not None else settings.DEFAULT_INVOICE_NOTES,
        )

    def _on_status_reverted(self, document) -> None:
        removed = self.db.query(Payment).filter(Payment.invoice_id == document.id).delete(synchronize_session=False)
        self.db.expire(document, ["payments"])
        logger.info(f"Invoice {document.id} reverted from paid; removed {removed} payment(s)")

    def document_number(self, document) -> str:
        return document.invoice_number

    def counterparty(self, document) -> PartyProfile:
        client = document.client
        return PartyProfile(
            full_name=client.full_name,
            organization=client.organization,
            email=client.email,
            phone=client.mobile_number,
            address=client.address,
            gstin=client.gstin,
            pan=client.pan,
        )

    # ===== payments =====

    def add_payment(self, invoice_id: int, owner_id: int, payment_data: PaymentCreate) -> Payment:
        """Record a payment; a fully paid invoice is marked paid in the same transaction"""
        with self._transaction(f"add payment to invoice {invoice_id}"):
            invoice = self.db.query(Invoice).filter(
                Invoice.id == invoice_id,
                Invoice.owner_id == owner_id
            ).first()
            if not invoice:
                raise NotFound("Invoice not found")

            balance = invoice.total - invoice.paid_amount
            if payment_data.amount > balance:
                raise ValidationFailed(f"Payment of {payment_data.amount} exceeds the outstanding balance of {balance}")

            payment = Payment(
                invoice_id=invoice.id,
                amount=payment_data.amount,
                method=PaymentMethod(payment_data.method.value),
                reference=payment_data.reference,
                payment_date=payment_data.payment_date,
                notes=payment_data.notes,
            )
            invoice.payments.append(payment)

            if invoice.paid_amount >= invoice.total:
                invoice.status = DocumentStatus.PAID
            self.db.flush()

        self.db.refresh(payment)
        return payment

    def list_payments(self, invoice_id: int, owner_id: int) -> List[Payment]:
        invoice = self.get_record(invoice_id, owner_id)
        return list(invoice.payments)

    # ===== client-scoped reads =====

    def list_for_client(self, client_id: int) -> List[Invoice]:
        with self._reading(f"list invoices for client {client_id}"):
            return self._base_query().filter(
                Invoice.client_id == client_id
            ).order_by(desc(Invoice.invoice_date), desc(Invoice.created_at), desc(Invoice.id)).all()

    def get_for_client(self, invoice_id: int, client_id: int) -> Invoice:
        with self._reading(f"load invoice {invoice_id} for client {client_id}"):
            invoice = self._base_query().filter(
                Invoice.id == invoice_id,
                Invoice.client_id == client_id
            ).first()
        if not invoice:
            raise NotFound("Invoice not found")
        return invoice

    def get_client(self, client_id: int, owner_id: Optional[int] = None) -> Client:
        query = self.db.query(Client).filter(Client.id == client_id)
        if owner_id is not None:
            query = query.filter(Client.owner_id == owner_id)
        client = query.first()
        if not client:
            raise NotFound("Client not found")
        return client
