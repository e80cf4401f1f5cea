from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
import base64
import logging

from app.core.exceptions import NotFound, ValidationFailed
from app.modules.documents.lifecycle import DocumentLifecycleCoordinator, PDF_CONTENT_TYPE
from app.modules.documents.renderer import DocumentRenderer, PdfDocumentRenderer, format_money
from app.modules.email.tasks import send_document_email_task
from app.modules.files.schemas import DownloadedArtifact
from app.modules.files.service import ArtifactStore, validate_upload
from app.modules.invoices.models import Invoice, Payment
from app.modules.invoices.repository import InvoiceRepository
from app.modules.invoices.schemas import (
    EmailType, InvoiceCreate, InvoiceEmailResponse, InvoiceUpdate, PaymentCreate
)
from app.modules.users.models import User

logger = logging.getLogger(__name__)

_EMAIL_TEMPLATES = {
    EmailType.INVOICE: ("invoice_email.html", "Invoice {number} from {sender}"),
    EmailType.REMINDER: ("invoice_reminder_email.html", "Payment reminder: invoice {number} is overdue"),
    EmailType.UPDATE: ("invoice_update_email.html", "Updated invoice {number} from {sender}"),
}


class InvoiceService:
    def __init__(self, db: Session, artifact_store: ArtifactStore, renderer: Optional[DocumentRenderer] = None):
        self.db = db
        self.repository = InvoiceRepository(db)
        self.artifact_store = artifact_store
        self.lifecycle = DocumentLifecycleCoordinator(
            self.repository, artifact_store, renderer or PdfDocumentRenderer()
        )

    # ===== records =====

    def create_invoice(self, owner_id: int, invoice_data: InvoiceCreate, generate_pdf: bool = True) -> Invoice:
        if generate_pdf:
            return self.lifecycle.create_with_render(owner_id, invoice_data)
        return self.repository.create_record(owner_id, invoice_data)

    def get_invoice(self, invoice_id: int, owner_id: int) -> Invoice:
        return self.repository.get_record(invoice_id, owner_id)

    def list_invoices(
        self,
        owner_id: int,
        project_id: Optional[int] = None,
        client_id: Optional[int] = None
    ) -> List[Invoice]:
        return self.repository.list_records(owner_id, project_id=project_id, client_id=client_id)

    def update_invoice(self, invoice_id: int, owner_id: int, invoice_data: InvoiceUpdate) -> Invoice:
        return self.repository.update_record(invoice_id, owner_id, invoice_data)

    def delete_invoice(self, invoice_id: int, owner_id: int) -> None:
        results = self.lifecycle.delete_document(invoice_id, owner_id)
        leftovers = [result.path for result in results if not result.succeeded]
        if leftovers:
            logger.warning(f"Invoice {invoice_id} deleted; orphan artifacts left behind: {leftovers}")

    def add_payment(self, invoice_id: int, owner_id: int, payment_data: PaymentCreate) -> Payment:
        return self.repository.add_payment(invoice_id, owner_id, payment_data)

    def list_payments(self, invoice_id: int, owner_id: int) -> List[Payment]:
        return self.repository.list_payments(invoice_id, owner_id)

    # ===== PDF =====

    def generate_pdf(self, invoice_id: int, owner_id: int) -> Invoice:
        """Render the stored invoice and point it at the new PDF"""
        return self.lifecycle.render_and_store(invoice_id, owner_id)

    def upload_pdf(self, invoice_id: int, owner_id: int, content: bytes, filename: str, content_type: str) -> Invoice:
        """Replace the invoice PDF with one supplied by the caller"""
        validate_upload(filename, content_type, len(content), [PDF_CONTENT_TYPE], [".pdf"])
        invoice = self.repository.get_record(invoice_id, owner_id)
        return self.lifecycle.replace_artifact(
            invoice_id, owner_id, "invoice_file_name", content,
            self.lifecycle.pdf_file_name(invoice.invoice_number, invoice.id), PDF_CONTENT_TYPE
        )

    def _pdf_path(self, invoice: Invoice) -> str:
        file_name = invoice.invoice_file_name or self.lifecycle.pdf_file_name(invoice.invoice_number, invoice.id)
        return self.lifecycle.artifact_path(invoice.owner_id, "invoice_file_name", file_name)

    def download_pdf(self, invoice_id: int, owner_id: int) -> DownloadedArtifact:
        invoice = self.repository.get_record(invoice_id, owner_id)
        return self.artifact_store.download(self._pdf_path(invoice))

    # ===== email =====

    def send_invoice_email(
        self,
        invoice_id: int,
        owner_id: int,
        email_type: EmailType = EmailType.INVOICE,
        today: Optional[date] = None
    ) -> InvoiceEmailResponse:
        """Queue the invoice email with its stored PDF attached"""
        today = today or date.today()
        invoice = self.repository.get_record(invoice_id, owner_id)
        client = invoice.client
        if not client.email:
            raise ValidationFailed(
                "Client email is missing. Please add an email address for this client before sending."
            )

        if email_type == EmailType.REMINDER and not (invoice.due_date and invoice.due_date < today):
            raise ValidationFailed("Reminder emails can only be sent for overdue invoices.")

        try:
            pdf = self.artifact_store.download(self._pdf_path(invoice))
        except NotFound as e:
            raise NotFound("Invoice PDF not found. Please regenerate the invoice PDF and try again.") from e

        owner = self.db.get(User, owner_id)
        template_name, subject = _EMAIL_TEMPLATES[email_type]
        context = {
            "client_full_name": client.full_name,
            "user_full_name": owner.full_name,
            "user_email": owner.email,
            "user_phone": owner.mobile_number,
            "invoice_number": invoice.invoice_number,
            "amount": format_money(invoice.total, invoice.currency),
            "due_date": invoice.due_date.strftime("%d %b %Y") if invoice.due_date else None,
            "date_sent": (invoice.invoice_date or invoice.created_at.date()).strftime("%d %b %Y"),
        }

        task = send_document_email_task.delay(
            to_email=client.email,
            subject=subject.format(number=invoice.invoice_number, sender=owner.full_name),
            template_name=template_name,
            context=context,
            attachment_filename=self.lifecycle.pdf_file_name(invoice.invoice_number),
            attachment_b64=base64.b64encode(pdf.content).decode("ascii"),
        )
        logger.info(f"Queued {email_type.value} email for invoice {invoice.invoice_number} to {client.email}")

        return InvoiceEmailResponse(
            invoice_id=invoice.id,
            type=email_type,
            to_email=client.email,
            task_id=getattr(task, "id", None),
            message="Email queued for delivery"
        )

    # ===== client portal =====

    def list_client_invoices(self, client_id: int) -> List[Invoice]:
        return self.repository.list_for_client(client_id)

    def get_client_invoice(self, invoice_id: int, client_id: int) -> Invoice:
        return self.repository.get_for_client(invoice_id, client_id)

    def download_client_invoice_pdf(self, invoice_id: int, client_id: int) -> DownloadedArtifact:
        invoice = self.repository.get_for_client(invoice_id, client_id)
        return self.artifact_store.download(self._pdf_path(invoice))
