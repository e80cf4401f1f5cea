from sqlalchemy.orm import Session
from pathlib import PurePosixPath
from typing import List, Optional
import logging

from app.core.config import settings
from app.core.exceptions import NotFound
from app.modules.documents.lifecycle import DocumentLifecycleCoordinator, PDF_CONTENT_TYPE, artifact_base_name
from app.modules.documents.renderer import DocumentRenderer, PdfDocumentRenderer
from app.modules.expenses.models import Expense
from app.modules.expenses.repository import ExpenseRepository
from app.modules.expenses.schemas import ExpenseCreate, ExpenseUpdate
from app.modules.files.schemas import DownloadedArtifact
from app.modules.files.service import ArtifactStore, validate_upload

logger = logging.getLogger(__name__)

_EXTENSIONS = {"application/pdf": ".pdf", "image/png": ".png", "image/gif": ".gif", "image/webp": ".webp"}


class ExpenseService:
    def __init__(self, db: Session, artifact_store: ArtifactStore, renderer: Optional[DocumentRenderer] = None):
        self.db = db
        self.repository = ExpenseRepository(db)
        self.artifact_store = artifact_store
        self.lifecycle = DocumentLifecycleCoordinator(
            self.repository, artifact_store, renderer or PdfDocumentRenderer()
        )

    # ===== records =====

    def create_expense(self, owner_id: int, expense_data: ExpenseCreate, generate_pdf: bool = False) -> Expense:
        if generate_pdf:
            return self.lifecycle.create_with_render(owner_id, expense_data)
        return self.repository.create_record(owner_id, expense_data)

    def get_expense(self, expense_id: int, owner_id: int) -> Expense:
        return self.repository.get_record(expense_id, owner_id)

    def list_expenses(
        self,
        owner_id: int,
        project_id: Optional[int] = None,
        client_id: Optional[int] = None
    ) -> List[Expense]:
        return self.repository.list_records(owner_id, project_id=project_id, client_id=client_id)

    def update_expense(self, expense_id: int, owner_id: int, expense_data: ExpenseUpdate) -> Expense:
        return self.repository.update_record(expense_id, owner_id, expense_data)

    def delete_expense(self, expense_id: int, owner_id: int) -> None:
        results = self.lifecycle.delete_document(expense_id, owner_id)
        leftovers = [result.path for result in results if not result.succeeded]
        if leftovers:
            logger.warning(f"Expense {expense_id} deleted; orphan artifacts left behind: {leftovers}")

    # ===== artifacts =====

    def upload_attachment(
        self, expense_id: int, owner_id: int, content: bytes, filename: str, content_type: str
    ) -> Expense:
        """Store the vendor's bill (image or PDF) under Uploaded_Documents"""
        validate_upload(
            filename, content_type, len(content),
            settings.ALLOWED_ATTACHMENT_TYPES, settings.ALLOWED_ATTACHMENT_EXTENSIONS
        )
        expense = self.repository.get_record(expense_id, owner_id)
        extension = PurePosixPath(filename).suffix.lower() or _EXTENSIONS.get(content_type, ".jpg")
        base_name = artifact_base_name(self.repository.document_number(expense), expense.id, extension)
        return self.lifecycle.replace_artifact(
            expense_id, owner_id, "attachment_file_name", content, base_name, content_type
        )

    def upload_pdf(self, expense_id: int, owner_id: int, content: bytes, filename: str, content_type: str) -> Expense:
        """Replace the expense PDF under Generated_pdfs with one supplied by the caller"""
        validate_upload(filename, content_type, len(content), [PDF_CONTENT_TYPE], [".pdf"])
        expense = self.repository.get_record(expense_id, owner_id)
        return self.lifecycle.replace_artifact(
            expense_id, owner_id, "expense_file_name", content,
            self.lifecycle.pdf_file_name(self.repository.document_number(expense), expense.id), PDF_CONTENT_TYPE
        )

    def generate_pdf(self, expense_id: int, owner_id: int) -> Expense:
        return self.lifecycle.render_and_store(expense_id, owner_id)

    def download_pdf(self, expense_id: int, owner_id: int) -> DownloadedArtifact:
        expense = self.repository.get_record(expense_id, owner_id)
        file_name = expense.expense_file_name or self.lifecycle.pdf_file_name(
            self.repository.document_number(expense), expense.id
        )
        return self.artifact_store.download(self.lifecycle.artifact_path(owner_id, "expense_file_name", file_name))

    def download_attachment(self, expense_id: int, owner_id: int) -> DownloadedArtifact:
        expense = self.repository.get_record(expense_id, owner_id)
        if not expense.attachment_file_name:
            raise NotFound("Attachment not found for this expense")
        return self.artifact_store.download(
            self.lifecycle.artifact_path(owner_id, "attachment_file_name", expense.attachment_file_name)
        )
