from app.modules.documents.repository import DocumentRepository
from app.modules.documents.schemas import DocumentKind, PartyProfile
from app.modules.expenses.models import Expense, ExpenseLineItem
from app.modules.files.schemas import ArtifactCategory


class ExpenseRepository(DocumentRepository):
    model = Expense
    line_item_model = ExpenseLineItem
    kind = DocumentKind.EXPENSE
    label = "Expense"
    date_field = "expense_date"
    artifact_fields = {
        "expense_file_name": ArtifactCategory.GENERATED_PDFS,
        "attachment_file_name": ArtifactCategory.UPLOADED_DOCUMENTS,
    }
    generated_pdf_field = "expense_file_name"

    def _kind_fields(self, owner, data, values: dict) -> dict:
        return dict(
            client_id=data.client_id,
            vendor_name=data.vendor_name,
            vendor_email=str(data.vendor_email) if data.vendor_email else None,
            bill_number=data.bill_number,
            expense_date=data.expense_date,
        )

    def document_number(self, document) -> str:
        """Bill number, or BILL-{id} when the vendor gave none"""
        number = document.bill_number or f"BILL-{document.id}"
        return number[:-4] if number.lower().endswith(".pdf") else number

    def counterparty(self, document) -> PartyProfile:
        return PartyProfile(full_name=document.vendor_name, email=document.vendor_email)
