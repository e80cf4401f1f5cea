"""
Tests for expenses: vendor bills, attachment uploads under Uploaded_Documents
and generated PDFs under Generated_pdfs
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import NotFound, ValidationFailed
from app.modules.documents.schemas import DocumentStatus, LineItemCreate
from app.modules.expenses.models import Expense
from app.modules.expenses.schemas import ExpenseCreate, ExpenseUpdate
from app.modules.expenses.service import ExpenseService


# ===== FIXTURES =====

@pytest.fixture
def service(db_session, artifact_store, fake_renderer):
    return ExpenseService(db_session, artifact_store, fake_renderer)


@pytest.fixture
def make_expense_data(item):
    def _make(**overrides):
        data = dict(
            vendor_name="Paper Supplies Co",
            vendor_email="sales@paper.example",
            expense_date=date.today(),
            due_date=date.today() + timedelta(days=30),
            items=[LineItemCreate(item_id=item.id, quantity=Decimal("10"), unit_price=Decimal("12.50"))],
        )
        data.update(overrides)
        return ExpenseCreate(**data)
    return _make


@pytest.fixture
def expense(service, owner, make_expense_data):
    return service.create_expense(owner.id, make_expense_data(bill_number="PS-881"))


@pytest.fixture
def headers(owner):
    return {"X-User-ID": str(owner.id)}


# ===== RECORDS =====

class TestExpenseRecords:
    def test_create_without_client(self, expense):
        assert expense.client_id is None
        assert expense.subtotal == Decimal("125.00")
        assert expense.status == DocumentStatus.PENDING
        assert expense.expense_file_name is None

    def test_create_with_client(self, service, owner, client_a, make_expense_data):
        expense = service.create_expense(owner.id, make_expense_data(client_id=client_a.id))
        assert expense.client_id == client_a.id

    def test_create_rejects_bad_vendor_email(self, make_expense_data):
        with pytest.raises(ValueError):
            make_expense_data(vendor_email="not-an-email")

    def test_filter_by_client(self, service, owner, client_a, make_expense_data):
        linked = service.create_expense(owner.id, make_expense_data(client_id=client_a.id))
        service.create_expense(owner.id, make_expense_data())
        assert [e.id for e in service.list_expenses(owner.id, client_id=client_a.id)] == [linked.id]

    def test_update_vendor(self, service, expense, owner):
        updated = service.update_expense(expense.id, owner.id, ExpenseUpdate(vendor_name="Ink & Co"))
        assert updated.vendor_name == "Ink & Co"

    def test_document_number_falls_back_to_id(self, service, owner, make_expense_data):
        expense = service.create_expense(owner.id, make_expense_data())
        assert service.repository.document_number(expense) == f"BILL-{expense.id}"

    def test_document_number_drops_pdf_suffix(self, service, owner, make_expense_data):
        expense = service.create_expense(owner.id, make_expense_data(bill_number="PS-9.pdf"))
        assert service.repository.document_number(expense) == "PS-9"


# ===== ARTIFACTS =====

class TestExpenseArtifacts:
    def test_generated_pdf_stored_under_generated_pdfs(self, service, expense, owner, fake_s3, fake_renderer):
        updated = service.generate_pdf(expense.id, owner.id)

        assert updated.expense_file_name == f"PS-881_{expense.id}.pdf"
        assert f"Expense/Generated_pdfs/{owner.id}/PS-881_{expense.id}.pdf" in fake_s3.objects
        assert fake_renderer.rendered[-1][1] == "Paper Supplies Co"

    def test_create_with_pdf(self, service, owner, make_expense_data):
        expense = service.create_expense(owner.id, make_expense_data(bill_number="PS-1"), generate_pdf=True)
        assert expense.expense_file_name == f"PS-1_{expense.id}.pdf"

    def test_attachment_stored_under_uploaded_documents(self, service, expense, owner, fake_s3):
        updated = service.upload_attachment(expense.id, owner.id, b"\x89PNG...", "receipt.PNG", "image/png")

        assert updated.attachment_file_name.startswith(f"PS-881_{expense.id}_")
        assert updated.attachment_file_name.endswith(".png")
        path = f"Expense/Uploaded_Documents/{owner.id}/{updated.attachment_file_name}"
        assert fake_s3.objects[path] == (b"\x89PNG...", "image/png")

    def test_replacing_attachment_discards_previous(self, service, expense, owner, fake_s3):
        first = service.upload_attachment(expense.id, owner.id, b"one", "a.png", "image/png").attachment_file_name
        service.lifecycle.clock = lambda: 1
        second = service.upload_attachment(expense.id, owner.id, b"two", "b.jpg", "image/jpeg").attachment_file_name

        assert second == f"PS-881_{expense.id}_1.jpg"
        assert f"Expense/Uploaded_Documents/{owner.id}/{first}" not in fake_s3.objects
        assert service.download_attachment(expense.id, owner.id).content == b"two"

    @pytest.mark.parametrize("filename, content_type", [
        ("notes.txt", "text/plain"),
        ("evil.exe.png", "image/png"),
        ("photo.bmp", "image/png"),
    ])
    def test_attachment_rejected(self, service, expense, owner, fake_s3, filename, content_type):
        with pytest.raises(ValidationFailed):
            service.upload_attachment(expense.id, owner.id, b"data", filename, content_type)
        assert fake_s3.objects == {}

    def test_download_attachment_when_none(self, service, expense, owner):
        with pytest.raises(NotFound, match="Attachment"):
            service.download_attachment(expense.id, owner.id)

    def test_delete_removes_both_artifacts(self, db_session, service, expense, owner, fake_s3):
        service.generate_pdf(expense.id, owner.id)
        service.upload_attachment(expense.id, owner.id, b"%PDF-bill", "bill.pdf", "application/pdf")

        service.delete_expense(expense.id, owner.id)

        assert db_session.query(Expense).count() == 0
        assert fake_s3.objects == {}

    def test_delete_survives_storage_outage(self, db_session, service, expense, owner, fake_s3):
        service.generate_pdf(expense.id, owner.id)
        fake_s3.fail_all_deletes = True

        service.delete_expense(expense.id, owner.id)

        assert db_session.query(Expense).count() == 0
        assert len(fake_s3.objects) == 1

    def test_shared_bill_number_keeps_separate_pdfs(self, service, owner, make_expense_data):
        first = service.create_expense(owner.id, make_expense_data(bill_number="1001"), generate_pdf=True)
        second = service.create_expense(owner.id, make_expense_data(bill_number="1001"), generate_pdf=True)
        assert first.expense_file_name != second.expense_file_name

        service.delete_expense(first.id, owner.id)

        assert service.download_pdf(second.id, owner.id).content.startswith(b"%PDF")

    def test_shared_bill_number_keeps_separate_attachments(self, service, owner, make_expense_data):
        service.lifecycle.clock = lambda: 5
        first = service.create_expense(owner.id, make_expense_data(bill_number="1001"))
        second = service.create_expense(owner.id, make_expense_data(bill_number="1001"))
        service.upload_attachment(first.id, owner.id, b"one", "a.png", "image/png")
        service.upload_attachment(second.id, owner.id, b"two", "b.png", "image/png")

        service.delete_expense(first.id, owner.id)

        assert service.download_attachment(second.id, owner.id).content == b"two"


# ===== API =====

class TestExpenseApi:
    def test_create_list_and_attach(self, api_client, headers, item):
        created = api_client.post(
            "/expenses/",
            json={
                "vendor_name": "Cloud Hosting Inc",
                "items": [{"item_id": item.id, "quantity": 1, "unit_price": "49.99"}],
                "payment_reminder_repetition": ["monthly"],
            },
            headers=headers,
        )
        assert created.status_code == 201
        expense_id = created.json()["id"]

        attached = api_client.post(
            f"/expenses/{expense_id}/attachment",
            files={"attachment": ("invoice.pdf", b"%PDF-1.4 vendor", "application/pdf")},
            headers=headers,
        )
        assert attached.status_code == 200
        assert attached.json()["attachment_file_name"].startswith(f"BILL-{expense_id}_{expense_id}_")

        download = api_client.get(f"/expenses/{expense_id}/attachment", headers=headers)
        assert download.content == b"%PDF-1.4 vendor"

        listing = api_client.get("/expenses/", headers=headers).json()
        assert listing["total"] == 1
        assert listing["expenses"][0]["payment_reminder_repetition"] == ["monthly"]

    def test_rejected_attachment_is_400(self, api_client, headers, expense):
        response = api_client.post(
            f"/expenses/{expense.id}/attachment",
            files={"attachment": ("run.sh", b"#!/bin/sh", "text/x-shellscript")},
            headers=headers,
        )
        assert response.status_code == 400

    def test_generate_and_download_pdf(self, api_client, headers, expense):
        generated = api_client.post(f"/expenses/{expense.id}/pdf/generate", headers=headers)
        assert generated.json()["expense_file_name"] == f"PS-881_{expense.id}.pdf"

        download = api_client.get(f"/expenses/{expense.id}/pdf", headers=headers)
        assert download.status_code == 200
        assert download.content.startswith(b"%PDF")

    def test_mark_paid(self, api_client, headers, expense):
        response = api_client.patch(f"/expenses/{expense.id}", json={"status": "paid"}, headers=headers)
        assert response.json()["status"] == "paid"

    def test_other_owner_cannot_delete(self, api_client, expense, other_owner):
        response = api_client.delete(f"/expenses/{expense.id}", headers={"X-User-ID": str(other_owner.id)})
        assert response.status_code == 404
