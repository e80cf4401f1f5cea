"""
Tests for invoices: numbering, payments, the paid/unpaid cascade, PDF handling,
email queueing, the client portal and the HTTP API
"""
import base64
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import NotFound, ValidationFailed
from app.modules.documents.schemas import DocumentStatus
from app.modules.invoices.models import Invoice, Payment
from app.modules.invoices.schemas import EmailType, InvoiceUpdate, PaymentCreate, PaymentMethod
from app.modules.invoices.service import InvoiceService


# ===== FIXTURES =====

@pytest.fixture
def service(db_session, artifact_store, fake_renderer):
    return InvoiceService(db_session, artifact_store, fake_renderer)


@pytest.fixture
def invoice(service, owner, make_invoice_data):
    return service.create_invoice(owner.id, make_invoice_data())


@pytest.fixture
def headers(owner):
    return {"X-User-ID": str(owner.id)}


def pay(amount, method=PaymentMethod.UPI):
    return PaymentCreate(amount=Decimal(amount), method=method)


# ===== PACKAGE =====

class TestInvoicePackage:
    def test_package_exports_the_mapped_models(self):
        import app.modules.invoices as package
        from app.database.database import Base

        assert package.Invoice is Invoice
        assert Base.metadata.tables["invoices"] is Invoice.__table__


# ===== NUMBERING =====

class TestInvoiceNumbering:
    def test_numbers_are_sequential_per_owner(self, service, owner, make_invoice_data):
        first = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        second = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        assert (first.invoice_number, second.invoice_number) == ("INV-000001", "INV-000002")

    def test_explicit_number_kept(self, service, owner, make_invoice_data):
        invoice = service.create_invoice(owner.id, make_invoice_data(invoice_number="A-17"), generate_pdf=False)
        assert invoice.invoice_number == "A-17"

    def test_duplicate_number_rejected(self, service, owner, make_invoice_data):
        service.create_invoice(owner.id, make_invoice_data(invoice_number="A-17"), generate_pdf=False)
        with pytest.raises(ValidationFailed):
            service.create_invoice(owner.id, make_invoice_data(invoice_number="A-17"), generate_pdf=False)

    def test_default_notes_applied(self, service, owner, make_invoice_data):
        from app.core.config import settings
        invoice = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        assert invoice.notes == settings.DEFAULT_INVOICE_NOTES

    def test_advance_balance_requires_amounts(self, make_invoice_data):
        with pytest.raises(ValueError):
            make_invoice_data(payment_terms="advance_balance")


# ===== PAYMENTS =====

class TestPayments:
    def test_partial_payment_keeps_status(self, service, invoice, owner):
        service.add_payment(invoice.id, owner.id, pay("400"))
        assert service.get_invoice(invoice.id, owner.id).status == DocumentStatus.PENDING

    def test_full_payment_marks_paid(self, service, invoice, owner):
        service.add_payment(invoice.id, owner.id, pay("400"))
        service.add_payment(invoice.id, owner.id, pay("600", PaymentMethod.CASH))

        assert service.get_invoice(invoice.id, owner.id).status == DocumentStatus.PAID
        assert [p.method.value for p in service.list_payments(invoice.id, owner.id)] == ["upi", "cash"]

    def test_overpayment_rejected(self, service, invoice, owner, db_session):
        with pytest.raises(ValidationFailed, match="exceeds"):
            service.add_payment(invoice.id, owner.id, pay("1000.01"))
        assert db_session.query(Payment).count() == 0

    def test_revert_from_paid_deletes_payments(self, service, invoice, owner, db_session):
        service.add_payment(invoice.id, owner.id, pay("1000"))

        reverted = service.update_invoice(invoice.id, owner.id, InvoiceUpdate(status=DocumentStatus.PENDING))

        assert reverted.status == DocumentStatus.PENDING
        assert db_session.query(Payment).count() == 0
        assert service.list_payments(invoice.id, owner.id) == []

    def test_payments_cascade_with_invoice(self, service, invoice, owner, db_session):
        service.add_payment(invoice.id, owner.id, pay("10"))
        service.delete_invoice(invoice.id, owner.id)
        assert db_session.query(Payment).count() == 0


# ===== PDF =====

class TestInvoicePdf:
    def test_download_generated_pdf(self, service, invoice, owner):
        artifact = service.download_pdf(invoice.id, owner.id)
        assert artifact.file_name == f"INV-000001_{invoice.id}.pdf"
        assert artifact.content_type == "application/pdf"

    def test_upload_replaces_pdf(self, service, invoice, owner, fake_s3):
        original = invoice.invoice_file_name
        updated = service.upload_pdf(invoice.id, owner.id, b"%PDF-custom", "mine.pdf", "application/pdf")

        assert updated.invoice_file_name.startswith(f"INV-000001_{invoice.id}_")
        assert service.download_pdf(invoice.id, owner.id).content == b"%PDF-custom"
        assert f"Invoices/{owner.id}/{original}" not in fake_s3.objects

    def test_upload_rejects_non_pdf(self, service, invoice, owner):
        with pytest.raises(ValidationFailed):
            service.upload_pdf(invoice.id, owner.id, b"GIF89a", "scan.gif", "image/gif")

    def test_generate_pdf_for_record_created_without_one(self, service, owner, make_invoice_data):
        invoice = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        with pytest.raises(NotFound):
            service.download_pdf(invoice.id, owner.id)

        regenerated = service.generate_pdf(invoice.id, owner.id)

        assert regenerated.invoice_file_name == f"INV-000001_{invoice.id}.pdf"

    def test_numbers_with_slashes_keep_separate_pdfs(self, service, owner, make_invoice_data):
        first = service.create_invoice(owner.id, make_invoice_data(invoice_number="2024/001"))
        second = service.create_invoice(owner.id, make_invoice_data(invoice_number="2025/001"))

        assert first.invoice_file_name == f"2024-001_{first.id}.pdf"
        assert second.invoice_file_name == f"2025-001_{second.id}.pdf"
        assert service.download_pdf(first.id, owner.id).content == b"%PDF-1.4\n2024/001\n%%EOF"
        assert service.download_pdf(second.id, owner.id).content == b"%PDF-1.4\n2025/001\n%%EOF"

    def test_stored_pointer_is_the_object_basename(self, service, owner, fake_s3, make_invoice_data):
        invoice = service.create_invoice(owner.id, make_invoice_data(invoice_number="A/B\\7"))
        assert f"Invoices/{owner.id}/{invoice.invoice_file_name}" in fake_s3.objects


# ===== EMAIL =====

class TestInvoiceEmail:
    def test_invoice_email_queued_with_pdf(self, service, invoice, owner, client_a, queued_emails):
        response = service.send_invoice_email(invoice.id, owner.id, EmailType.INVOICE)

        assert response.to_email == client_a.email
        assert response.task_id == "task-1"
        sent = queued_emails[0]
        assert sent["template_name"] == "invoice_email.html"
        assert sent["attachment_filename"] == "INV-000001.pdf"
        assert base64.b64decode(sent["attachment_b64"]).startswith(b"%PDF")
        assert sent["context"]["invoice_number"] == "INV-000001"

    def test_missing_client_email_rejected(self, service, invoice, owner, client_a, db_session, queued_emails):
        client_a.email = None
        db_session.commit()
        with pytest.raises(ValidationFailed, match="Client email is missing"):
            service.send_invoice_email(invoice.id, owner.id)
        assert queued_emails == []

    def test_reminder_only_for_overdue(self, service, invoice, owner, queued_emails):
        with pytest.raises(ValidationFailed, match="overdue"):
            service.send_invoice_email(invoice.id, owner.id, EmailType.REMINDER)

        later = invoice.due_date + timedelta(days=1)
        service.send_invoice_email(invoice.id, owner.id, EmailType.REMINDER, today=later)
        assert queued_emails[0]["template_name"] == "invoice_reminder_email.html"

    def test_missing_pdf_asks_for_regeneration(self, service, owner, make_invoice_data, queued_emails):
        invoice = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        with pytest.raises(NotFound, match="regenerate"):
            service.send_invoice_email(invoice.id, owner.id)
        assert queued_emails == []


# ===== CLIENT PORTAL =====

class TestClientPortal:
    def test_client_sees_only_own_invoices(self, service, owner, client_a, client_b, make_invoice_data):
        mine = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        service.create_invoice(owner.id, make_invoice_data(client_id=client_b.id), generate_pdf=False)

        assert [i.id for i in service.list_client_invoices(client_a.id)] == [mine.id]

    def test_client_cannot_read_other_clients_invoice(self, service, invoice, client_b):
        with pytest.raises(NotFound):
            service.get_client_invoice(invoice.id, client_b.id)

    def test_client_downloads_pdf(self, service, invoice, client_a):
        assert service.download_client_invoice_pdf(invoice.id, client_a.id).content.startswith(b"%PDF")


# ===== API =====

class TestInvoiceApi:
    def _payload(self, client_a, item, **overrides):
        payload = {
            "client_id": client_a.id,
            "due_date": (date.today() + timedelta(days=10)).isoformat(),
            "items": [{"item_id": item.id, "quantity": "1", "unit_price": "250.00"}],
            "payment_reminder_repetition": ["weekly"],
        }
        payload.update(overrides)
        return payload

    def test_create_and_get(self, api_client, headers, client_a, item):
        response = api_client.post("/invoices/", json=self._payload(client_a, item), headers=headers)
        assert response.status_code == 201
        body = response.json()
        assert body["invoice_number"] == "INV-000001"
        assert body["invoice_file_name"] == f"INV-000001_{body['id']}.pdf"
        assert body["payment_reminder_repetition"] == ["weekly"]
        assert body["status"] == "pending"

        fetched = api_client.get(f"/invoices/{body['id']}", headers=headers)
        assert fetched.status_code == 200
        assert Decimal(fetched.json()["total"]) == Decimal("250.00")

    def test_missing_owner_header(self, api_client):
        assert api_client.get("/invoices/").status_code == 400

    def test_unknown_invoice_is_404(self, api_client, headers):
        response = api_client.get("/invoices/999", headers=headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_validation_error_is_400(self, api_client, headers, item):
        response = api_client.post(
            "/invoices/", json={"client_id": 999, "items": [{"item_id": item.id, "quantity": 1, "unit_price": 1}]},
            headers=headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_FAILED"

    def test_storage_outage_is_generic_503(self, api_client, headers, client_a, item, fake_s3):
        fake_s3.unavailable = True
        response = api_client.post("/invoices/", json=self._payload(client_a, item), headers=headers)
        assert response.status_code == 503
        assert response.json()["detail"] == "Service temporarily unavailable"
        assert "minio" not in response.text

    def test_legacy_reminder_value_readable(self, api_client, headers, service, owner, make_invoice_data, db_session):
        invoice = service.create_invoice(owner.id, make_invoice_data(), generate_pdf=False)
        invoice.payment_reminder_repetition = "monthly"
        db_session.commit()

        response = api_client.get(f"/invoices/{invoice.id}", headers=headers)

        assert response.json()["payment_reminder_repetition"] == ["monthly"]

    def test_overdue_computed_on_read(self, api_client, headers, service, owner, make_invoice_data, db_session):
        invoice = service.create_invoice(
            owner.id, make_invoice_data(due_date=date.today() + timedelta(days=1)), generate_pdf=False
        )
        invoice.due_date = date.today() - timedelta(days=3)
        db_session.commit()

        response = api_client.get(f"/invoices/{invoice.id}", headers=headers)

        assert response.json()["status"] == "overdue"

    def test_upload_and_download_pdf(self, api_client, headers, invoice):
        upload = api_client.post(
            f"/invoices/{invoice.id}/pdf",
            files={"invoicePdf": ("custom.pdf", b"%PDF-1.4 custom", "application/pdf")},
            headers=headers,
        )
        assert upload.status_code == 200

        download = api_client.get(f"/invoices/{invoice.id}/pdf", headers=headers)
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4 custom"
        assert download.headers["content-type"] == "application/pdf"

    def test_payment_then_list(self, api_client, headers, invoice):
        response = api_client.post(
            f"/invoices/{invoice.id}/payments", json={"amount": "1000", "method": "bank_transfer"}, headers=headers
        )
        assert response.status_code == 201
        assert response.json()["method"] == "bank_transfer"

        payments = api_client.get(f"/invoices/{invoice.id}/payments", headers=headers).json()
        assert len(payments) == 1
        assert api_client.get(f"/invoices/{invoice.id}", headers=headers).json()["status"] == "paid"

    def test_send_email_accepted(self, api_client, headers, invoice, queued_emails):
        response = api_client.post(f"/invoices/{invoice.id}/send-email", json={"type": "update"}, headers=headers)
        assert response.status_code == 202
        assert queued_emails[0]["template_name"] == "invoice_update_email.html"

    def test_delete(self, api_client, headers, invoice, db_session, fake_s3):
        assert api_client.delete(f"/invoices/{invoice.id}", headers=headers).status_code == 204
        assert db_session.query(Invoice).count() == 0
        assert fake_s3.objects == {}

    def test_client_portal_requires_header(self, api_client, invoice, client_a):
        assert api_client.get("/client/invoices/").status_code == 400
        listing = api_client.get("/client/invoices/", headers={"X-Client-ID": str(client_a.id)})
        assert listing.json()["total"] == 1

    def test_client_portal_pdf_inline(self, api_client, invoice, client_a):
        response = api_client.get(f"/client/invoices/{invoice.id}/pdf", headers={"X-Client-ID": str(client_a.id)})
        assert response.status_code == 200
        assert response.headers["content-disposition"].startswith("inline")
