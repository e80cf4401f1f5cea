"""
Tests for outgoing email: template rendering, MIME assembly and the Celery task
"""
import base64

import pytest

from app.modules.email.service import EmailService
from app.modules.email.tasks import send_document_email_task

CONTEXT = {
    "client_full_name": "Acme Corp",
    "user_full_name": "Asha Rao",
    "user_email": "asha@example.com",
    "user_phone": "+91 98765 43210",
    "invoice_number": "INV-000001",
    "amount": "INR 1,000.00",
    "due_date": "25 Jun 2024",
    "date_sent": "10 Jun 2024",
}


class FakeSmtp:
    def __init__(self):
        self.sent = []

    def sendmail(self, from_addr, to_addrs, message):
        self.sent.append((from_addr, to_addrs, message))

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


# ===== TEMPLATES =====

class TestTemplates:
    @pytest.mark.parametrize("template", [
        "invoice_email.html", "invoice_reminder_email.html", "invoice_update_email.html"
    ])
    def test_invoice_templates_render(self, template):
        html = EmailService().render_template(template, CONTEXT)
        assert "INV-000001" in html
        assert "Acme Corp" in html

    def test_context_is_escaped(self):
        html = EmailService().render_template("invoice_email.html", {**CONTEXT, "client_full_name": "<b>x</b>"})
        assert "<b>x</b>" not in html


# ===== SENDING =====

class TestEmailService:
    def test_message_carries_pdf_attachment(self):
        msg = EmailService().build_message(
            ["billing@acme.example"], "Invoice", html_content="<p>hi</p>",
            attachments=[("INV-000001.pdf", b"%PDF-1.4", "pdf")]
        )
        parts = [part for part in msg.walk() if part.get_filename()]
        assert [part.get_filename() for part in parts] == ["INV-000001.pdf"]
        assert parts[0].get_content_type() == "application/pdf"
        assert parts[0].get_payload(decode=True) == b"%PDF-1.4"

    def test_send_email_uses_smtp(self, monkeypatch):
        service = EmailService()
        smtp = FakeSmtp()
        monkeypatch.setattr(service, "_create_smtp_connection", lambda: smtp)

        assert service.send_email(["a@example.com"], "Subject", html_content="<p>x</p>") is True
        assert smtp.sent[0][1] == ["a@example.com"]

    def test_send_email_reports_smtp_failure(self, monkeypatch):
        service = EmailService()

        def refuse():
            raise ConnectionRefusedError("smtp down")
        monkeypatch.setattr(service, "_create_smtp_connection", refuse)

        assert service.send_email(["a@example.com"], "Subject", text_content="x") is False

    def test_unknown_template_not_sent(self):
        assert EmailService().send_template_email(["a@example.com"], "S", "missing.html", {}) is False


# ===== TASK =====

class TestSendDocumentEmailTask:
    def test_decodes_attachment_and_sends(self, monkeypatch):
        calls = []

        def fake_send(**kwargs):
            calls.append(kwargs)
            return True
        monkeypatch.setattr("app.modules.email.tasks.email_service.send_template_email", fake_send)

        result = send_document_email_task(
            to_email="billing@acme.example",
            subject="Invoice INV-000001",
            template_name="invoice_email.html",
            context=CONTEXT,
            attachment_filename="INV-000001.pdf",
            attachment_b64=base64.b64encode(b"%PDF-1.4").decode("ascii"),
        )

        assert result["status"] == "success"
        assert calls[0]["attachments"] == [("INV-000001.pdf", b"%PDF-1.4", "pdf")]
