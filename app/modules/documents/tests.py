"""
Tests for the shared document core: status rules, the reminder repetition
codec, the record store contract and the lifecycle coordinator that keeps
records and stored artifacts consistent
"""
import io
import json
from datetime import date, timedelta
from decimal import Decimal

import pytest
from PIL import Image as PILImage

from app.core.exceptions import NotFound, RenderFailed, StoreUnavailable, ValidationFailed
from app.modules.documents.lifecycle import (
    DocumentLifecycleCoordinator, artifact_base_name, timestamped_file_name
)
from app.modules.documents.reminders import parse_reminder_repetition, serialize_reminder_repetition
from app.modules.documents.renderer import PdfDocumentRenderer, clean_notes, format_money
from app.modules.documents.schemas import (
    DocumentKind, DocumentStatus, PartyProfile, ReminderRepetition,
    RenderableDocument, RenderLineItem
)
from app.modules.documents.status import derive_status, effective_status, resolve_status
from app.modules.invoices.models import Invoice
from app.modules.invoices.repository import InvoiceRepository
from app.modules.invoices.schemas import InvoiceUpdate

TODAY = date(2024, 6, 10)
YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)
CLOCK_MS = 1718000000000


# ===== FIXTURES =====

@pytest.fixture
def repository(db_session):
    return InvoiceRepository(db_session)


@pytest.fixture
def coordinator(repository, artifact_store, fake_renderer):
    return DocumentLifecycleCoordinator(repository, artifact_store, fake_renderer, clock=lambda: CLOCK_MS)


@pytest.fixture
def stored_invoice(coordinator, owner, make_invoice_data):
    """Invoice INV-000001 with its generated PDF stored"""
    return coordinator.create_with_render(owner.id, make_invoice_data())


def invoice_path(owner_id, file_name):
    return f"Invoices/{owner_id}/{file_name}"


# ===== STATUS =====

class TestStatusDerivation:
    def test_past_due_date_is_overdue(self):
        assert derive_status(YESTERDAY, TODAY) == DocumentStatus.OVERDUE

    def test_due_today_or_later_is_pending(self):
        assert derive_status(TODAY, TODAY) == DocumentStatus.PENDING
        assert derive_status(TOMORROW, TODAY) == DocumentStatus.PENDING

    def test_no_due_date_is_pending(self):
        assert derive_status(None, TODAY) == DocumentStatus.PENDING

    def test_effective_status_recomputes_unpaid(self):
        assert effective_status("pending", YESTERDAY, TODAY) == DocumentStatus.OVERDUE
        assert effective_status(DocumentStatus.OVERDUE, TOMORROW, TODAY) == DocumentStatus.PENDING

    def test_paid_is_sticky(self):
        assert effective_status(DocumentStatus.PAID, YESTERDAY, TODAY) == DocumentStatus.PAID


class TestStatusTransitions:
    def test_due_date_change_rederives(self):
        status, reverted = resolve_status(DocumentStatus.PENDING, None, YESTERDAY, True, TODAY)
        assert status == DocumentStatus.OVERDUE
        assert reverted is False

    def test_paid_survives_due_date_moving_to_past(self):
        status, reverted = resolve_status(DocumentStatus.PAID, None, YESTERDAY, True, TODAY)
        assert status == DocumentStatus.PAID
        assert reverted is False

    def test_explicit_paid_always_accepted(self):
        status, _ = resolve_status(DocumentStatus.OVERDUE, DocumentStatus.PAID, YESTERDAY, False, TODAY)
        assert status == DocumentStatus.PAID

    def test_revert_from_paid_is_flagged(self):
        status, reverted = resolve_status(DocumentStatus.PAID, DocumentStatus.PENDING, TOMORROW, False, TODAY)
        assert status == DocumentStatus.PENDING
        assert reverted is True

    def test_explicit_status_contradicting_due_date_rejected(self):
        with pytest.raises(ValidationFailed, match="expected 'overdue'"):
            resolve_status(DocumentStatus.OVERDUE, DocumentStatus.PENDING, YESTERDAY, False, TODAY)


# ===== REMINDER REPETITION =====

class TestReminderRepetition:
    def test_reads_json_array(self):
        assert parse_reminder_repetition('["daily", "weekly"]') == [
            ReminderRepetition.DAILY, ReminderRepetition.WEEKLY
        ]

    def test_reads_legacy_bare_string(self):
        assert parse_reminder_repetition("weekly") == [ReminderRepetition.WEEKLY]

    def test_reads_legacy_json_string(self):
        assert parse_reminder_repetition('"Monthly"') == [ReminderRepetition.MONTHLY]

    def test_unknown_values_skipped(self):
        assert parse_reminder_repetition('["daily", "hourly", "daily"]') == [ReminderRepetition.DAILY]
        assert parse_reminder_repetition("fortnightly") is None

    @pytest.mark.parametrize("raw", [None, "", "   ", "{}"])
    def test_empty_or_unreadable_is_none(self, raw):
        assert parse_reminder_repetition(raw) is None

    def test_writes_normalized_json_array(self):
        stored = serialize_reminder_repetition([ReminderRepetition.WEEKLY, "weekly", "daily"])
        assert json.loads(stored) == ["weekly", "daily"]

    def test_writes_single_value_as_array(self):
        assert serialize_reminder_repetition("monthly") == '["monthly"]'

    def test_empty_write_is_null(self):
        assert serialize_reminder_repetition([]) is None

    def test_invalid_write_rejected(self):
        with pytest.raises(ValidationFailed):
            serialize_reminder_repetition(["yearly"])


# ===== RECORD STORE =====

class TestDocumentRepository:
    def test_create_derives_overdue_for_past_due_date(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data(due_date=YESTERDAY), today=TODAY)
        assert invoice.status == DocumentStatus.OVERDUE

    def test_create_fills_totals_from_items(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data(tax_rate=Decimal("18")))
        assert invoice.subtotal == Decimal("1000.00")
        assert invoice.total == Decimal("1180.00")
        assert [line.position for line in invoice.line_items] == [0]

    def test_create_uses_owner_currency(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        assert invoice.currency == "INR"

    def test_create_stores_reminders_as_json_array(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(
            owner.id, make_invoice_data(payment_reminder_repetition=["weekly"])
        )
        assert invoice.payment_reminder_repetition == '["weekly"]'

    def test_create_rejects_foreign_client(self, db_session, repository, other_owner, owner, make_invoice_data):
        from app.modules.contacts.models import Client
        foreign = Client(owner_id=other_owner.id, full_name="Not Yours")
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(ValidationFailed, match="Client not found"):
            repository.create_record(owner.id, make_invoice_data(client_id=foreign.id))
        assert db_session.query(Invoice).count() == 0

    def test_create_rejects_unknown_item(self, db_session, repository, owner, make_invoice_data):
        from app.modules.documents.schemas import LineItemCreate
        data = make_invoice_data(items=[LineItemCreate(item_id=999, quantity=1, unit_price=10)])
        with pytest.raises(ValidationFailed, match="Items not found"):
            repository.create_record(owner.id, data)
        assert db_session.query(Invoice).count() == 0

    def test_get_is_owner_scoped(self, repository, owner, other_owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        with pytest.raises(NotFound):
            repository.get_record(invoice.id, other_owner.id)

    def test_list_orders_newest_document_date_first(self, repository, owner, make_invoice_data):
        older = repository.create_record(owner.id, make_invoice_data(invoice_date=YESTERDAY))
        newer = repository.create_record(owner.id, make_invoice_data(invoice_date=TODAY))
        assert [doc.id for doc in repository.list_records(owner.id)] == [newer.id, older.id]

    def test_update_requires_changes(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        with pytest.raises(ValidationFailed, match="No fields"):
            repository.update_record(invoice.id, owner.id, InvoiceUpdate())

    def test_paid_document_stays_paid_when_due_date_moves_to_past(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data(due_date=TOMORROW), today=TODAY)
        repository.update_record(invoice.id, owner.id, InvoiceUpdate(status=DocumentStatus.PAID), today=TODAY)

        updated = repository.update_record(invoice.id, owner.id, InvoiceUpdate(due_date=YESTERDAY), today=TODAY)

        assert updated.status == DocumentStatus.PAID

    def test_due_date_change_rederives_unpaid_status(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data(due_date=TOMORROW), today=TODAY)
        updated = repository.update_record(invoice.id, owner.id, InvoiceUpdate(due_date=YESTERDAY), today=TODAY)
        assert updated.status == DocumentStatus.OVERDUE

    def test_update_replaces_line_items(self, repository, owner, item, make_invoice_data):
        from app.modules.documents.schemas import LineItemCreate
        invoice = repository.create_record(owner.id, make_invoice_data())
        patch = InvoiceUpdate(items=[
            LineItemCreate(item_id=item.id, quantity=1, unit_price=Decimal("100")),
            LineItemCreate(item_id=item.id, quantity=3, unit_price=Decimal("50")),
        ])

        updated = repository.update_record(invoice.id, owner.id, patch)

        assert [line.position for line in updated.line_items] == [0, 1]
        assert updated.subtotal == Decimal("250.00")

    def test_tax_rate_change_recomputes_total(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        updated = repository.update_record(invoice.id, owner.id, InvoiceUpdate(tax_rate=Decimal("18")))
        assert updated.subtotal == Decimal("1000.00")
        assert updated.total == Decimal("1180.00")

    def test_subtotal_change_recomputes_total(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data(tax_rate=Decimal("10")))
        updated = repository.update_record(invoice.id, owner.id, InvoiceUpdate(subtotal=Decimal("200")))
        assert updated.total == Decimal("220.00")

    def test_explicit_total_kept_on_tax_change(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        patch = InvoiceUpdate(tax_rate=Decimal("18"), total=Decimal("1150"))
        assert repository.update_record(invoice.id, owner.id, patch).total == Decimal("1150")

    def test_delete_returns_artifact_pointers(self, db_session, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        repository.set_file_name(invoice.id, owner.id, "invoice_file_name", "INV-000001.pdf")

        assert repository.delete_record(invoice.id, owner.id) == {"invoice_file_name": "INV-000001.pdf"}
        assert db_session.query(Invoice).count() == 0

    def test_set_file_name_rejects_unknown_field(self, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        with pytest.raises(ValidationFailed):
            repository.set_file_name(invoice.id, owner.id, "notes", "x.pdf")


# ===== LIFECYCLE: CREATE / RENDER =====

class TestCreateWithRender:
    def test_pointer_resolves_to_stored_pdf(self, stored_invoice, owner, artifact_store):
        assert stored_invoice.invoice_file_name == f"INV-000001_{stored_invoice.id}.pdf"
        artifact = artifact_store.download(invoice_path(owner.id, stored_invoice.invoice_file_name))
        assert artifact.content.startswith(b"%PDF")
        assert artifact.content_type == "application/pdf"

    def test_render_failure_leaves_record_without_pointer(
        self, db_session, coordinator, owner, client_a, fake_renderer, fake_s3, make_invoice_data
    ):
        fake_renderer.fail_for.add(client_a.full_name)

        with pytest.raises(RenderFailed):
            coordinator.create_with_render(owner.id, make_invoice_data())

        invoice = db_session.query(Invoice).one()
        assert invoice.invoice_file_name is None
        assert fake_s3.objects == {}

    def test_upload_failure_leaves_record_without_pointer(self, db_session, coordinator, owner, fake_s3, make_invoice_data):
        fake_s3.fail_puts = True

        with pytest.raises(StoreUnavailable):
            coordinator.create_with_render(owner.id, make_invoice_data())

        assert db_session.query(Invoice).one().invoice_file_name is None

    def test_orphan_record_recovered_by_regenerating(
        self, db_session, coordinator, owner, client_a, fake_renderer, make_invoice_data
    ):
        fake_renderer.fail_for.add(client_a.full_name)
        with pytest.raises(RenderFailed):
            coordinator.create_with_render(owner.id, make_invoice_data())
        fake_renderer.fail_for.clear()

        invoice = db_session.query(Invoice).one()
        recovered = coordinator.render_and_store(invoice.id, owner.id)

        assert recovered.invoice_file_name == f"INV-000001_{invoice.id}.pdf"

    def test_patch_failure_removes_uploaded_pdf(self, coordinator, repository, owner, fake_s3, make_invoice_data, monkeypatch):
        def failing_set_file_name(*args, **kwargs):
            raise StoreUnavailable("database went away")
        monkeypatch.setattr(repository, "set_file_name", failing_set_file_name)

        with pytest.raises(StoreUnavailable, match="database went away"):
            coordinator.create_with_render(owner.id, make_invoice_data())

        assert fake_s3.objects == {}

    def test_regenerate_never_overwrites_current_pdf(self, coordinator, stored_invoice, owner, fake_s3):
        original = stored_invoice.invoice_file_name
        regenerated = coordinator.render_and_store(stored_invoice.id, owner.id)

        assert regenerated.invoice_file_name == f"INV-000001_{stored_invoice.id}_{CLOCK_MS}.pdf"
        assert invoice_path(owner.id, regenerated.invoice_file_name) in fake_s3.objects
        assert invoice_path(owner.id, original) not in fake_s3.objects

    def test_missing_logo_renders_placeholder(self, db_session, coordinator, owner, fake_renderer, make_invoice_data):
        owner.logo = "Logos/1/missing.png"
        db_session.commit()

        invoice = coordinator.create_with_render(owner.id, make_invoice_data())

        assert invoice.invoice_file_name
        assert fake_renderer.rendered[-1][2] is None

    def test_stored_logo_passed_to_renderer(self, db_session, coordinator, owner, fake_renderer, artifact_store, make_invoice_data):
        from app.modules.files.schemas import ArtifactKind
        owner.logo = artifact_store.upload(b"logo-bytes", "logo.png", ArtifactKind.INVOICE, owner.id, "image/png")
        db_session.commit()

        coordinator.create_with_render(owner.id, make_invoice_data())

        assert fake_renderer.rendered[-1][2] == b"logo-bytes"


# ===== LIFECYCLE: REPLACE =====

class TestReplaceArtifact:
    def test_replace_moves_pointer_and_discards_previous(self, coordinator, stored_invoice, owner, artifact_store, fake_s3):
        original = stored_invoice.invoice_file_name
        updated = coordinator.replace_artifact(
            stored_invoice.id, owner.id, "invoice_file_name", b"%PDF-new", "INV-000001.pdf", "application/pdf"
        )

        assert updated.invoice_file_name == f"INV-000001_{CLOCK_MS}.pdf"
        assert artifact_store.download(invoice_path(owner.id, updated.invoice_file_name)).content == b"%PDF-new"
        assert invoice_path(owner.id, original) not in fake_s3.objects

    def test_failed_old_delete_keeps_new_pointer_valid(self, coordinator, stored_invoice, owner, artifact_store, fake_s3):
        old_path = invoice_path(owner.id, stored_invoice.invoice_file_name)
        fake_s3.fail_delete_keys.add(old_path)

        updated = coordinator.replace_artifact(
            stored_invoice.id, owner.id, "invoice_file_name", b"%PDF-new", "INV-000001.pdf", "application/pdf"
        )

        assert artifact_store.exists(invoice_path(owner.id, updated.invoice_file_name))
        assert old_path in fake_s3.objects

    def test_failed_patch_rolls_back_upload_and_keeps_old_pointer(
        self, db_session, coordinator, repository, stored_invoice, owner, artifact_store, fake_s3, monkeypatch
    ):
        original = stored_invoice.invoice_file_name
        new_path = invoice_path(owner.id, f"INV-000001_{CLOCK_MS}.pdf")

        def failing_set_file_name(*args, **kwargs):
            raise StoreUnavailable("patch failed")
        monkeypatch.setattr(repository, "set_file_name", failing_set_file_name)

        with pytest.raises(StoreUnavailable, match="patch failed"):
            coordinator.replace_artifact(
                stored_invoice.id, owner.id, "invoice_file_name", b"%PDF-new", "INV-000001.pdf", "application/pdf"
            )

        assert new_path not in fake_s3.objects
        db_session.expire_all()
        assert db_session.get(Invoice, stored_invoice.id).invoice_file_name == original
        assert artifact_store.exists(invoice_path(owner.id, original))

    def test_failed_rollback_does_not_mask_patch_error(
        self, coordinator, repository, stored_invoice, owner, fake_s3, monkeypatch, caplog
    ):
        new_path = invoice_path(owner.id, f"INV-000001_{CLOCK_MS}.pdf")
        fake_s3.fail_delete_keys.add(new_path)

        def failing_set_file_name(*args, **kwargs):
            raise ValidationFailed("patch rejected")
        monkeypatch.setattr(repository, "set_file_name", failing_set_file_name)

        with pytest.raises(ValidationFailed, match="patch rejected"):
            coordinator.replace_artifact(
                stored_invoice.id, owner.id, "invoice_file_name", b"%PDF-new", "INV-000001.pdf", "application/pdf"
            )

        assert "COMPENSATION_FAILED" in caplog.text

    def test_extension_guessed_from_content_type(self, coordinator, stored_invoice, owner):
        updated = coordinator.replace_artifact(
            stored_invoice.id, owner.id, "invoice_file_name", b"%PDF-new", "INV-000001", "application/pdf"
        )
        assert updated.invoice_file_name == f"INV-000001_{CLOCK_MS}.pdf"

    def test_timestamped_file_name(self):
        assert timestamped_file_name("BILL-7.png", 42) == "BILL-7_42.png"
        assert timestamped_file_name("folder/INV-1.pdf", 1) == "INV-1_1.pdf"

    @pytest.mark.parametrize("number, expected", [
        ("INV-000001", "INV-000001_7.pdf"),
        ("2024/001", "2024-001_7.pdf"),
        ("a\\b", "a-b_7.pdf"),
        ("/", "7.pdf"),
    ])
    def test_artifact_base_name(self, number, expected):
        assert artifact_base_name(number, 7, ".pdf") == expected

    def test_artifact_base_name_requires_a_name(self):
        with pytest.raises(ValidationFailed):
            artifact_base_name("/")


# ===== LIFECYCLE: DELETE =====

class TestDeleteDocument:
    def test_delete_removes_record_then_artifact(self, db_session, coordinator, stored_invoice, owner, fake_s3):
        results = coordinator.delete_document(stored_invoice.id, owner.id)

        assert [r.succeeded for r in results] == [True]
        assert db_session.query(Invoice).count() == 0
        assert fake_s3.objects == {}

    def test_artifact_delete_failure_does_not_fail_delete(self, db_session, coordinator, stored_invoice, owner, fake_s3):
        fake_s3.fail_all_deletes = True

        results = coordinator.delete_document(stored_invoice.id, owner.id)

        assert len(results) == 1 and not results[0].succeeded
        assert db_session.query(Invoice).count() == 0

    def test_delete_without_artifact(self, coordinator, repository, owner, make_invoice_data):
        invoice = repository.create_record(owner.id, make_invoice_data())
        assert coordinator.delete_document(invoice.id, owner.id) == []

    def test_delete_unknown_document(self, coordinator, owner):
        with pytest.raises(NotFound):
            coordinator.delete_document(404, owner.id)


# ===== RENDERER =====

class TestPdfDocumentRenderer:
    @pytest.fixture
    def document(self):
        return RenderableDocument(
            kind=DocumentKind.INVOICE,
            number="INV-000042",
            document_date=TODAY,
            due_date=TOMORROW,
            subtotal=Decimal("1000"),
            tax_rate=Decimal("18"),
            total=Decimal("1180"),
            currency="USD",
            status=DocumentStatus.PENDING,
            notes="STATUS:pending|Thanks for your business",
        )

    @pytest.fixture
    def parties(self):
        owner = PartyProfile(full_name="Asha Rao", gstin="29ABCDE1234F1Z5", email="asha@example.com")
        client = PartyProfile(full_name="Acme <Corp>", address="1 Main St")
        return owner, client

    def test_renders_pdf_bytes(self, document, parties):
        lines = [RenderLineItem(name=f"Item {n}", quantity=Decimal("1"), unit_price=Decimal("10")) for n in range(80)]
        content = PdfDocumentRenderer().render(document, lines, *parties)
        assert content.startswith(b"%PDF")

    def test_unreadable_logo_falls_back_to_placeholder(self, document, parties):
        content = PdfDocumentRenderer().render(document, [], *parties, logo=b"not an image")
        assert content.startswith(b"%PDF")

    def test_embeds_real_logo(self, document, parties):
        buffer = io.BytesIO()
        PILImage.new("RGB", (40, 20), "navy").save(buffer, format="PNG")
        content = PdfDocumentRenderer().render(document, [], *parties, logo=buffer.getvalue())
        assert content.startswith(b"%PDF")

    def test_clean_notes_strips_status_prefix(self):
        assert clean_notes("STATUS:paid|Paid by wire") == "Paid by wire"
        assert clean_notes(None) == ""

    def test_format_money(self):
        assert format_money(Decimal("1234.5"), "USD") == "$1,234.50"
        assert format_money(10, "INR") == "INR 10.00"
