"""
Tests for the milestone invoicing batch: due-milestone selection, per-milestone
and per-client isolation, the at-most-once attempt guarantee and the
result contract consumed by monitoring
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import StoreUnavailable
from app.modules.contacts.models import Client
from app.modules.invoices.models import Invoice
from app.modules.items.models import Item
from app.modules.items.service import ItemService
from app.modules.milestones.models import (
    Agreement, AgreementPaymentMilestone, AgreementPaymentTerm, MilestoneStatus
)
from app.modules.milestones.schemas import ProcessMilestoneInvoicesResult
from app.modules.milestones.service import MilestoneInvoiceService
from app.modules.projects.models import Project

RUN_DATE = date(2024, 6, 10)


# ===== FIXTURES =====

@pytest.fixture
def service(db_session, artifact_store, fake_renderer):
    return MilestoneInvoiceService(db_session, artifact_store, fake_renderer)


@pytest.fixture
def make_milestone(db_session, owner):
    """Agreement -> payment term -> milestone for the given project"""
    def _make(project, amount="1500.00", milestone_date=RUN_DATE, status=MilestoneStatus.PENDING.value,
              service_type="Design", description=None):
        agreement = Agreement(owner_id=owner.id, project_id=project.id, service_type=service_type)
        term = AgreementPaymentTerm(agreement=agreement, description="Milestone billing")
        milestone = AgreementPaymentMilestone(
            payment_term=term,
            milestone_date=milestone_date,
            amount=Decimal(amount),
            description=description,
            status=status,
        )
        db_session.add_all([agreement, term, milestone])
        db_session.commit()
        return milestone
    return _make


@pytest.fixture
def empty_project(db_session, owner):
    project = Project(owner_id=owner.id, name="No clients yet")
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture
def flaky_project(db_session, owner, fake_renderer):
    """Two clients; the renderer always fails for the first"""
    failing = Client(owner_id=owner.id, full_name="Initech", email="ap@initech.example")
    healthy = Client(owner_id=owner.id, full_name="Umbrella", email="ap@umbrella.example")
    project = Project(owner_id=owner.id, name="Support retainer", clients=[failing, healthy])
    db_session.add(project)
    db_session.commit()
    fake_renderer.fail_for.add("Initech")
    return project


def statuses(db_session):
    db_session.expire_all()
    return [m.status for m in db_session.query(AgreementPaymentMilestone).order_by(AgreementPaymentMilestone.id)]


# ===== SELECTION =====

class TestDueMilestones:
    def test_selects_pending_and_legacy_null_on_run_date(self, db_session, service, project, make_milestone):
        pending = make_milestone(project)
        legacy = make_milestone(project)
        db_session.query(AgreementPaymentMilestone).filter(
            AgreementPaymentMilestone.id == legacy.id
        ).update({AgreementPaymentMilestone.status: None})
        db_session.commit()
        make_milestone(project, status=MilestoneStatus.CREATED.value)
        make_milestone(project, milestone_date=RUN_DATE + timedelta(days=1))

        due = service.get_due_milestones(RUN_DATE)

        assert [m.id for m in due] == [pending.id, legacy.id]
        assert due[0].project_id == project.id
        assert due[0].amount == Decimal("1500.00")

    def test_nothing_due(self, service):
        result = service.process_milestone_invoices(RUN_DATE)
        assert result.to_contract() == {"processed": 0, "created": 0, "failed": 0, "errors": []}


# ===== PROCESSING =====

class TestProcessMilestoneInvoices:
    def test_one_invoice_per_project_client(self, db_session, service, project, client_a, client_b, make_milestone):
        make_milestone(project, description="Phase 1 delivery")

        result = service.process_milestone_invoices(RUN_DATE)

        assert (result.processed, result.created, result.failed) == (1, 2, 0)
        invoices = db_session.query(Invoice).order_by(Invoice.id).all()
        assert [i.client_id for i in invoices] == [client_a.id, client_b.id]
        assert all(i.total == Decimal("1500.00") for i in invoices)
        assert all(i.invoice_date == RUN_DATE and i.due_date == RUN_DATE for i in invoices)
        assert all(i.notes == "Phase 1 delivery" for i in invoices)
        assert all(i.invoice_file_name for i in invoices)

    def test_default_notes_name_the_service(self, db_session, service, project, make_milestone):
        make_milestone(project, service_type="Consulting")
        service.process_milestone_invoices(RUN_DATE)
        assert db_session.query(Invoice).first().notes == "Invoice for milestone: Consulting"

    def test_second_run_same_day_bills_nothing(self, db_session, service, project, make_milestone):
        make_milestone(project)

        first = service.process_milestone_invoices(RUN_DATE)
        second = service.process_milestone_invoices(RUN_DATE)

        assert first.created == 2
        assert second.to_contract() == {"processed": 0, "created": 0, "failed": 0, "errors": []}
        assert db_session.query(Invoice).count() == 2

    def test_failures_isolated_per_milestone_and_client(
        self, db_session, service, project, empty_project, flaky_project, make_milestone
    ):
        m1 = make_milestone(project)
        m2 = make_milestone(empty_project)
        m3 = make_milestone(project, service_type="Hosting")
        m4 = make_milestone(flaky_project)

        result = service.process_milestone_invoices(RUN_DATE)

        assert result.processed == 4
        assert result.created == 5
        assert result.failed >= 2
        failed_ids = [error.milestone_id for error in result.errors]
        assert m2.id in failed_ids and m4.id in failed_ids
        assert m1.id not in failed_ids and m3.id not in failed_ids
        assert statuses(db_session) == [MilestoneStatus.CREATED.value] * 4

    def test_milestone_without_clients_reported(self, db_session, service, empty_project, make_milestone):
        milestone = make_milestone(empty_project)

        contract = service.process_milestone_invoices(RUN_DATE).to_contract()

        assert contract["failed"] == 1
        assert contract["errors"] == [
            {"milestoneId": milestone.id, "error": f"No clients found for project {empty_project.id}"}
        ]
        assert statuses(db_session) == [MilestoneStatus.CREATED.value]

    def test_render_failure_names_the_client(self, service, flaky_project, make_milestone):
        make_milestone(flaky_project)
        failing = next(c for c in flaky_project.clients if c.full_name == "Initech")

        result = service.process_milestone_invoices(RUN_DATE)

        assert result.created == 1
        assert result.errors[0].error.startswith(f"Failed to create invoice for client {failing.id}:")

    def test_item_failure_recorded(self, service, project, make_milestone, monkeypatch):
        make_milestone(project)

        def broken(*args, **kwargs):
            raise StoreUnavailable("items table locked")
        monkeypatch.setattr(service.items, "get_or_create_item_by_name", broken)

        result = service.process_milestone_invoices(RUN_DATE)

        assert result.created == 0
        assert result.errors[0].error == "Failed to get/create item: items table locked"

    def test_query_failure_aborts_without_advancing(self, db_session, service, project, make_milestone, monkeypatch):
        make_milestone(project)

        with monkeypatch.context() as patched:
            def unavailable(*args, **kwargs):
                raise OperationalError("SELECT", {}, Exception("connection refused"))
            patched.setattr(db_session, "query", unavailable)

            with pytest.raises(StoreUnavailable):
                service.process_milestone_invoices(RUN_DATE)

        assert statuses(db_session) == [MilestoneStatus.PENDING.value]

    def test_service_type_reuses_existing_item_case_insensitively(
        self, db_session, service, project, item, make_milestone
    ):
        make_milestone(project, service_type="DESIGN")

        service.process_milestone_invoices(RUN_DATE)

        assert db_session.query(Item).count() == 1
        assert {line.item_id for i in db_session.query(Invoice) for line in i.line_items} == {item.id}


# ===== RESULT CONTRACT =====

class TestProcessResult:
    def test_status_write_failure_not_counted_as_failed_invoice(self):
        result = ProcessMilestoneInvoicesResult()
        result.record_failure(3, "Failed to mark milestone as created: locked", count=False)
        assert result.to_contract() == {
            "processed": 0, "created": 0, "failed": 0,
            "errors": [{"milestoneId": 3, "error": "Failed to mark milestone as created: locked"}],
        }


# ===== ITEMS =====

class TestItemResolution:
    def test_creates_missing_item(self, db_session, owner):
        created = ItemService(db_session).get_or_create_item_by_name(owner.id, "  Hosting ")
        assert created.name == "Hosting"

    def test_oldest_match_wins(self, db_session, owner):
        first = Item(owner_id=owner.id, name="design")
        second = Item(owner_id=owner.id, name="Design")
        db_session.add_all([first, second])
        db_session.commit()
        assert ItemService(db_session).get_or_create_item_by_name(owner.id, "DeSiGn").id == first.id


# ===== ENTRY POINTS =====

class TestEntryPoints:
    def test_scheduled_task_returns_contract(self, engine, project, make_milestone, artifact_store, fake_renderer, monkeypatch):
        make_milestone(project, milestone_date=date.today())
        monkeypatch.setattr("app.modules.milestones.tasks.SessionLocal", sessionmaker(bind=engine, expire_on_commit=False))
        monkeypatch.setattr("app.modules.milestones.tasks.get_artifact_store", lambda: artifact_store)
        monkeypatch.setattr("app.modules.milestones.tasks.PdfDocumentRenderer", lambda: fake_renderer)
        from app.modules.milestones.tasks import process_milestone_invoices_task

        contract = process_milestone_invoices_task()

        assert contract == {"processed": 1, "created": 2, "failed": 0, "errors": []}

    def test_process_endpoint(self, api_client, project, make_milestone):
        make_milestone(project)

        response = api_client.post("/milestones/process", json={"run_date": RUN_DATE.isoformat()})

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "created": 2, "failed": 0, "errors": []}

    def test_process_endpoint_defaults_to_today(self, api_client, project, make_milestone):
        make_milestone(project)
        assert api_client.post("/milestones/process").json()["processed"] == 0
