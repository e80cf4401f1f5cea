"""
Daily milestone invoicing.

Every milestone due on the run date gets one invoice per client of its
project. Failures are isolated per milestone and per client: they are recorded
in the result and the run moves on. Each due milestone is marked ``created``
after its attempt whatever the outcome, so it is never billed twice.
"""
from datetime import date
from typing import List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import BillingError, StoreUnavailable
from app.modules.documents.renderer import DocumentRenderer
from app.modules.documents.schemas import PaymentTerms, LineItemCreate
from app.modules.files.service import ArtifactStore
from app.modules.invoices.schemas import InvoiceCreate
from app.modules.invoices.service import InvoiceService
from app.modules.items.service import ItemService
from app.modules.milestones.models import (
    Agreement, AgreementPaymentMilestone, AgreementPaymentTerm, MilestoneStatus
)
from app.modules.milestones.schemas import DueMilestone, ProcessMilestoneInvoicesResult
from app.modules.projects.service import get_project_clients

logger = logging.getLogger(__name__)


def _reason(error: Exception) -> str:
    if isinstance(error, BillingError):
        return error.message
    return str(error) or error.__class__.__name__


class MilestoneInvoiceService:
    def __init__(self, db: Session, artifact_store: ArtifactStore, renderer: Optional[DocumentRenderer] = None):
        self.db = db
        self.invoices = InvoiceService(db, artifact_store, renderer)
        self.items = ItemService(db)

    def get_due_milestones(self, run_date: date) -> List[DueMilestone]:
        """Milestones dated run_date that are pending or predate the status column"""
        try:
            rows = (
                self.db.query(
                    AgreementPaymentMilestone.id,
                    AgreementPaymentTerm.agreement_id,
                    Agreement.project_id,
                    Agreement.owner_id,
                    Agreement.service_type,
                    AgreementPaymentMilestone.amount,
                    AgreementPaymentMilestone.milestone_date,
                    AgreementPaymentMilestone.description,
                )
                .join(AgreementPaymentTerm, AgreementPaymentTerm.id == AgreementPaymentMilestone.payment_term_id)
                .join(Agreement, Agreement.id == AgreementPaymentTerm.agreement_id)
                .filter(
                    AgreementPaymentMilestone.milestone_date == run_date,
                    or_(
                        AgreementPaymentMilestone.status == MilestoneStatus.PENDING.value,
                        AgreementPaymentMilestone.status.is_(None),
                    ),
                )
                .order_by(AgreementPaymentMilestone.id)
                .all()
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not load milestones due on {run_date}: {e}")
            raise StoreUnavailable(f"Could not load milestones due on {run_date}") from e

        return [DueMilestone(**row._asdict()) for row in rows]

    def process_milestone_invoices(self, run_date: Optional[date] = None) -> ProcessMilestoneInvoicesResult:
        """
        Run the daily batch.

        run_date defaults to the local date of this process, not the database
        clock. A failure to load the due milestones propagates; nothing else does.
        """
        run_date = run_date or date.today()
        result = ProcessMilestoneInvoicesResult()

        logger.info(f"Checking for milestones due on {run_date}")
        milestones = self.get_due_milestones(run_date)
        if not milestones:
            logger.info(f"No pending milestones due on {run_date}")
            return result

        logger.info(f"Found {len(milestones)} milestone(s) due on {run_date}")
        for milestone in milestones:
            result.processed += 1
            try:
                self._process_milestone(milestone, result)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Unexpected error processing milestone {milestone.id}: {e}", exc_info=True)
                result.record_failure(milestone.id, _reason(e))
            self._mark_created(milestone.id, result)

        logger.info(
            f"Milestone run for {run_date} finished: processed={result.processed} "
            f"created={result.created} failed={result.failed}"
        )
        return result

    def _process_milestone(self, milestone: DueMilestone, result: ProcessMilestoneInvoicesResult) -> None:
        logger.info(f"Processing milestone {milestone.id} for agreement {milestone.agreement_id}")

        clients = get_project_clients(self.db, milestone.project_id, milestone.owner_id)
        if not clients:
            logger.warning(f"No clients found for project {milestone.project_id}, milestone {milestone.id} not billed")
            result.record_failure(milestone.id, f"No clients found for project {milestone.project_id}")
            return

        try:
            item = self.items.get_or_create_item_by_name(milestone.owner_id, milestone.service_type)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not resolve item for milestone {milestone.id}: {e}")
            result.record_failure(milestone.id, f"Failed to get/create item: {_reason(e)}")
            return

        created = 0
        for client in clients:
            try:
                invoice = self.invoices.create_invoice(
                    milestone.owner_id, self._invoice_data(milestone, client.id, item.id)
                )
                created += 1
                result.created += 1
                logger.info(f"Created invoice {invoice.invoice_number} for client {client.id} from milestone {milestone.id}")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to create invoice for client {client.id} from milestone {milestone.id}: {e}")
                result.record_failure(milestone.id, f"Failed to create invoice for client {client.id}: {_reason(e)}")

        logger.info(f"Milestone {milestone.id}: {created} of {len(clients)} invoice(s) created")

    @staticmethod
    def _invoice_data(milestone: DueMilestone, client_id: int, item_id: int) -> InvoiceCreate:
        return InvoiceCreate(
            client_id=client_id,
            project_id=milestone.project_id,
            invoice_date=milestone.milestone_date,
            due_date=milestone.milestone_date,
            subtotal=milestone.amount,
            tax_rate=0,
            total=milestone.amount,
            items=[LineItemCreate(item_id=item_id, quantity=1, unit_price=milestone.amount)],
            notes=milestone.description or f"Invoice for milestone: {milestone.service_type}",
            payment_terms=PaymentTerms.FULL,
        )

    def _mark_created(self, milestone_id: int, result: ProcessMilestoneInvoicesResult) -> None:
        try:
            self.db.query(AgreementPaymentMilestone).filter(
                AgreementPaymentMilestone.id == milestone_id
            ).update({AgreementPaymentMilestone.status: MilestoneStatus.CREATED.value}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not mark milestone {milestone_id} as created: {e}")
            result.record_failure(milestone_id, f"Failed to mark milestone as created: {e}", count=False)
