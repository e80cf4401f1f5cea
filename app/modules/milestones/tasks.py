"""
Scheduled milestone invoicing.
"""
import logging
from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.documents.renderer import PdfDocumentRenderer
from app.modules.files.service import get_artifact_store
from app.modules.milestones.service import MilestoneInvoiceService

logger = logging.getLogger(__name__)


@celery_app.task(name="app.modules.milestones.tasks.process_milestone_invoices_task")
def process_milestone_invoices_task():
    """
    Bill every milestone due today.

    Returns {processed, created, failed, errors: [{milestoneId, error}]}.
    """
    db = SessionLocal()
    try:
        service = MilestoneInvoiceService(db, get_artifact_store(), PdfDocumentRenderer())
        result = service.process_milestone_invoices()
        if result.errors:
            logger.warning(f"Milestone invoicing finished with {len(result.errors)} error(s)")
        return result.to_contract()
    except Exception as e:
        logger.error(f"Milestone invoicing run failed: {str(e)}")
        raise
    finally:
        db.close()
