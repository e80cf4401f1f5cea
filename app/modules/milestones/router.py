from fastapi import APIRouter

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.ownerDependencies import ArtifactStoreDep, RendererDep
from app.modules.milestones.schemas import ProcessMilestonesRequest
from app.modules.milestones.service import MilestoneInvoiceService

router = APIRouter(prefix="/milestones", tags=["Milestones"])


@router.post("/process")
def process_milestone_invoices(
    db: db_dependency,
    store: ArtifactStoreDep,
    renderer: RendererDep,
    request: ProcessMilestonesRequest = ProcessMilestonesRequest(),
):
    """
    Run the milestone invoicing batch now instead of waiting for the schedule.

    Milestones already processed for the date are skipped.
    """
    service = MilestoneInvoiceService(db, store, renderer)
    return service.process_milestone_invoices(request.run_date).to_contract()
