from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from decimal import Decimal
from typing import List, Optional


class MilestoneError(BaseModel):
    milestone_id: int = Field(..., serialization_alias="milestoneId")
    error: str


class ProcessMilestoneInvoicesResult(BaseModel):
    processed: int = 0
    created: int = 0
    failed: int = 0
    errors: List[MilestoneError] = []

    def record_failure(self, milestone_id: int, error: str, count: bool = True) -> None:
        if count:
            self.failed += 1
        self.errors.append(MilestoneError(milestone_id=milestone_id, error=error))

    def to_contract(self) -> dict:
        """{processed, created, failed, errors: [{milestoneId, error}]}"""
        return self.model_dump(by_alias=True)


class DueMilestone(BaseModel):
    """A due milestone with the agreement fields needed to bill it"""
    id: int
    agreement_id: int
    project_id: int
    owner_id: int
    service_type: str
    amount: Decimal
    milestone_date: date
    description: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ProcessMilestonesRequest(BaseModel):
    run_date: Optional[date] = Field(None, description="Defaults to today on the server clock")
