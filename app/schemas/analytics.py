from typing import List, Optional
from pydantic import BaseModel, model_validator
from uuid import UUID
from datetime import date


# --- Query params ---
class AnalyticsQueryParams(BaseModel):
    start_date: date
    end_date: date
    sdr_id: Optional[UUID] = None
    consultant_id: Optional[UUID] = None

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class DailyAnalyticsSummary(BaseModel):
    date: date
    sdr_id: UUID
    consultant_id: Optional[UUID] = None
    total_reassignments: int
    successful_reassignments: int
    failed_reassignments: int
    avg_processing_time_ms: Optional[float] = None
    most_common_reason: Optional[str] = None
    skills_based_reassignments: int
    avg_reassignment_number: Optional[float] = None
    max_reassignment_number: int
    unique_leads_reassigned: int

    model_config = {"from_attributes": True}


class AggregationResponse(BaseModel):
    date: date
    rows: List[DailyAnalyticsSummary]
