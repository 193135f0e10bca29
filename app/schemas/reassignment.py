from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

from app.schemas.skills import SkillRequirement
from app.schemas.assignment import AssignmentRead, SelectionResult, SelectionFailure

ReassignmentSource = Literal["user_request", "system_automatic", "admin_override"]


# --- Request ---
class ReassignmentRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    required_skills: List[SkillRequirement] = []
    exclude_consultants: List[str] = []
    source: ReassignmentSource = "user_request"
    timeout: Optional[float] = Field(default=None, gt=0)


class ReassignmentRecordRequest(BaseModel):
    """Direct ledger write for reassignments decided outside the selector."""

    assignment_id: UUID
    original_consultant_id: UUID
    new_consultant_id: Optional[UUID] = None
    lead_identifier: str = Field(min_length=1, max_length=255)
    lead_name: str = Field(min_length=1, max_length=255)
    reason: Optional[str] = Field(default=None, max_length=500)
    source: ReassignmentSource = "admin_override"
    previous_skills_match_score: Optional[float] = Field(default=None, ge=0, le=1)
    new_skills_match_score: Optional[float] = Field(default=None, ge=0, le=1)
    skills_requirements: List[SkillRequirement] = []
    exclusion_list: List[str] = []
    processing_time_ms: Optional[int] = Field(default=None, ge=0)
    success: bool = True
    error_message: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)


# --- Ledger rows ---
class ReassignmentEventRead(BaseModel):
    reassignment_id: UUID
    assignment_id: UUID
    sdr_id: UUID
    original_consultant_id: UUID
    new_consultant_id: Optional[UUID] = None
    reassignment_number: int
    reason: Optional[str] = None
    lead_identifier: str
    lead_name: str
    previous_skills_match_score: Optional[float] = None
    new_skills_match_score: Optional[float] = None
    skills_requirements: List[Dict[str, Any]] = []
    exclusion_list: List[str] = []
    reassignment_source: ReassignmentSource
    timestamp: datetime
    processing_time_ms: Optional[int] = None
    success: bool
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


class HistoryEntry(BaseModel):
    reassignment_number: int
    from_consultant_id: UUID
    to_consultant_id: Optional[UUID] = None
    timestamp: datetime
    reason: Optional[str] = None
    skills_match_improvement: Optional[float] = None
    success: bool = True


# --- Responses ---
class ReassignmentResponse(BaseModel):
    success: bool
    assignment: Optional[AssignmentRead] = None
    event: Optional[ReassignmentEventRead] = None
    selection: Optional[SelectionResult] = None
    error: Optional[SelectionFailure] = None
    processing_time_ms: int


class AssignmentHistoryResponse(BaseModel):
    assignment: AssignmentRead
    reassignment_history: List[ReassignmentEventRead]
    total_reassignments: int
    last_reassignment_at: Optional[datetime] = None
