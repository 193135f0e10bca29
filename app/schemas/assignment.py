from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

from app.schemas.skills import SkillRequirement
from app.schemas.consultant import ConsultantSnapshot

AssignmentMethod = Literal["round_robin", "skills_based", "vip", "manual"]
MatchType = Literal["exact", "partial", "unfiltered"]


# --- Matching ---
class MatchResult(BaseModel):
    consultant: ConsultantSnapshot
    match_score: float
    matching_skill_ids: List[str] = []
    matching_skills: List[str] = []           # skill names
    missing_critical_skill_ids: List[str] = []
    missing_critical_skills: List[str] = []   # skill names
    is_exact_match: bool


class AlternativeCandidate(BaseModel):
    consultant_id: UUID
    consultant_name: str
    matching_skills: List[str]
    match_score: float


# --- Selection outcome ---
class SelectionResult(BaseModel):
    consultant: ConsultantSnapshot
    match_score: float
    match_type: MatchType
    assignment_method: AssignmentMethod
    required_skills: List[SkillRequirement] = []
    matched_skills: List[str] = []
    fallback_used: bool = False
    fallback_message: Optional[str] = None
    alternatives: List[AlternativeCandidate] = []


class SelectionFailure(BaseModel):
    kind: str
    message: str
    details: Dict[str, Any] = {}
    retryable: bool = False
    suggestion: Optional[str] = None


class SelectionOutcome(BaseModel):
    success: bool
    selection: Optional[SelectionResult] = None
    error: Optional[SelectionFailure] = None


# --- Assignment requests ---
class AssignmentRequest(BaseModel):
    lead_identifier: str = Field(min_length=1, max_length=255)
    lead_name: str = Field(min_length=1, max_length=255)
    sdr_id: UUID
    required_skills: List[SkillRequirement] = []
    exclude_consultants: List[str] = []
    original_assignment_id: Optional[UUID] = None
    timeout: Optional[float] = Field(default=None, gt=0)


class AssignmentRead(BaseModel):
    assignment_id: UUID
    lead_identifier: str
    lead_name: str
    consultant_id: UUID
    sdr_id: UUID
    status: str
    assigned_at: Optional[datetime] = None
    reassignment_count: int
    reassignment_history: List[Dict[str, Any]] = []
    original_assignment_id: Optional[UUID] = None
    assignment_method: AssignmentMethod
    skills_data: Dict[str, Any] = {}
    reassignment_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class AssignmentResponse(BaseModel):
    success: bool
    assignment: Optional[AssignmentRead] = None
    selection: Optional[SelectionResult] = None
    error: Optional[SelectionFailure] = None
    processing_time_ms: int
