from typing import List, Optional, Literal
from pydantic import BaseModel

Priority = Literal["low", "medium", "high", "critical"]

# Fixed weights used by the skill scorer
PRIORITY_WEIGHTS = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 5,
}


class SkillRequirement(BaseModel):
    skill_id: str
    priority: Priority = "medium"
    custom_note: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self.priority]

    @property
    def is_critical(self) -> bool:
        return self.priority == "critical"


class SkillRead(BaseModel):
    skill_id: str
    name: str
    category: Literal["language", "property_type", "client_type", "specialization", "custom"]
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class RequirementValidationRequest(BaseModel):
    required_skills: List[SkillRequirement]
    exclude_consultants: List[str] = []


class RequirementValidation(BaseModel):
    is_valid: bool
    warnings: List[str] = []
    suggestions: List[str] = []
