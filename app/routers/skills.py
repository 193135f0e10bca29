from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List
import logging
import traceback

from app.schemas.skills import SkillRead, RequirementValidationRequest, RequirementValidation
from app.db.session import get_db
from app.crud import skill as crud_skill
from app.services.assignment_selector import AssignmentSelector
from app.services.consultant_matcher import ConsultantMatcher
from app.services.exceptions import AssignmentError
from app.routers.responses import error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/skills", tags=["Skills"])


@router.get("", response_model=List[SkillRead])
async def list_skills(db: AsyncSession = Depends(get_db)):
    try:
        return await crud_skill.list_skills(db)
    except Exception as e:
        logger.error("Error in list_skills: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/availability",
    response_model=Dict[str, int],
    summary="Skill availability",
    description="Number of active, under-capacity consultants holding each catalog skill."
)
async def skill_availability(db: AsyncSession = Depends(get_db)):
    try:
        return await ConsultantMatcher(db).skill_availability()
    except AssignmentError as e:
        return error_response(e.to_failure())
    except Exception as e:
        logger.error("Error in skill_availability: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/validate",
    response_model=RequirementValidation,
    summary="Validate skill requirements",
    description="Checks whether a requirement set can be satisfied before requesting an assignment."
)
async def validate_requirements(
    request: RequirementValidationRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentSelector(db).validate_requirements(
            request.required_skills, request.exclude_consultants
        )
    except AssignmentError as e:
        return error_response(e.to_failure())
    except Exception as e:
        logger.error("Error in validate_requirements: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
