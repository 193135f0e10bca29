from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging
import traceback

from app.schemas.assignment import AssignmentRequest, AssignmentResponse, AssignmentRead
from app.schemas.reassignment import ReassignmentRequest, ReassignmentResponse, AssignmentHistoryResponse
from app.db.session import get_db
from app.services.assignment_services import AssignmentServices
from app.routers.responses import error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/assignments", tags=["Assignments"])


@router.post(
    "",
    response_model=AssignmentResponse,
    status_code=201,
    summary="Assign a lead",
    description="Selects the best consultant for the lead's skill requirements and exclusions, then books the assignment."
)
async def assign_lead(
    request: AssignmentRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        response = await AssignmentServices.assign_lead_service(request, db)
    except Exception as e:
        logger.error("Error in assign_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if not response.success:
        return error_response(response.error, {"processing_time_ms": response.processing_time_ms})
    return response


@router.get(
    "",
    response_model=List[AssignmentRead],
    summary="Assignments for a lead",
    description="Every assignment made for the lead, newest first."
)
async def list_assignments_for_lead(
    lead_identifier: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.list_assignments_for_lead_service(lead_identifier, db)
    except Exception as e:
        logger.error("Error in list_assignments_for_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{assignment_id}", response_model=AssignmentRead)
async def get_assignment(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.get_assignment_service(assignment_id, db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_assignment: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/{assignment_id}/history",
    response_model=AssignmentHistoryResponse,
    summary="Reassignment history",
    description="Every recorded reassignment attempt for the assignment, ordered by reassignment number."
)
async def get_assignment_history(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.get_assignment_history_service(assignment_id, db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_assignment_history: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{assignment_id}/reassign",
    response_model=ReassignmentResponse,
    summary="Reassign a lead",
    description="Moves the assignment to another consultant; the current one is always excluded. Failed attempts are recorded too."
)
async def reassign_lead(
    assignment_id: UUID,
    request: ReassignmentRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        response = await AssignmentServices.reassign_lead_service(assignment_id, request, db)
    except Exception as e:
        logger.error("Error in reassign_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if not response.success:
        extra = {"processing_time_ms": response.processing_time_ms}
        if response.event:
            extra["event"] = jsonable_encoder(response.event)
        return error_response(response.error, extra)
    return response
