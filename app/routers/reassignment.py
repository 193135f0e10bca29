from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, time, timedelta
import logging
import traceback

from app.schemas.assignment import AssignmentRead
from app.schemas.reassignment import ReassignmentRecordRequest, ReassignmentEventRead
from app.db.session import get_db
from app.services.assignment_services import AssignmentServices
from app.services.exceptions import AssignmentError
from app.routers.responses import error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/reassignments", tags=["Reassignments"])


@router.post(
    "",
    response_model=ReassignmentEventRead,
    status_code=201,
    summary="Record a reassignment",
    description="Appends a reassignment decided outside the selector to the ledger and updates the assignment."
)
async def record_reassignment(
    request: ReassignmentRecordRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.record_reassignment_service(request, db)
    except AssignmentError as e:
        return error_response(e.to_failure())
    except Exception as e:
        logger.error("Error in record_reassignment: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "",
    response_model=List[ReassignmentEventRead],
    summary="List reassignment events",
    description="Events between two dates (inclusive); a consultant filter matches either side of the move."
)
async def list_reassignments(
    start_date: date = Query(..., description="First day, inclusive"),
    end_date: date = Query(..., description="Last day, inclusive"),
    sdr_id: Optional[UUID] = Query(None),
    consultant_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    start = datetime.combine(start_date, time.min)
    end = datetime.combine(end_date, time.min) + timedelta(days=1)
    try:
        return await AssignmentServices.list_events_service(start, end, db, sdr_id, consultant_id)
    except Exception as e:
        logger.error("Error in list_reassignments: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/assignment/{assignment_id}/rebuild-history",
    response_model=AssignmentRead,
    summary="Rebuild cached history",
    description="Recomputes the assignment's history and reassignment count from its ledger events."
)
async def rebuild_history(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.rebuild_history_service(assignment_id, db)
    except AssignmentError as e:
        return error_response(e.to_failure())
    except Exception as e:
        logger.error("Error in rebuild_history: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
