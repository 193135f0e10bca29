# crud/assignment_reassignment.py
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, or_

from app.models.assignment_reassignment import AssignmentReassignment


# --- Append (never updated or deleted afterwards) ---
async def append_event(db: AsyncSession, **fields) -> AssignmentReassignment:
    event = AssignmentReassignment(**fields)
    db.add(event)
    await db.flush()
    return event


# --- Sequence ---
async def max_reassignment_number(db: AsyncSession, assignment_id: UUID) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(AssignmentReassignment.reassignment_number), 0))
        .where(AssignmentReassignment.assignment_id == assignment_id)
    )
    return result.scalar() or 0


# --- Reads ---
async def get_events_for_assignment(db: AsyncSession, assignment_id: UUID) -> List[AssignmentReassignment]:
    result = await db.execute(
        select(AssignmentReassignment)
        .where(AssignmentReassignment.assignment_id == assignment_id)
        .order_by(AssignmentReassignment.reassignment_number.asc())
    )
    return result.scalars().all()


async def get_events_between(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    sdr_id: Optional[UUID] = None,
    consultant_id: Optional[UUID] = None,
) -> List[AssignmentReassignment]:
    """Events with start <= timestamp < end; a consultant filter matches either side."""
    stmt = (
        select(AssignmentReassignment)
        .where(
            AssignmentReassignment.timestamp >= start,
            AssignmentReassignment.timestamp < end,
        )
        .order_by(AssignmentReassignment.timestamp.asc(), AssignmentReassignment.reassignment_number.asc())
    )
    if sdr_id:
        stmt = stmt.where(AssignmentReassignment.sdr_id == sdr_id)
    if consultant_id:
        stmt = stmt.where(
            or_(
                AssignmentReassignment.original_consultant_id == consultant_id,
                AssignmentReassignment.new_consultant_id == consultant_id,
            )
        )
    result = await db.execute(stmt)
    return result.scalars().all()
