# crud/assignment.py
# Writes here only flush; the calling service commits so that several of
# them (and the ledger append) land in one transaction.
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.assignment import Assignment


# --- Create Assignment ---
async def create_assignment(
    db: AsyncSession,
    lead_identifier: str,
    lead_name: str,
    consultant_id: UUID,
    sdr_id: UUID,
    assignment_method: str = "round_robin",
    skills_data: Optional[Dict[str, Any]] = None,
    original_assignment_id: Optional[UUID] = None,
) -> Assignment:
    assignment = Assignment(
        lead_identifier=lead_identifier,
        lead_name=lead_name,
        consultant_id=consultant_id,
        sdr_id=sdr_id,
        status="active",
        assigned_at=datetime.utcnow(),
        reassignment_count=0,
        reassignment_history=[],
        assignment_method=assignment_method,
        skills_data=skills_data or {},
        original_assignment_id=original_assignment_id,
    )
    db.add(assignment)
    await db.flush()
    return assignment


# --- Get Assignment ---
async def get_assignment(
    db: AsyncSession,
    assignment_id: UUID,
    for_update: bool = False,
) -> Optional[Assignment]:
    stmt = select(Assignment).where(Assignment.assignment_id == assignment_id)
    if for_update:
        # Row lock on PostgreSQL; ignored by SQLite
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_assignments_by_lead(db: AsyncSession, lead_identifier: str) -> List[Assignment]:
    result = await db.execute(
        select(Assignment)
        .where(Assignment.lead_identifier == lead_identifier)
        .order_by(Assignment.assigned_at.desc())
    )
    return result.scalars().all()


# --- Reassignment bookkeeping ---
async def increment_reassignment_count(
    db: AsyncSession,
    assignment: Assignment,
    delta: int,
    history_entry: Dict[str, Any],
    new_consultant_id: Optional[UUID] = None,
    reason: Optional[str] = None,
) -> Assignment:
    assignment.reassignment_count = (assignment.reassignment_count or 0) + delta
    # Reassign the list so the JSON column is flagged dirty
    assignment.reassignment_history = [*(assignment.reassignment_history or []), history_entry]
    if new_consultant_id is not None:
        assignment.consultant_id = new_consultant_id
        assignment.reassignment_reason = reason
    await db.flush()
    return assignment


async def replace_history(db: AsyncSession, assignment: Assignment, history: List[Dict[str, Any]]) -> Assignment:
    assignment.reassignment_history = list(history)
    assignment.reassignment_count = len(history)
    await db.flush()
    return assignment
