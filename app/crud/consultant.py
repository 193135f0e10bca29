# crud/consultant.py
from typing import Iterable, List, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import update

from app.models.consultant import Consultant
from app.schemas.consultant import ConsultantRef, split_refs


# --- Eligible consultants ---
async def list_eligible(
    db: AsyncSession,
    excluding: Iterable[ConsultantRef] = (),
) -> List[Consultant]:
    """
    Active consultants under capacity, minus the exclusion set.

    Id exclusions are pushed into the query; name exclusions are compared on
    the normalized name so "jane  DOE" excludes "Jane Doe".
    Ordered by name then id so equal-ranked candidates come back in a stable order.
    """
    refs = list(excluding)
    excluded_ids, _ = split_refs(refs)

    stmt = (
        select(Consultant)
        .options(selectinload(Consultant.skills))
        .execution_options(populate_existing=True)
        .where(
            Consultant.is_active.is_(True),
            Consultant.current_assignment_count < Consultant.max_assignment_count,
        )
        .order_by(Consultant.name, Consultant.consultant_id)
    )
    if excluded_ids:
        stmt = stmt.where(Consultant.consultant_id.notin_(excluded_ids))

    result = await db.execute(stmt)
    consultants = result.scalars().all()

    name_refs = [ref for ref in refs if ref.name is not None]
    return [
        c for c in consultants
        if not any(ref.matches(c.consultant_id, c.name) for ref in name_refs)
    ]


async def get_consultant(db: AsyncSession, consultant_id: UUID) -> Optional[Consultant]:
    result = await db.execute(
        select(Consultant)
        .options(selectinload(Consultant.skills))
        .execution_options(populate_existing=True)
        .where(Consultant.consultant_id == consultant_id)
    )
    return result.scalar_one_or_none()


async def missing_consultant_ids(db: AsyncSession, consultant_ids: Iterable[Optional[UUID]]) -> List[UUID]:
    wanted = [c for c in dict.fromkeys(consultant_ids) if c is not None]
    if not wanted:
        return []
    result = await db.execute(select(Consultant.consultant_id).where(Consultant.consultant_id.in_(wanted)))
    found = set(result.scalars().all())
    return [c for c in wanted if c not in found]


# --- Load counters ---
async def claim_capacity(db: AsyncSession, consultant_id: UUID) -> bool:
    """
    Compare-and-set increment of the consultant's load.

    Succeeds only while the consultant is still active and under capacity at
    write time. Does not commit; the caller owns the transaction.
    """
    result = await db.execute(
        update(Consultant)
        .where(
            Consultant.consultant_id == consultant_id,
            Consultant.is_active.is_(True),
            Consultant.current_assignment_count < Consultant.max_assignment_count,
        )
        .values(
            current_assignment_count=Consultant.current_assignment_count + 1,
            last_assigned_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_capacity(db: AsyncSession, consultant_id: UUID) -> bool:
    """Decrement the consultant's load, never below zero. Does not commit."""
    result = await db.execute(
        update(Consultant)
        .where(
            Consultant.consultant_id == consultant_id,
            Consultant.current_assignment_count > 0,
        )
        .values(current_assignment_count=Consultant.current_assignment_count - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
