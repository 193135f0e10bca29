# crud/reassignment_analytics.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID
from datetime import date

from app.models.reassignment_analytics import ReassignmentAnalytics


# ---------------- UPSERT ----------------
async def upsert_summary(db: AsyncSession, summary: Dict[str, Any]) -> ReassignmentAnalytics:
    """
    Insert or overwrite the row keyed by (date, sdr_id, consultant_id).
    Every metric is replaced, never accumulated. Does not commit.
    """
    result = await db.execute(
        select(ReassignmentAnalytics).where(
            ReassignmentAnalytics.date == summary["date"],
            ReassignmentAnalytics.sdr_id == summary["sdr_id"],
            ReassignmentAnalytics.consultant_id == summary["consultant_id"],
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = ReassignmentAnalytics(**summary)
        db.add(row)
    else:
        for field, value in summary.items():
            setattr(row, field, value)
    await db.flush()
    return row


# ---------------- READ ----------------
async def get_summaries(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    sdr_id: Optional[UUID] = None,
    consultant_id: Optional[UUID] = None,
) -> List[ReassignmentAnalytics]:
    stmt = (
        select(ReassignmentAnalytics)
        .where(ReassignmentAnalytics.date.between(start_date, end_date))
        .order_by(ReassignmentAnalytics.date.asc(), ReassignmentAnalytics.total_reassignments.desc())
    )
    if sdr_id:
        stmt = stmt.where(ReassignmentAnalytics.sdr_id == sdr_id)
    if consultant_id:
        stmt = stmt.where(ReassignmentAnalytics.consultant_id == consultant_id)
    result = await db.execute(stmt)
    return result.scalars().all()


# ---------------- DELETE ----------------
async def delete_stale_summaries(db: AsyncSession, summary_date: date, keep_ids: Iterable[UUID]) -> int:
    """Drop rows for `summary_date` that the latest recompute did not produce."""
    stmt = delete(ReassignmentAnalytics).where(ReassignmentAnalytics.date == summary_date)
    keep = list(keep_ids)
    if keep:
        stmt = stmt.where(ReassignmentAnalytics.analytics_id.notin_(keep))
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount
