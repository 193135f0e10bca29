import json
import logging
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import ANALYTICS_CACHE_TTL_SECONDS
from app.crud import assignment_reassignment as crud_events
from app.crud import reassignment_analytics as crud_analytics
from app.models.assignment_reassignment import AssignmentReassignment
from app.schemas.analytics import AnalyticsQueryParams, DailyAnalyticsSummary

logger = logging.getLogger(__name__)

CACHE_VERSION_KEY = "analytics:reassignments:version"


def most_common_reason(reasons: List[Optional[str]]) -> Optional[str]:
    """Highest count wins; equal counts go to the lexicographically smallest reason."""
    counts = Counter(r for r in reasons if r)
    if not counts:
        return None
    return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]


def summarize(summary_date: date, sdr_id: UUID, consultant_id: Optional[UUID],
              events: List[AssignmentReassignment]) -> Dict[str, Any]:
    times = [e.processing_time_ms for e in events if e.processing_time_ms is not None]
    numbers = [e.reassignment_number for e in events]
    successful = sum(1 for e in events if e.success)
    return {
        "date": summary_date,
        "sdr_id": sdr_id,
        "consultant_id": consultant_id,
        "total_reassignments": len(events),
        "successful_reassignments": successful,
        "failed_reassignments": len(events) - successful,
        "avg_processing_time_ms": round(sum(times) / len(times), 2) if times else None,
        "most_common_reason": most_common_reason([e.reason for e in events]),
        "skills_based_reassignments": sum(1 for e in events if e.skills_requirements),
        "avg_reassignment_number": round(sum(numbers) / len(numbers), 2),
        "max_reassignment_number": max(numbers),
        "unique_leads_reassigned": len({e.lead_identifier for e in events}),
    }


class AnalyticsAggregator:
    """
        Folds one day of ledger events into per-(sdr, new consultant) summary rows.

        The summaries are a projection: each run recomputes every metric from
        the events and overwrites the stored row, and rows whose group has no
        events any more are dropped, so running twice yields the same table.
        Failed attempts that never picked a consultant are grouped under a
        null consultant.
    """

    def __init__(self, db: AsyncSession, redis=None, cache_ttl: int = ANALYTICS_CACHE_TTL_SECONDS):
        self.db = db
        self.redis = redis
        self.cache_ttl = cache_ttl

    @staticmethod
    def default_date() -> date:
        """Yesterday, UTC: the last fully elapsed day."""
        return datetime.utcnow().date() - timedelta(days=1)

    async def aggregate(self, summary_date: Optional[date] = None) -> List[DailyAnalyticsSummary]:
        if summary_date is None:
            summary_date = self.default_date()

        start = datetime.combine(summary_date, time.min)
        events = await crud_events.get_events_between(self.db, start, start + timedelta(days=1))

        groups: Dict[Tuple[UUID, Optional[UUID]], List[AssignmentReassignment]] = {}
        for event in events:
            groups.setdefault((event.sdr_id, event.new_consultant_id), []).append(event)

        try:
            rows = []
            for (sdr_id, consultant_id), group in groups.items():
                rows.append(await crud_analytics.upsert_summary(
                    self.db, summarize(summary_date, sdr_id, consultant_id, group)
                ))
            removed = await crud_analytics.delete_stale_summaries(
                self.db, summary_date, [r.analytics_id for r in rows]
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Aggregated %d reassignment events for %s into %d summaries (%d stale removed)",
            len(events), summary_date, len(rows), removed,
        )
        await self._invalidate_cache()

        summaries = [DailyAnalyticsSummary.model_validate(r) for r in rows]
        summaries.sort(key=lambda s: (-s.total_reassignments, str(s.sdr_id), str(s.consultant_id)))
        return summaries

    async def get_summaries(self, params: AnalyticsQueryParams) -> List[DailyAnalyticsSummary]:
        cache_key = await self._cache_key(params)
        if cache_key:
            cached = await self._cache_get(cache_key)
            if cached is not None:
                return [DailyAnalyticsSummary.model_validate(row) for row in json.loads(cached)]

        rows = await crud_analytics.get_summaries(
            self.db, params.start_date, params.end_date, params.sdr_id, params.consultant_id
        )
        summaries = [DailyAnalyticsSummary.model_validate(r) for r in rows]

        if cache_key:
            payload = json.dumps([s.model_dump(mode="json") for s in summaries])
            await self._cache_set(cache_key, payload)
        return summaries

    # --- Redis cache ---
    # Entries are keyed by a version counter that every aggregation bumps,
    # so a recompute makes all earlier entries unreachable at once.
    async def _cache_key(self, params: AnalyticsQueryParams) -> Optional[str]:
        if self.redis is None:
            return None
        try:
            version = await self.redis.get(CACHE_VERSION_KEY) or 0
        except RedisError as e:
            logger.warning("Analytics cache unavailable: %s", e)
            return None
        return (
            f"analytics:reassignments:v{version}:{params.start_date}:{params.end_date}"
            f":{params.sdr_id or 'all'}:{params.consultant_id or 'all'}"
        )

    async def _cache_get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except RedisError as e:
            logger.warning("Analytics cache read failed for %s: %s", key, e)
            return None

    async def _cache_set(self, key: str, payload: str) -> None:
        try:
            await self.redis.set(key, payload, ex=self.cache_ttl)
        except RedisError as e:
            logger.warning("Analytics cache write failed for %s: %s", key, e)

    async def _invalidate_cache(self) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.incr(CACHE_VERSION_KEY)
        except RedisError as e:
            logger.warning("Analytics cache invalidation failed: %s", e)
