from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis
from typing import List, Optional
from uuid import UUID
from datetime import date
import logging
import traceback

from app.schemas.analytics import AnalyticsQueryParams, DailyAnalyticsSummary, AggregationResponse
from app.db.session import get_db
from app.db.redis_client import get_redis
from app.services.analytics_aggregator import AnalyticsAggregator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/analytics", tags=["Analytics"])


@router.get("/reassignments", response_model=List[DailyAnalyticsSummary])
async def get_reassignment_analytics(
    start_date: date = Query(...),
    end_date: date = Query(...),
    sdr_id: Optional[UUID] = Query(None),
    consultant_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    try:
        params = AnalyticsQueryParams(
            start_date=start_date, end_date=end_date, sdr_id=sdr_id, consultant_id=consultant_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return await AnalyticsAggregator(db, redis).get_summaries(params)
    except Exception as e:
        logger.error("Error in get_reassignment_analytics: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/reassignments/aggregate",
    response_model=AggregationResponse,
    summary="Recompute daily summaries",
    description="Folds one day of reassignment events into summary rows (default: yesterday). Safe to rerun."
)
async def aggregate_reassignments(
    summary_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    target = summary_date or AnalyticsAggregator.default_date()
    try:
        rows = await AnalyticsAggregator(db, redis).aggregate(target)
    except Exception as e:
        logger.error("Error in aggregate_reassignments: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return AggregationResponse(date=target, rows=rows)
