from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest

from app.jobs import daily_analytics
from app.services.reassignment_ledger import ReassignmentLedger


def test_parse_args_defaults_to_yesterday():
    assert daily_analytics.parse_args([]).summary_date is None
    assert daily_analytics.parse_args(["--date", "2024-03-01"]).summary_date == date(2024, 3, 1)


def test_parse_args_rejects_bad_dates():
    with pytest.raises(SystemExit):
        daily_analytics.parse_args(["--date", "01/03/2024"])


@pytest.mark.asyncio
async def test_run_aggregates_with_its_own_session(db, factory, session_factory, monkeypatch):
    first = await factory.consultant("First")
    second = await factory.consultant("Second")
    assignment = await factory.assignment(first)
    await ReassignmentLedger(db).record_reassignment(
        assignment_id=assignment.assignment_id,
        original_consultant_id=first.consultant_id,
        new_consultant_id=second.consultant_id,
        lead_identifier="lead-001",
        lead_name="Layla Haddad",
        reason="workload",
    )
    monkeypatch.setattr(daily_analytics, "async_session", session_factory)
    redis = AsyncMock()

    written = await daily_analytics.run(datetime.utcnow().date(), redis=redis)

    assert written == 1
    redis.incr.assert_awaited_once()
