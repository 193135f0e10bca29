import asyncio
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update

from app.crud import assignment as crud_assignment
from app.crud import assignment_reassignment as crud_events
from app.crud import consultant as crud_consultant
from app.models import Assignment, AssignmentReassignment
from app.services.exceptions import InvalidReassignment, StoreUnavailable, Timeout
from app.services.reassignment_ledger import ReassignmentLedger


@pytest.fixture
def record_kwargs():
    def build(assignment_id, original_id, new_id, **overrides):
        kwargs = dict(
            assignment_id=assignment_id,
            original_consultant_id=original_id,
            new_consultant_id=new_id,
            lead_identifier="lead-001",
            lead_name="Layla Haddad",
            reason="consultant on leave",
        )
        kwargs.update(overrides)
        return kwargs
    return build


@pytest_asyncio.fixture
async def chain(factory):
    """An assignment held by `first`, plus a second consultant to move it to."""
    first = await factory.consultant("First")
    second = await factory.consultant("Second")
    assignment = await factory.assignment(first)
    return assignment.assignment_id, first.consultant_id, second.consultant_id


async def event_count(db, assignment_id):
    result = await db.execute(
        select(func.count(AssignmentReassignment.reassignment_id))
        .where(AssignmentReassignment.assignment_id == assignment_id)
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_same_consultant_is_rejected_without_writing(db, chain, record_kwargs):
    assignment_id, first, second = chain
    ledger = ReassignmentLedger(db)
    await ledger.record_reassignment(**record_kwargs(assignment_id, first, second))
    await ledger.record_reassignment(**record_kwargs(assignment_id, second, first))

    with pytest.raises(InvalidReassignment):
        await ledger.record_reassignment(**record_kwargs(assignment_id, first, first))

    assert await event_count(db, assignment_id) == 2
    assignment = await crud_assignment.get_assignment(db, assignment_id, for_update=True)
    assert assignment.reassignment_count == 2
    assert assignment.consultant_id == first


@pytest.mark.asyncio
async def test_successful_event_moves_assignment_and_appends_history(db, chain, record_kwargs):
    assignment_id, first, second = chain

    event = await ReassignmentLedger(db).record_reassignment(
        **record_kwargs(assignment_id, first, second, previous_score=0.4, new_score=0.9)
    )

    assert event.reassignment_number == 1
    assignment = await crud_assignment.get_assignment(db, assignment_id, for_update=True)
    assert assignment.consultant_id == second
    assert assignment.reassignment_count == 1
    assert assignment.reassignment_reason == "consultant on leave"
    entry = assignment.reassignment_history[0]
    assert entry["reassignment_number"] == 1
    assert entry["from_consultant_id"] == str(first)
    assert entry["to_consultant_id"] == str(second)
    assert entry["skills_match_improvement"] == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_history_omits_delta_without_both_scores(db, chain, record_kwargs):
    assignment_id, first, second = chain

    await ReassignmentLedger(db).record_reassignment(**record_kwargs(assignment_id, first, second, new_score=0.9))

    assignment = await crud_assignment.get_assignment(db, assignment_id, for_update=True)
    assert assignment.reassignment_history[0]["skills_match_improvement"] is None


@pytest.mark.asyncio
async def test_failed_attempt_consumes_a_number_but_keeps_consultant(db, chain, record_kwargs):
    assignment_id, first, second = chain
    ledger = ReassignmentLedger(db)

    failed = await ledger.record_reassignment(
        **record_kwargs(assignment_id, first, None, success=False, error_message="No consultants available")
    )
    succeeded = await ledger.record_reassignment(**record_kwargs(assignment_id, first, second))

    assert (failed.reassignment_number, succeeded.reassignment_number) == (1, 2)
    assignment = await crud_assignment.get_assignment(db, assignment_id, for_update=True)
    assert assignment.reassignment_count == 2
    assert assignment.consultant_id == second
    assert [h["success"] for h in assignment.reassignment_history] == [False, True]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"new_consultant_id": None},
        {"success": True, "error_message": "should not be here"},
        {"success": False},
        {"previous_score": 1.2},
        {"new_score": -0.1},
        {"source": "cron"},
    ],
)
async def test_precondition_violations_write_nothing(db, chain, record_kwargs, overrides):
    assignment_id, first, second = chain

    with pytest.raises(InvalidReassignment):
        await ReassignmentLedger(db).record_reassignment(**record_kwargs(assignment_id, first, second, **overrides))

    assert await event_count(db, assignment_id) == 0


@pytest.mark.asyncio
async def test_unknown_assignment_is_invalid(db, chain, record_kwargs):
    _, first, second = chain

    with pytest.raises(InvalidReassignment):
        await ReassignmentLedger(db).record_reassignment(**record_kwargs(uuid4(), first, second))


@pytest.mark.asyncio
async def test_unknown_consultant_is_invalid_and_not_retried(db, chain, record_kwargs):
    assignment_id, first, _ = chain
    stranger = uuid4()

    with pytest.raises(InvalidReassignment) as exc_info:
        await ReassignmentLedger(db).record_reassignment(**record_kwargs(assignment_id, first, stranger))

    assert not exc_info.value.retryable
    assert exc_info.value.details["consultant_ids"] == [str(stranger)]
    assert await event_count(db, assignment_id) == 0


@pytest.mark.asyncio
async def test_constraint_violation_other_than_numbering_is_invalid(db, chain, record_kwargs, monkeypatch):
    assignment_id, first, _ = chain
    checks = []

    async def nothing_missing(session, ids):
        checks.append(ids)
        return []

    monkeypatch.setattr(crud_consultant, "missing_consultant_ids", nothing_missing)
    with pytest.raises(InvalidReassignment):
        await ReassignmentLedger(db).record_reassignment(**record_kwargs(assignment_id, first, uuid4()))

    assert len(checks) == 1
    assert await event_count(db, assignment_id) == 0


@pytest.mark.asyncio
async def test_concurrent_records_get_gapless_numbers(session_factory, chain, record_kwargs):
    assignment_id, first, second = chain
    n = 8

    async def record(i):
        async with session_factory() as session:
            event = await ReassignmentLedger(session).record_reassignment(
                **record_kwargs(assignment_id, first, second, reason=f"attempt {i}")
            )
            return event.reassignment_number

    numbers = await asyncio.gather(*(record(i) for i in range(n)))

    assert sorted(numbers) == list(range(1, n + 1))
    async with session_factory() as session:
        assignment = await crud_assignment.get_assignment(session, assignment_id)
        assert assignment.reassignment_count == n
        assert [h["reassignment_number"] for h in assignment.reassignment_history] == list(range(1, n + 1))
        assert len(await crud_events.get_events_for_assignment(session, assignment_id)) == n


@pytest.mark.asyncio
async def test_number_conflict_is_retried(db, chain, record_kwargs, monkeypatch):
    assignment_id, first, second = chain
    ledger = ReassignmentLedger(db)
    await ledger.record_reassignment(**record_kwargs(assignment_id, first, second))

    real_max = crud_events.max_reassignment_number
    calls = []

    async def stale_once(session, a_id):
        calls.append(a_id)
        if len(calls) == 1:
            return 0  # another process already took number 1
        return await real_max(session, a_id)

    monkeypatch.setattr(crud_events, "max_reassignment_number", stale_once)
    event = await ledger.record_reassignment(**record_kwargs(assignment_id, second, first))

    assert len(calls) == 2
    assert event.reassignment_number == 2
    assert await event_count(db, assignment_id) == 2


@pytest.mark.asyncio
async def test_persistent_conflict_is_store_unavailable(db, chain, record_kwargs, monkeypatch):
    assignment_id, first, second = chain
    ledger = ReassignmentLedger(db, max_attempts=2)
    await ledger.record_reassignment(**record_kwargs(assignment_id, first, second))

    async def always_stale(session, a_id):
        return 0

    monkeypatch.setattr(crud_events, "max_reassignment_number", always_stale)
    with pytest.raises(StoreUnavailable) as exc_info:
        await ledger.record_reassignment(**record_kwargs(assignment_id, second, first))

    assert exc_info.value.retryable
    assert await event_count(db, assignment_id) == 1


@pytest.mark.asyncio
async def test_slow_write_times_out_without_partial_event(db, chain, record_kwargs, monkeypatch):
    assignment_id, first, second = chain

    async def slow_max(session, a_id):
        await asyncio.sleep(1)
        return 0

    monkeypatch.setattr(crud_events, "max_reassignment_number", slow_max)
    with pytest.raises(Timeout):
        await ReassignmentLedger(db, timeout=0.05).record_reassignment(**record_kwargs(assignment_id, first, second))

    monkeypatch.undo()
    assert await event_count(db, assignment_id) == 0
    assignment = await crud_assignment.get_assignment(db, assignment_id, for_update=True)
    assert assignment.reassignment_count == 0
    assert assignment.consultant_id == first


@pytest.mark.asyncio
async def test_history_and_rebuild_from_events(db, chain, record_kwargs):
    assignment_id, first, second = chain
    ledger = ReassignmentLedger(db)
    await ledger.record_reassignment(**record_kwargs(assignment_id, first, second))
    await ledger.record_reassignment(**record_kwargs(assignment_id, second, first, reason="back again"))

    await db.execute(
        update(Assignment)
        .where(Assignment.assignment_id == assignment_id)
        .values(reassignment_count=0, reassignment_history=[])
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    rebuilt = await ledger.rebuild_history(assignment_id)

    assert rebuilt.reassignment_count == 2
    assert [h["reason"] for h in rebuilt.reassignment_history] == ["consultant on leave", "back again"]
    history = await ledger.get_history(assignment_id)
    assert [e.reassignment_number for e in history] == [1, 2]


@pytest.mark.asyncio
async def test_list_events_matches_consultant_on_either_side(db, chain, record_kwargs, factory):
    from datetime import datetime, timedelta

    assignment_id, first, second = chain
    third = (await factory.consultant("Third")).consultant_id
    ledger = ReassignmentLedger(db)
    await ledger.record_reassignment(**record_kwargs(assignment_id, first, second))
    await ledger.record_reassignment(**record_kwargs(assignment_id, second, third))

    start = datetime.utcnow() - timedelta(hours=1)
    end = datetime.utcnow() + timedelta(hours=1)

    assert len(await ledger.list_events(start, end, consultant_id=second)) == 2
    assert len(await ledger.list_events(start, end, consultant_id=third)) == 1
    assert await ledger.list_events(end, end + timedelta(hours=1)) == []


@pytest.mark.asyncio
async def test_deleting_assignment_removes_its_events(db, chain, record_kwargs):
    assignment_id, first, second = chain
    await ReassignmentLedger(db).record_reassignment(**record_kwargs(assignment_id, first, second))

    assignment = await crud_assignment.get_assignment(db, assignment_id)
    await db.delete(assignment)
    await db.commit()

    assert await event_count(db, assignment_id) == 0
