import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.crud import consultant as crud_consultant
from app.schemas.skills import SkillRequirement
from app.services.assignment_selector import AssignmentSelector, ReassignmentContext
from app.services.consultant_matcher import ConsultantMatcher


def req(skill_id, priority="medium"):
    return SkillRequirement(skill_id=skill_id, priority=priority)


async def select(db, required=(), exclusions=(), reassignment=None, timeout=None):
    return await AssignmentSelector(db).select(
        "lead-001", "Layla Haddad", required, exclusions, reassignment=reassignment, timeout=timeout
    )


@pytest.mark.asyncio
async def test_no_requirements_picks_least_loaded(db, factory):
    await factory.consultant("C1", load=2)
    c2 = await factory.consultant("C2", load=1)

    outcome = await select(db)

    assert outcome.success
    assert outcome.selection.consultant.consultant_id == c2.consultant_id
    assert outcome.selection.assignment_method == "round_robin"
    assert outcome.selection.match_type == "unfiltered"
    assert not outcome.selection.fallback_used


@pytest.mark.asyncio
async def test_equal_load_prefers_never_assigned_then_longest_idle(db, factory):
    now = datetime.utcnow()
    await factory.consultant("Recent", last_assigned_at=now)
    idle = await factory.consultant("Idle", last_assigned_at=now - timedelta(days=3))

    outcome = await select(db)
    assert outcome.selection.consultant.consultant_id == idle.consultant_id

    fresh = await factory.consultant("Fresh")
    outcome = await select(db)
    assert outcome.selection.consultant.consultant_id == fresh.consultant_id


@pytest.mark.asyncio
async def test_single_exact_match_is_chosen(db, factory):
    c1 = await factory.consultant("C1", ["sql"], load=4)
    await factory.consultant("C2", ["python"])

    outcome = await select(db, [req("sql", "critical")])

    assert outcome.success
    selection = outcome.selection
    assert selection.consultant.consultant_id == c1.consultant_id
    assert selection.match_type == "exact"
    assert selection.assignment_method == "skills_based"
    assert selection.match_score == 1.0
    assert not selection.fallback_used
    assert selection.matched_skills == ["SQL"]
    assert [a.consultant_name for a in selection.alternatives] == ["C2"]


@pytest.mark.asyncio
async def test_partial_candidate_missing_a_critical_skill_fails(db, factory):
    await factory.consultant("C1", ["python", "java"])

    required = [req("sql", "critical"), req("python", "high"), req("java", "critical")]
    outcome = await select(db, required)

    assert not outcome.success
    assert outcome.error.kind == "CriticalSkillsUnavailable"
    assert outcome.error.details["missing_skills"] == ["SQL"]
    assert "SQL" in outcome.error.message
    assert not outcome.error.retryable


@pytest.mark.asyncio
async def test_partial_match_falls_back_with_percentage_warning(db, factory):
    c1 = await factory.consultant("C1", ["lang_arabic"])

    outcome = await select(db, [req("python", "medium"), req("lang_arabic", "high")])

    assert outcome.success
    selection = outcome.selection
    assert selection.consultant.consultant_id == c1.consultant_id
    assert selection.match_score == pytest.approx(0.6)
    assert selection.match_type == "partial"
    assert selection.fallback_used
    assert "60%" in selection.fallback_message


@pytest.mark.asyncio
async def test_score_at_threshold_is_not_a_usable_partial(db, factory):
    await factory.consultant("C1", ["python"])

    outcome = await select(db, [req("python"), req("java")])

    assert not outcome.success
    assert outcome.error.kind == "NoSkillMatch"
    assert outcome.error.details["required_skills"] == ["Python", "Java"]


@pytest.mark.asyncio
async def test_exact_match_beats_lighter_partial_match(db, factory):
    await factory.consultant("Light", ["sql"], load=0)
    heavy = await factory.consultant("Heavy", ["sql", "python"], load=8)

    outcome = await select(db, [req("sql"), req("python")])

    assert outcome.selection.consultant.consultant_id == heavy.consultant_id
    assert outcome.selection.alternatives[0].consultant_name == "Light"


@pytest.mark.asyncio
async def test_alternatives_are_capped_at_three(db, factory):
    for name in ["A", "B", "C", "D", "E"]:
        await factory.consultant(name, ["sql"])

    outcome = await select(db, [req("sql")])

    assert outcome.selection.consultant.name == "A"
    assert [a.consultant_name for a in outcome.selection.alternatives] == ["B", "C", "D"]


@pytest.mark.asyncio
async def test_everyone_excluded_is_no_eligible_consultants(db, factory):
    c1 = await factory.consultant("C1")
    await factory.consultant("C2", active=False)

    outcome = await select(db, exclusions=[str(c1.consultant_id)])

    assert not outcome.success
    assert outcome.error.kind == "NoEligibleConsultants"


@pytest.mark.asyncio
async def test_blank_exclusions_are_ignored(db, factory):
    c1 = await factory.consultant("C1")

    outcome = await select(db, exclusions=["  ", "", "c9"])

    assert outcome.success
    assert outcome.selection.consultant.consultant_id == c1.consultant_id
    assert [str(r) for r in AssignmentSelector.effective_exclusions(["  ", " C9 "])] == ["c9"]


@pytest.mark.asyncio
async def test_skills_required_and_nobody_eligible_is_no_skill_match(db, factory):
    await factory.consultant("C1", ["sql"], load=10, capacity=10)

    outcome = await select(db, [req("sql")])

    assert outcome.error.kind == "NoSkillMatch"


@pytest.mark.asyncio
async def test_reassignment_always_excludes_current_consultant(db, factory):
    current = await factory.consultant("Current", load=0)
    other = await factory.consultant("Other", load=5)
    assignment = await factory.assignment(current)

    context = ReassignmentContext(assignment.assignment_id, current.consultant_id, "client prefers Arabic")
    outcome = await select(db, reassignment=context)

    assert outcome.selection.consultant.consultant_id == other.consultant_id


@pytest.mark.asyncio
async def test_slow_lookup_surfaces_timeout(db, factory, monkeypatch):
    await factory.consultant("C1")

    async def slow_list_eligible(*args, **kwargs):
        await asyncio.sleep(1)
        return []

    monkeypatch.setattr(crud_consultant, "list_eligible", slow_list_eligible)
    outcome = await select(db, timeout=0.05)

    assert not outcome.success
    assert outcome.error.kind == "Timeout"
    assert outcome.error.retryable


@pytest.mark.asyncio
async def test_store_fault_surfaces_store_unavailable(db, factory, monkeypatch):
    async def broken_list_eligible(*args, **kwargs):
        raise OperationalError("SELECT consultants", {}, Exception("connection refused"))

    monkeypatch.setattr(crud_consultant, "list_eligible", broken_list_eligible)
    outcome = await select(db, [req("sql")])

    assert outcome.error.kind == "StoreUnavailable"
    assert outcome.error.retryable


@pytest.mark.asyncio
async def test_validate_requirements_flags_unavailable_critical_skill(db, factory):
    await factory.consultant("C1", ["python"])
    await factory.consultant("C2", ["python", "java"])

    selector = AssignmentSelector(db, matcher=ConsultantMatcher(db))
    result = await selector.validate_requirements([req("sql", "critical"), req("python")])

    assert not result.is_valid
    assert any("SQL" in w for w in result.warnings)
    assert any("No consultants match all required skills exactly" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_validate_requirements_warns_on_few_candidates(db, factory):
    await factory.consultant("C1", ["python"])

    result = await AssignmentSelector(db).validate_requirements([req("python")])

    assert result.is_valid
    assert result.warnings == ["Limited consultant options available for selected skills"]
