import pytest

from app.schemas.consultant import ConsultantRef
from app.schemas.skills import SkillRequirement
from app.services.consultant_matcher import ConsultantMatcher


def req(skill_id, priority="medium"):
    return SkillRequirement(skill_id=skill_id, priority=priority)


@pytest.mark.asyncio
async def test_only_active_under_capacity_and_not_excluded(db, factory):
    keep = await factory.consultant("Omar Khalid", ["sql"])
    await factory.consultant("Inactive Ines", ["sql"], active=False)
    await factory.consultant("Full Fatima", ["sql"], load=3, capacity=3)
    by_id = await factory.consultant("Excluded Id", ["sql"])
    await factory.consultant("Alice Smith", ["sql"])

    exclusions = [ConsultantRef.parse(str(by_id.consultant_id)), ConsultantRef.parse("  alice   SMITH ")]
    matches = await ConsultantMatcher(db).find_matches([req("sql")], exclusions)

    assert [m.consultant.consultant_id for m in matches] == [keep.consultant_id]


@pytest.mark.asyncio
async def test_ranked_by_score_then_load_then_name(db, factory):
    await factory.consultant("Cara", ["sql"], load=2)
    await factory.consultant("Bob", ["sql"], load=1)
    await factory.consultant("Adam", ["sql"], load=1)
    await factory.consultant("Zed", ["sql", "python"], load=9)
    await factory.consultant("Nobody", [], load=0)

    required = [req("sql", "high"), req("python")]
    matcher = ConsultantMatcher(db)
    matches = await matcher.find_matches(required)

    assert [m.consultant.name for m in matches] == ["Zed", "Adam", "Bob", "Cara", "Nobody"]
    assert matches[0].is_exact_match
    assert matches[1].match_score == pytest.approx(0.6)
    assert matches[1].matching_skills == ["SQL"]
    assert matches[-1].match_score == 0.0

    # re-sorting an already ranked list leaves it unchanged
    reranked = ConsultantMatcher.rank(required, [m.consultant for m in matches], matcher.skill_names)
    assert [m.consultant.name for m in reranked] == [m.consultant.name for m in matches]

    # equal scores always put the lighter load first, whatever the input order
    shuffled = ConsultantMatcher.rank(required, [m.consultant for m in reversed(matches)], matcher.skill_names)
    assert [m.consultant.current_assignment_count for m in shuffled[1:4]] == [1, 1, 2]


@pytest.mark.asyncio
async def test_inactive_skill_links_are_not_held(db, factory, catalog):
    from app.models import ConsultantSkill
    from sqlalchemy import update

    consultant = await factory.consultant("Omar Khalid", ["sql", "python"])
    await db.execute(
        update(ConsultantSkill)
        .where(ConsultantSkill.consultant_id == consultant.consultant_id, ConsultantSkill.skill_id == "sql")
        .values(is_active=False)
    )
    await db.commit()

    matches = await ConsultantMatcher(db).find_matches([req("sql", "critical")])
    assert matches[0].missing_critical_skills == ["SQL"]
    assert not matches[0].is_exact_match


@pytest.mark.asyncio
async def test_skill_availability_counts_eligible_holders(db, factory):
    await factory.consultant("A", ["sql", "python"])
    await factory.consultant("B", ["sql"])
    await factory.consultant("C", ["sql"], active=False)

    availability = await ConsultantMatcher(db).skill_availability()

    assert availability["sql"] == 2
    assert availability["python"] == 1
    assert availability["java"] == 0
