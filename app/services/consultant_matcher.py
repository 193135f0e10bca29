import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import CONSULTANT_LOOKUP_TIMEOUT_SECONDS
from app.crud import consultant as crud_consultant
from app.crud import skill as crud_skill
from app.schemas.assignment import MatchResult
from app.schemas.consultant import ConsultantRef, ConsultantSnapshot
from app.schemas.skills import SkillRequirement
from app.services.skill_scorer import SkillScorer
from app.utils.store import bounded_store_call

logger = logging.getLogger(__name__)


class ConsultantMatcher:
    """
        Scores and ranks the consultants currently eligible for a lead.

        Eligible = active AND under capacity AND not in the exclusion set
        (matched by id or by normalized name).

        Ranking contract:
        - match_score descending
        - ties broken by current_assignment_count ascending (load balancing)
        - remaining ties keep the store's order (name, then id), so re-sorting
          a ranked list never changes it.

        The consultant fetch is the only blocking step and is bounded by the
        caller's timeout; everything after it is synchronous.
    """

    def __init__(self, db: AsyncSession, timeout: Optional[float] = CONSULTANT_LOOKUP_TIMEOUT_SECONDS):
        self.db = db
        self.timeout = timeout
        self.skill_names: Dict[str, str] = {}

    async def find_matches(
        self,
        required: Sequence[SkillRequirement],
        excluded: Iterable[ConsultantRef] = (),
        timeout: Optional[float] = None,
    ) -> List[MatchResult]:
        consultants = await self.eligible_consultants(excluded, timeout)
        results = self.rank(required, consultants, self.skill_names)
        logger.info(
            "Matched %d eligible consultants against %d requirements (%d exact)",
            len(results), len(required), sum(1 for r in results if r.is_exact_match),
        )
        return results

    async def eligible_consultants(
        self,
        excluded: Iterable[ConsultantRef] = (),
        timeout: Optional[float] = None,
    ) -> List[ConsultantSnapshot]:
        consultants, self.skill_names = await bounded_store_call(
            self._load(list(excluded)),
            timeout if timeout is not None else self.timeout,
            "eligible consultant lookup",
        )
        return consultants

    async def _load(self, excluded: List[ConsultantRef]) -> Tuple[List[ConsultantSnapshot], Dict[str, str]]:
        rows = await crud_consultant.list_eligible(self.db, excluded)
        skill_names = await crud_skill.get_skill_names(self.db)
        return [ConsultantSnapshot.model_validate(c) for c in rows], skill_names

    @staticmethod
    def rank(
        required: Sequence[SkillRequirement],
        consultants: Sequence[ConsultantSnapshot],
        skill_names: Dict[str, str],
    ) -> List[MatchResult]:
        results = []
        for consultant in consultants:
            if not consultant.is_eligible:
                continue
            possessed = consultant.skill_ids
            matching_ids = [
                skill_id for skill_id in SkillScorer.matching_skill_ids(required, possessed)
                if skill_id in skill_names
            ]
            missing_ids = SkillScorer.missing_critical_skill_ids(required, possessed)
            results.append(MatchResult(
                consultant=consultant,
                match_score=SkillScorer.score(required, possessed),
                matching_skill_ids=matching_ids,
                matching_skills=[skill_names[s] for s in matching_ids],
                missing_critical_skill_ids=missing_ids,
                missing_critical_skills=[skill_names.get(s, s) for s in missing_ids],
                is_exact_match=SkillScorer.is_exact_match(required, possessed),
            ))

        # list.sort is stable: full ties keep the store order
        results.sort(key=lambda r: (-r.match_score, r.consultant.current_assignment_count))
        return results

    async def skill_availability(self, timeout: Optional[float] = None) -> Dict[str, int]:
        """Number of eligible consultants holding each catalog skill."""
        consultants = await self.eligible_consultants((), timeout)
        availability = {skill_id: 0 for skill_id in self.skill_names}
        for consultant in consultants:
            for skill_id in consultant.skill_ids:
                if skill_id in availability:
                    availability[skill_id] += 1
        return availability
