import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import PARTIAL_MATCH_THRESHOLD, MAX_ALTERNATIVE_CANDIDATES
from app.schemas.assignment import (
    AlternativeCandidate,
    MatchResult,
    SelectionOutcome,
    SelectionResult,
)
from app.schemas.consultant import ConsultantRef, ConsultantSnapshot
from app.schemas.skills import RequirementValidation, SkillRequirement
from app.services.consultant_matcher import ConsultantMatcher
from app.services.exceptions import (
    AssignmentError,
    CriticalSkillsUnavailable,
    NoEligibleConsultants,
    NoSkillMatch,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReassignmentContext:
    assignment_id: UUID
    current_consultant_id: UUID
    reason: str


class AssignmentSelector:
    """
        Makes one assignment or reassignment decision for a lead.

        Policy, evaluated in order:
        1. No skills required -> least-loaded eligible consultant (round_robin).
        2. At least one exact match -> top-ranked exact match (skills_based).
        3. Candidates above the partial threshold -> the top one, unless it is
           missing a critical skill, in which case the decision fails with
           CriticalSkillsUnavailable. A partial pick is flagged as a fallback
           and carries a percentage warning.
        4. Otherwise NoSkillMatch.

        On reassignment the consultant currently holding the lead is always
        excluded. The selector only reads; consultant load counters are
        claimed later by whoever commits the decision, so it can be retried
        freely.
    """

    def __init__(
        self,
        db: AsyncSession,
        matcher: Optional[ConsultantMatcher] = None,
        threshold: float = PARTIAL_MATCH_THRESHOLD,
        max_alternatives: int = MAX_ALTERNATIVE_CANDIDATES,
    ):
        self.matcher = matcher or ConsultantMatcher(db)
        self.threshold = threshold
        self.max_alternatives = max_alternatives

    async def select(
        self,
        lead_identifier: str,
        lead_name: str,
        required_skills: Sequence[SkillRequirement] = (),
        exclusions: Iterable[ConsultantRef] = (),
        reassignment: Optional[ReassignmentContext] = None,
        timeout: Optional[float] = None,
    ) -> SelectionOutcome:
        """Typed outcome; selection failures are returned, never raised."""
        try:
            selection = await self.choose(required_skills, exclusions, reassignment, timeout)
        except AssignmentError as e:
            logger.warning(
                "Selection failed for lead %s (%s): %s [%s]",
                lead_identifier, lead_name, e.message, e.kind,
            )
            return SelectionOutcome(success=False, error=e.to_failure())

        logger.info(
            "Selected consultant %s for lead %s via %s (score=%.2f, fallback=%s%s)",
            selection.consultant.consultant_id, lead_identifier, selection.assignment_method,
            selection.match_score, selection.fallback_used,
            f", reassignment of {reassignment.assignment_id}" if reassignment else "",
        )
        return SelectionOutcome(success=True, selection=selection)

    async def choose(
        self,
        required_skills: Sequence[SkillRequirement] = (),
        exclusions: Iterable[ConsultantRef] = (),
        reassignment: Optional[ReassignmentContext] = None,
        timeout: Optional[float] = None,
    ) -> SelectionResult:
        required = list(required_skills)
        excluded = self.effective_exclusions(exclusions, reassignment)

        # 1. --- No constraint: plain load-balanced pick ---
        if not required:
            consultants = await self.matcher.eligible_consultants(excluded, timeout)
            return self._least_loaded(consultants)

        matches = await self.matcher.find_matches(required, excluded, timeout)

        # 2. --- Exact matches ---
        exact = [m for m in matches if m.is_exact_match]
        if exact:
            return self._build(exact[0], matches, required, "exact")

        # 3. --- Partial matches above the threshold ---
        partial = [m for m in matches if m.match_score > self.threshold]
        if partial:
            best = partial[0]
            if best.missing_critical_skills:
                raise CriticalSkillsUnavailable(best.missing_critical_skills)
            percent = math.floor(best.match_score * 100 + 0.5)
            return self._build(
                best, matches, required, "partial",
                fallback_message=(
                    f"Partial skill match ({percent}%). "
                    "Some required skills may not be available."
                ),
            )

        # 4. --- Nothing usable ---
        names = self.matcher.skill_names
        raise NoSkillMatch([names.get(r.skill_id, r.skill_id) for r in required])

    @staticmethod
    def effective_exclusions(
        exclusions: Iterable[ConsultantRef],
        reassignment: Optional[ReassignmentContext] = None,
    ) -> List[ConsultantRef]:
        # blank entries name nobody
        excluded = list(dict.fromkeys(
            ConsultantRef.parse(e) for e in exclusions if not isinstance(e, str) or e.strip()
        ))
        if reassignment:
            current = ConsultantRef(consultant_id=reassignment.current_consultant_id)
            if current not in excluded:
                excluded.append(current)
        return excluded

    def _least_loaded(self, consultants: List[ConsultantSnapshot]) -> SelectionResult:
        eligible = [c for c in consultants if c.is_eligible]
        if not eligible:
            raise NoEligibleConsultants("No available consultants for assignment")

        # never-assigned consultants first, then the longest idle
        ordered = sorted(
            eligible,
            key=lambda c: (c.current_assignment_count, c.last_assigned_at or datetime.min),
        )
        chosen = ordered[0]
        return SelectionResult(
            consultant=chosen,
            match_score=1.0,
            match_type="unfiltered",
            assignment_method="round_robin",
            alternatives=[
                AlternativeCandidate(
                    consultant_id=c.consultant_id,
                    consultant_name=c.name,
                    matching_skills=[],
                    match_score=1.0,
                )
                for c in ordered[1:1 + self.max_alternatives]
            ],
        )

    def _build(
        self,
        chosen: MatchResult,
        ranked: List[MatchResult],
        required: List[SkillRequirement],
        match_type: str,
        fallback_message: Optional[str] = None,
    ) -> SelectionResult:
        remaining = [m for m in ranked if m is not chosen]
        return SelectionResult(
            consultant=chosen.consultant,
            match_score=chosen.match_score,
            match_type=match_type,
            assignment_method="skills_based",
            required_skills=required,
            matched_skills=chosen.matching_skills,
            fallback_used=fallback_message is not None,
            fallback_message=fallback_message,
            alternatives=[
                AlternativeCandidate(
                    consultant_id=m.consultant.consultant_id,
                    consultant_name=m.consultant.name,
                    matching_skills=m.matching_skills,
                    match_score=m.match_score,
                )
                for m in remaining[:self.max_alternatives]
            ],
        )

    async def validate_requirements(
        self,
        required_skills: Sequence[SkillRequirement],
        exclusions: Iterable[ConsultantRef] = (),
        timeout: Optional[float] = None,
    ) -> RequirementValidation:
        """Feasibility check for a requirement set before asking for an assignment."""
        required = list(required_skills)
        warnings: List[str] = []
        suggestions: List[str] = []

        matches = await self.matcher.find_matches(required, self.effective_exclusions(exclusions), timeout)
        if not matches:
            warnings.append("No consultants available with any of the selected skills")
            suggestions.append("Consider reducing skill requirements or using standard assignment")
            return RequirementValidation(is_valid=False, warnings=warnings, suggestions=suggestions)

        if required and not any(m.is_exact_match for m in matches):
            warnings.append("No consultants match all required skills exactly")
            suggestions.append("Some skills may be unavailable - assignment will use best partial match")

        held = set().union(*(m.consultant.skill_ids for m in matches))
        unavailable = [r for r in required if r.is_critical and r.skill_id not in held]
        if unavailable:
            names = self.matcher.skill_names
            warnings.append(
                "Some critical skills are not available: "
                + ", ".join(names.get(r.skill_id, r.skill_id) for r in unavailable)
            )
            suggestions.append("Consider changing critical skills to high priority")
            return RequirementValidation(is_valid=False, warnings=warnings, suggestions=suggestions)

        if len(matches) < 3:
            warnings.append("Limited consultant options available for selected skills")
            suggestions.append("Consider broadening skill requirements for more options")

        return RequirementValidation(is_valid=True, warnings=warnings, suggestions=suggestions)
