from typing import AbstractSet, List, Sequence

from app.schemas.skills import SkillRequirement


class SkillScorer:
    """
        Pure scoring of a consultant's skills against a lead's requirements.

        Each requirement contributes its priority weight
        (low=1, medium=2, high=3, critical=5). The score is the weight of the
        satisfied requirements divided by the total weight, so it always lies
        in [0, 1]. No requirements means no constraint, which scores 1.0.
    """

    @staticmethod
    def score(required: Sequence[SkillRequirement], possessed: AbstractSet[str]) -> float:
        if not required:
            return 1.0

        total_weight = 0
        matched_weight = 0
        for req in required:
            total_weight += req.weight
            if req.skill_id in possessed:
                matched_weight += req.weight

        return matched_weight / total_weight

    @staticmethod
    def is_exact_match(required: Sequence[SkillRequirement], possessed: AbstractSet[str]) -> bool:
        """Every required skill is held, whatever its priority."""
        return all(req.skill_id in possessed for req in required)

    @staticmethod
    def matching_skill_ids(required: Sequence[SkillRequirement], possessed: AbstractSet[str]) -> List[str]:
        return _unique(req.skill_id for req in required if req.skill_id in possessed)

    @staticmethod
    def missing_critical_skill_ids(required: Sequence[SkillRequirement], possessed: AbstractSet[str]) -> List[str]:
        return _unique(req.skill_id for req in required if req.is_critical and req.skill_id not in possessed)


def _unique(skill_ids) -> List[str]:
    # keep requirement order, drop repeats
    return list(dict.fromkeys(skill_ids))
