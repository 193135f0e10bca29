from .skill import Skill, ConsultantSkill
from .consultant import Consultant
from .assignment import Assignment
from .assignment_reassignment import AssignmentReassignment
from .reassignment_analytics import ReassignmentAnalytics

__all__ = ["Skill", "ConsultantSkill", "Consultant", "Assignment", "AssignmentReassignment", "ReassignmentAnalytics"]
