"""
Learning module - Skill graph, proficiency, readiness, and recursive practice sessions.

Components:
    - skill_graph: Two-layer prerequisite graph with diagnostic question banks
    - proficiency_tracker: Per-(user, skill) proficiency ledger
    - prerequisite_checker: Readiness decision from layer-1/layer-2 prerequisites
    - diagnostic_selector: Deterministic diagnostic question cascade
    - session_engine: Session state machine over a bounded skill stack
    - branching: When to branch and which prerequisite to branch into
    - stuck_detection: Heuristic stuck level from recent learner messages
"""

from .errors import (
    TutorError,
    NotFoundError,
    InvalidInputError,
    InvalidStateError,
    ExternalServiceError,
    ExternalServiceTimeout,
)
from .models import (
    ProficiencyLevel,
    ProficiencyRecord,
    SkillNode,
    SkillBranch,
    SkillStack,
    Session,
    SessionScreen,
    SessionStatus,
    MainProblem,
    PracticeProblem,
)
from .skill_graph import SkillGraph
from .proficiency_tracker import ProficiencyTracker
from .prerequisite_checker import PrerequisiteChecker, ReadinessResult, WeakSkill
from .diagnostic_selector import DiagnosticQuestionSelector, DiagnosticQuestion
from .session_engine import SessionEngine, AttemptOutcome, SubmissionResult

__all__ = [
    "TutorError",
    "NotFoundError",
    "InvalidInputError",
    "InvalidStateError",
    "ExternalServiceError",
    "ExternalServiceTimeout",
    "ProficiencyLevel",
    "ProficiencyRecord",
    "SkillNode",
    "SkillBranch",
    "SkillStack",
    "Session",
    "SessionScreen",
    "SessionStatus",
    "MainProblem",
    "PracticeProblem",
    "SkillGraph",
    "ProficiencyTracker",
    "PrerequisiteChecker",
    "ReadinessResult",
    "WeakSkill",
    "DiagnosticQuestionSelector",
    "DiagnosticQuestion",
    "SessionEngine",
    "AttemptOutcome",
    "SubmissionResult",
]
