"""
Models - Skill graph nodes, proficiency records and session state.

Everything stored (proficiency records, sessions) serializes to plain
JSON-compatible dicts via to_dict() / from_dict().
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import InvalidStateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# ==================== Enums ====================

class ProficiencyLevel(str, Enum):
    UNKNOWN = "unknown"
    LEARNING = "learning"
    PROFICIENT = "proficient"
    MASTERED = "mastered"

    @property
    def is_weak(self) -> bool:
        """Unknown and learning skills still need practice."""
        return self in (ProficiencyLevel.UNKNOWN, ProficiencyLevel.LEARNING)


class SessionScreen(str, Enum):
    ENTRY = "entry"
    DIAGNOSIS = "diagnosis"
    FORK = "fork"
    PRACTICE = "practice"
    MASTERED = "mastered"
    COMPLETED = "completed"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    PAUSED = "paused"

    @property
    def is_ended(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


# ==================== Skill Graph ====================

@dataclass(frozen=True)
class SkillSummary:
    id: str
    name: str
    description: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass(frozen=True)
class SkillNode:
    """One immutable node of the static skill graph."""
    id: str
    name: str
    description: str
    layer1: Tuple[str, ...] = ()  # direct prerequisites
    layer2: Tuple[str, ...] = ()  # pre-materialized deeper prerequisites
    diagnostics_layer1: Tuple[str, ...] = ()
    diagnostics_layer2: Tuple[str, ...] = ()
    category: Optional[str] = None
    keywords: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, skill_id: str, data: dict) -> "SkillNode":
        diagnostics = data.get("diagnostics") or {}
        return cls(
            id=skill_id,
            name=data.get("name", skill_id),
            description=data.get("description", ""),
            layer1=tuple(data.get("layer1") or ()),
            layer2=tuple(data.get("layer2") or ()),
            diagnostics_layer1=tuple(diagnostics.get("layer1") or ()),
            diagnostics_layer2=tuple(diagnostics.get("layer2") or ()),
            category=data.get("category"),
            keywords=tuple(data.get("keywords") or ()),
        )

    def prerequisites(self, layer: int) -> Tuple[str, ...]:
        return self.layer1 if layer == 1 else self.layer2

    def diagnostics(self, layer: int) -> Tuple[str, ...]:
        return self.diagnostics_layer1 if layer == 1 else self.diagnostics_layer2

    def summary(self) -> SkillSummary:
        return SkillSummary(id=self.id, name=self.name, description=self.description)


# ==================== Proficiency ====================

@dataclass
class ProficiencyRecord:
    """Per-(user, skill) practice counters. Absent records read as this zero state."""
    level: ProficiencyLevel = ProficiencyLevel.UNKNOWN
    problems_solved: int = 0
    success_count: int = 0
    last_practiced: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.problems_solved == 0:
            return 0.0
        return self.success_count / self.problems_solved

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "problems_solved": self.problems_solved,
            "success_count": self.success_count,
            "last_practiced": _iso(self.last_practiced),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProficiencyRecord":
        return cls(
            level=ProficiencyLevel(data.get("level", "unknown")),
            problems_solved=int(data.get("problems_solved", 0)),
            success_count=int(data.get("success_count", 0)),
            last_practiced=_parse_dt(data.get("last_practiced")),
        )


# ==================== Practice ====================

@dataclass
class PracticeProblem:
    text: str
    hint: str = ""
    solution: str = ""
    latex: Optional[str] = None

    def to_dict(self) -> dict:
        return {"text": self.text, "hint": self.hint, "solution": self.solution, "latex": self.latex}

    @classmethod
    def from_dict(cls, data: dict) -> "PracticeProblem":
        return cls(
            text=data["text"],
            hint=data.get("hint", ""),
            solution=data.get("solution", ""),
            latex=data.get("latex"),
        )


@dataclass
class ProblemAttempt:
    problem_index: int
    answer: str
    correct: bool
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "problem_index": self.problem_index,
            "answer": self.answer,
            "correct": self.correct,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProblemAttempt":
        return cls(
            problem_index=int(data["problem_index"]),
            answer=data["answer"],
            correct=bool(data["correct"]),
            timestamp=_parse_dt(data.get("timestamp")) or utcnow(),
        )


@dataclass
class SkillBranch:
    """One level of active practice on the session's skill stack."""
    skill_id: str
    name: str
    description: str = ""
    problems: List[PracticeProblem] = field(default_factory=list)
    current_problem_index: int = 0
    success_count: int = 0
    attempts: List[ProblemAttempt] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    mastered: bool = False

    @property
    def success_rate(self) -> float:
        if not self.attempts:
            return 0.0
        return self.success_count / len(self.attempts)

    def is_mastered(self, threshold: float = 0.6) -> bool:
        """Rate threshold AND exposure to the full problem set, jointly."""
        return (
            bool(self.attempts)
            and self.success_rate >= threshold
            and len(self.attempts) >= len(self.problems)
        )

    def to_dict(self) -> dict:
        return {
            "skill_id": self.skill_id,
            "name": self.name,
            "description": self.description,
            "problems": [p.to_dict() for p in self.problems],
            "current_problem_index": self.current_problem_index,
            "success_count": self.success_count,
            "attempts": [a.to_dict() for a in self.attempts],
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "mastered": self.mastered,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SkillBranch":
        return cls(
            skill_id=data["skill_id"],
            name=data.get("name", data["skill_id"]),
            description=data.get("description", ""),
            problems=[PracticeProblem.from_dict(p) for p in data.get("problems", [])],
            current_problem_index=int(data.get("current_problem_index", 0)),
            success_count=int(data.get("success_count", 0)),
            attempts=[ProblemAttempt.from_dict(a) for a in data.get("attempts", [])],
            started_at=_parse_dt(data.get("started_at")) or utcnow(),
            completed_at=_parse_dt(data.get("completed_at")),
            mastered=bool(data.get("mastered", False)),
        )


class SkillStack:
    """
    Bounded stack of practice branches.

    Index 0 is the level closest to the main problem; the top of the stack
    is the branch currently being practiced. The depth limit is enforced
    here, at push time, and nowhere else.
    """

    def __init__(self, max_depth: int = 3, branches: Optional[List[SkillBranch]] = None):
        self.max_depth = max_depth
        self._branches: List[SkillBranch] = list(branches or [])

    def __len__(self) -> int:
        return len(self._branches)

    def __iter__(self) -> Iterator[SkillBranch]:
        return iter(self._branches)

    def __getitem__(self, index: int) -> SkillBranch:
        return self._branches[index]

    @property
    def depth(self) -> int:
        return len(self._branches)

    def can_push(self) -> bool:
        return len(self._branches) < self.max_depth

    def push(self, branch: SkillBranch):
        if not self.can_push():
            raise InvalidStateError(
                f"Maximum branching depth reached ({self.max_depth} levels)"
            )
        self._branches.append(branch)

    def pop(self) -> SkillBranch:
        if not self._branches:
            raise InvalidStateError("No skill branch to return from")
        return self._branches.pop()

    def peek(self) -> Optional[SkillBranch]:
        return self._branches[-1] if self._branches else None

    def to_list(self) -> List[dict]:
        return [b.to_dict() for b in self._branches]


# ==================== Session ====================

@dataclass
class MainProblem:
    text: str
    latex: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {"text": self.text, "latex": self.latex, "image_url": self.image_url}

    @classmethod
    def from_dict(cls, data: dict) -> "MainProblem":
        return cls(text=data["text"], latex=data.get("latex"), image_url=data.get("image_url"))


@dataclass
class Session:
    """A single tutoring interaction, exclusively owned by user_id."""
    session_id: str
    user_id: str
    main_problem: MainProblem
    main_skill_id: Optional[str] = None
    skill_stack: SkillStack = field(default_factory=SkillStack)
    current_screen: SessionScreen = SessionScreen.ENTRY
    status: SessionStatus = SessionStatus.ACTIVE
    branch_history: List[str] = field(default_factory=list)  # skills practiced this session
    total_problems_attempted: int = 0
    total_correct_answers: int = 0
    messages: List[Dict[str, str]] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_message_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def current_branch(self) -> Optional[SkillBranch]:
        return self.skill_stack.peek()

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "main_problem": self.main_problem.to_dict(),
            "main_skill_id": self.main_skill_id,
            "skill_stack": self.skill_stack.to_list(),
            "max_depth": self.skill_stack.max_depth,
            "current_screen": self.current_screen.value,
            "status": self.status.value,
            "branch_history": list(self.branch_history),
            "total_problems_attempted": self.total_problems_attempted,
            "total_correct_answers": self.total_correct_answers,
            "messages": list(self.messages),
            "created_at": _iso(self.created_at),
            "last_message_at": _iso(self.last_message_at),
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        stack = SkillStack(
            max_depth=int(data.get("max_depth", 3)),
            branches=[SkillBranch.from_dict(b) for b in data.get("skill_stack", [])],
        )
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            main_problem=MainProblem.from_dict(data["main_problem"]),
            main_skill_id=data.get("main_skill_id"),
            skill_stack=stack,
            current_screen=SessionScreen(data.get("current_screen", "entry")),
            status=SessionStatus(data.get("status", "active")),
            branch_history=list(data.get("branch_history", [])),
            total_problems_attempted=int(data.get("total_problems_attempted", 0)),
            total_correct_answers=int(data.get("total_correct_answers", 0)),
            messages=list(data.get("messages", [])),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            last_message_at=_parse_dt(data.get("last_message_at")) or utcnow(),
            completed_at=_parse_dt(data.get("completed_at")),
        )
