"""
Session Engine - Recursive practice sessions over a bounded skill stack.

Screens:
    entry -> diagnosis -> fork -> practice -> mastered -> completed

    entry      main problem submitted
    diagnosis  probing for a missing prerequisite
    fork       a prerequisite branch was pushed, practice not started yet
    practice   working through the branch's problem set
    mastered   the top branch met the mastery rule
    completed  session ended

Status (active / paused / completed / abandoned) is tracked separately.
Once a branch is mastered or completed it accepts no further attempts.

Every mutation is a read-modify-write transaction on the session document
(see SessionStore.update). Mutators below only touch the session they are
handed; proficiency updates happen after the session write commits.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

from .errors import InvalidInputError, InvalidStateError, NotFoundError
from .models import (
    MainProblem,
    PracticeProblem,
    ProblemAttempt,
    ProficiencyRecord,
    Session,
    SessionScreen,
    SessionStatus,
    SkillBranch,
    SkillStack,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_STACK_DEPTH = 3  # main-problem level + two nested branches
MASTERY_THRESHOLD = 0.6  # 3/5 correct over the full problem set
MESSAGE_ROLES = ("user", "assistant", "system")


@dataclass
class AttemptOutcome:
    """What one recorded attempt did to the current branch."""
    skill_id: str
    correct: bool
    mastered: bool
    success_rate: float
    attempts: int
    problems: int
    proficiency: Optional[ProficiencyRecord] = None  # None if the ledger update failed

    def to_dict(self) -> dict:
        return {
            "skill_id": self.skill_id,
            "correct": self.correct,
            "mastered": self.mastered,
            "success_rate": self.success_rate,
            "attempts": self.attempts,
            "problems": self.problems,
            "proficiency": self.proficiency.to_dict() if self.proficiency else None,
        }


@dataclass
class SubmissionResult:
    correct: bool
    feedback: str
    outcome: AttemptOutcome
    judged_by_fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "correct": self.correct,
            "feedback": self.feedback,
            "mastered": self.outcome.mastered,
            "judged_by_fallback": self.judged_by_fallback,
            "outcome": self.outcome.to_dict(),
        }


class SessionEngine:
    """
    Orchestrates a tutoring session.

    Args:
        skill_graph: Injected, read-only SkillGraph
        store: SessionStore (Redis or in-memory)
        tracker: ProficiencyTracker updated on every attempt
        judge: AnswerJudge used by submit_answer
    """

    def __init__(self, skill_graph, store, tracker, judge=None,
                 max_depth: int = MAX_STACK_DEPTH, mastery_threshold: float = MASTERY_THRESHOLD):
        self.skill_graph = skill_graph
        self.store = store
        self.tracker = tracker
        self.judge = judge
        self.max_depth = max_depth
        self.mastery_threshold = mastery_threshold

    # ==================== Helpers ====================

    @staticmethod
    def require_active(session: Session):
        if session.status.is_ended:
            raise InvalidStateError(f"Session {session.session_id} has ended")
        if session.status == SessionStatus.PAUSED:
            raise InvalidStateError(f"Session {session.session_id} is paused")

    @staticmethod
    def _require_branch(session: Session) -> SkillBranch:
        branch = session.current_branch
        if branch is None:
            raise InvalidStateError("No active skill branch")
        return branch

    @staticmethod
    def _require_open_branch(session: Session) -> SkillBranch:
        """Top branch, which must not be mastered or completed yet."""
        branch = SessionEngine._require_branch(session)
        if branch.mastered or branch.completed_at is not None:
            raise InvalidStateError(f"Branch {branch.skill_id} is already finalized")
        return branch

    def _mutate(self, session_id: str, mutate: Callable[[Session], T], active: bool = True):
        """Run a mutator in a session transaction, optionally requiring an active session."""
        def guarded(session: Session) -> T:
            if active:
                self.require_active(session)
            return mutate(session)

        return self.store.update(session_id, guarded)

    # ==================== Lifecycle ====================

    def create_session(
        self,
        user_id: str,
        main_problem: MainProblem,
        main_skill_id: Optional[str] = None,
        initial_message: Optional[str] = None
    ) -> Session:
        """
        Start a session for a newly submitted problem.

        Returns:
            The new session, on the entry screen with an empty stack
        """
        if not user_id or not isinstance(user_id, str):
            raise InvalidInputError("user_id is required and must be a non-empty string")
        if main_problem is None or not main_problem.text or not main_problem.text.strip():
            raise InvalidInputError("Problem text is required")
        if main_skill_id is not None and not self.skill_graph.validate_exists(main_skill_id):
            raise NotFoundError(f"Skill not found: {main_skill_id}")

        now = utcnow()
        session = Session(
            session_id=f"session_{uuid.uuid4().hex}",
            user_id=user_id,
            main_problem=main_problem,
            main_skill_id=main_skill_id,
            skill_stack=SkillStack(max_depth=self.max_depth),
            current_screen=SessionScreen.ENTRY,
            status=SessionStatus.ACTIVE,
            created_at=now,
            last_message_at=now,
        )
        if initial_message:
            session.messages.append({"role": "assistant", "content": initial_message, "timestamp": now.isoformat()})

        self.store.create(session)
        logger.info(f"[SessionEngine] Created {session.session_id} for user {user_id}")
        return session

    def load_session(self, session_id: str, user_id: Optional[str] = None) -> Session:
        """
        Load a session.

        Raises:
            NotFoundError: missing, or owned by a different user
        """
        session = self.store.get(session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def end_session(self, session_id: str, abandoned: bool = False) -> Session:
        """Close the session as completed (main problem resolved) or abandoned."""
        def mutate(session: Session):
            if session.status.is_ended:
                raise InvalidStateError(f"Session {session_id} has already ended")
            session.status = SessionStatus.ABANDONED if abandoned else SessionStatus.COMPLETED
            session.current_screen = SessionScreen.COMPLETED
            session.completed_at = utcnow()

        session, _ = self._mutate(session_id, mutate, active=False)
        logger.info(f"[SessionEngine] {session_id} ended: {session.status.value}")
        return session

    def pause_session(self, session_id: str) -> Session:
        def mutate(session: Session):
            session.status = SessionStatus.PAUSED

        session, _ = self._mutate(session_id, mutate)
        return session

    def resume_session(self, session_id: str) -> Session:
        def mutate(session: Session):
            if session.status != SessionStatus.PAUSED:
                raise InvalidStateError(f"Session {session_id} is not paused")
            session.status = SessionStatus.ACTIVE

        session, _ = self._mutate(session_id, mutate, active=False)
        return session

    def begin_diagnosis(self, session_id: str, main_skill_id: Optional[str] = None) -> Session:
        """Move to the diagnosis screen, optionally recording the identified main skill."""
        if main_skill_id is not None and not self.skill_graph.validate_exists(main_skill_id):
            raise NotFoundError(f"Skill not found: {main_skill_id}")

        def mutate(session: Session):
            if main_skill_id is not None:
                session.main_skill_id = main_skill_id
            session.current_screen = SessionScreen.DIAGNOSIS

        session, _ = self._mutate(session_id, mutate)
        return session

    def add_message(self, session_id: str, role: str, content: str) -> Session:
        if role not in MESSAGE_ROLES:
            raise InvalidInputError(f"role must be one of {MESSAGE_ROLES}")
        if not isinstance(content, str):
            raise InvalidInputError("content must be a string")

        def mutate(session: Session):
            if session.status.is_ended:
                raise InvalidStateError(f"Session {session_id} has ended")
            now = utcnow()
            session.messages.append({"role": role, "content": content, "timestamp": now.isoformat()})
            session.last_message_at = now

        session, _ = self._mutate(session_id, mutate, active=False)
        return session

    # ==================== Branching ====================

    def branch_to_skill(
        self,
        session_id: str,
        skill_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Session:
        """
        Push a practice branch for a prerequisite skill.

        Raises:
            NotFoundError: skill not in the graph
            InvalidStateError: the stack is full, or the skill was already
                practiced this session
        """
        skill = self.skill_graph.get_skill(skill_id)

        def mutate(session: Session):
            if skill_id in session.branch_history:
                raise InvalidStateError(f"Skill {skill_id} has already been practiced in this session")

            session.skill_stack.push(SkillBranch(
                skill_id=skill_id,
                name=name or skill.name,
                description=description if description is not None else skill.description,
            ))
            session.branch_history.append(skill_id)
            session.current_screen = SessionScreen.FORK

        session, _ = self._mutate(session_id, mutate)
        logger.info(f"[SessionEngine] {session_id} branched to {skill_id} (depth {session.skill_stack.depth})")
        return session

    def complete_current_branch(self, session_id: str) -> Session:
        """Mark the top branch mastered. It stays on the stack until return_to_parent."""
        def mutate(session: Session):
            branch = self._require_branch(session)
            branch.mastered = True
            branch.completed_at = utcnow()
            session.current_screen = SessionScreen.MASTERED

        session, _ = self._mutate(session_id, mutate)
        return session

    def return_to_parent(self, session_id: str) -> SkillBranch:
        """
        Finalize and pop the top branch.

        Control goes back to the enclosing branch's practice, or to the
        main problem's entry screen when the stack empties.

        Returns:
            The branch that was popped
        """
        def mutate(session: Session) -> SkillBranch:
            branch = session.skill_stack.pop()
            if branch.completed_at is None:
                branch.completed_at = utcnow()

            rate = round(branch.success_rate * 100)
            parent = session.current_branch
            if parent is not None:
                session.current_screen = SessionScreen.PRACTICE
                text = (
                    f"Excellent! Now that you understand {branch.name}, let's continue with "
                    f"{parent.name}. You got {rate}% correct - great progress!"
                )
            else:
                session.current_screen = SessionScreen.ENTRY
                text = (
                    f"Great! You practiced {branch.name} ({rate}% correct). "
                    f"Now let's apply it to your original problem: {session.main_problem.text}"
                )

            now = utcnow()
            session.messages.append({"role": "assistant", "content": text, "timestamp": now.isoformat()})
            session.last_message_at = now
            return branch

        session, branch = self._mutate(session_id, mutate)
        logger.info(
            f"[SessionEngine] {session_id} returned from {branch.skill_id} "
            f"(mastered={branch.mastered}, depth {session.skill_stack.depth})"
        )
        return branch

    # ==================== Practice ====================

    def start_practice(self, session_id: str, problems: List[PracticeProblem]) -> Session:
        """Attach a generated problem set to the top branch."""
        if not problems:
            raise InvalidInputError("problems must be a non-empty list")
        if any(not p.text for p in problems):
            raise InvalidInputError("every problem needs text")

        def mutate(session: Session):
            branch = self._require_branch(session)
            branch.problems = list(problems)
            branch.current_problem_index = 0
            session.current_screen = SessionScreen.PRACTICE

        session, _ = self._mutate(session_id, mutate)
        return session

    def next_problem(self, session_id: str) -> SkillBranch:
        """
        Advance to the next problem of the top branch.

        Past the last problem the branch is finalized: mastered branches
        move the session to the mastered screen, others stay in practice
        with no problems left.
        """
        def mutate(session: Session) -> SkillBranch:
            branch = self._require_branch(session)
            if branch.current_problem_index < len(branch.problems):
                branch.current_problem_index += 1

            if branch.current_problem_index >= len(branch.problems):
                branch.mastered = branch.mastered or branch.is_mastered(self.mastery_threshold)
                if branch.mastered:
                    branch.completed_at = branch.completed_at or utcnow()
                    session.current_screen = SessionScreen.MASTERED
            return branch

        _, branch = self._mutate(session_id, mutate)
        return branch

    def record_attempt(
        self,
        session_id: str,
        answer: str,
        correct: bool,
        problem_index: Optional[int] = None,
        skill_id: Optional[str] = None
    ) -> AttemptOutcome:
        """
        Record an answer on the top branch and update the proficiency ledger.

        Args:
            answer: The learner's answer
            correct: Judged correctness
            problem_index: Problem answered (defaults to the branch's current one)
            skill_id: If given, the top branch must still be this skill

        Returns:
            AttemptOutcome, including the mastery decision

        Raises:
            InvalidStateError: no practice in progress, or the top branch
                was already mastered or completed
        """
        if not isinstance(answer, str):
            raise InvalidInputError("answer must be a string")

        def mutate(session: Session) -> AttemptOutcome:
            branch = self._require_open_branch(session)
            if skill_id is not None and branch.skill_id != skill_id:
                raise InvalidStateError(f"Active branch changed from {skill_id} to {branch.skill_id}")
            if not branch.problems:
                raise InvalidStateError("Practice has not started for this branch")

            index = branch.current_problem_index if problem_index is None else problem_index
            if not 0 <= index < len(branch.problems):
                raise InvalidStateError("No practice problem at this position")

            now = utcnow()
            branch.attempts.append(ProblemAttempt(problem_index=index, answer=answer, correct=correct, timestamp=now))
            if correct:
                branch.success_count += 1
                session.total_correct_answers += 1
            session.total_problems_attempted += 1
            session.last_message_at = now

            branch.mastered = branch.is_mastered(self.mastery_threshold)
            if branch.mastered:
                session.current_screen = SessionScreen.MASTERED

            return AttemptOutcome(
                skill_id=branch.skill_id,
                correct=correct,
                mastered=branch.mastered,
                success_rate=branch.success_rate,
                attempts=len(branch.attempts),
                problems=len(branch.problems),
            )

        session, outcome = self._mutate(session_id, mutate)

        try:
            outcome.proficiency = self.tracker.update_proficiency(session.user_id, outcome.skill_id, correct)
        except Exception as e:
            logger.error(
                f"[SessionEngine] Failed to update proficiency for {session.user_id}/{outcome.skill_id}: {e}",
                exc_info=True,
            )

        logger.info(
            f"[SessionEngine] {session_id} progress on {outcome.skill_id}: "
            f"{outcome.attempts} attempts, {outcome.success_rate:.0%}, mastered={outcome.mastered}"
        )
        return outcome

    def submit_answer(self, session_id: str, problem_index: int, answer: str) -> SubmissionResult:
        """
        Judge a practice answer, then record it.

        The judge degrades to string comparison on its own, so a slow or
        failing LLM never fails the submission.
        """
        if not isinstance(problem_index, int) or isinstance(problem_index, bool) or problem_index < 0:
            raise InvalidInputError("problem_index is required and must be a non-negative integer")
        if not isinstance(answer, str):
            raise InvalidInputError("answer is required and must be a string")
        if self.judge is None:
            raise InvalidStateError("No answer judge configured")

        session = self.load_session(session_id)
        self.require_active(session)
        branch = self._require_open_branch(session)
        if problem_index >= len(branch.problems):
            raise InvalidInputError("Invalid problem index")

        problem = branch.problems[problem_index]
        judgment = self.judge.judge(answer, problem.solution, problem.text)

        outcome = self.record_attempt(
            session_id, answer, judgment.correct,
            problem_index=problem_index, skill_id=branch.skill_id,
        )
        return SubmissionResult(
            correct=judgment.correct,
            feedback=judgment.feedback,
            outcome=outcome,
            judged_by_fallback=judgment.fallback,
        )

    # ==================== Queries ====================

    def current_branch(self, session_id: str) -> Optional[SkillBranch]:
        return self.load_session(session_id).current_branch

    def depth(self, session_id: str) -> int:
        return self.load_session(session_id).skill_stack.depth

    def can_branch_deeper(self, session_id: str) -> bool:
        return self.load_session(session_id).skill_stack.can_push()

    def has_attempted_skill(self, session_id: str, skill_id: str) -> bool:
        return skill_id in self.load_session(session_id).branch_history
