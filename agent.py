"""
Diagnosis Agent - LangGraph flow that decides how to start on a main problem.

    identify_skill -> select_questions -> check_readiness -> decide_branch

identify_skill asks the LLM which skills the problem exercises. If nothing
usable comes back the flow ends early with no questions. The rest of the
flow is deterministic and reads only the skill graph and proficiency ledger.
"""

import logging
from typing import TypedDict, Optional, List

from langgraph.graph import StateGraph, END

from learning.branching import (
    alternative_help_message,
    branch_message,
    can_branch_deeper,
    select_branch_skill,
    should_branch,
    should_offer_alternative_help,
    valid_branch_options,
    weak_skills_for_branching,
)
from learning.errors import ExternalServiceTimeout
from learning.stuck_detection import analyze_stuck_level, describe_stuck_level

logger = logging.getLogger(__name__)


# ==================== State Definition ====================

class DiagnosisState(TypedDict):
    """State that flows through the graph."""
    user_id: str
    problem_text: str
    image_url: Optional[str]
    depth: int  # current stack depth of the session
    max_depth: int
    current_skill_id: Optional[str]  # top branch skill, if any
    branch_history: List[str]
    student_response: str
    incorrect_attempts: int
    primary_skill: Optional[str]
    required_skills: List[str]
    reasoning: str
    diagnostic_questions: List[dict]
    readiness: Optional[dict]
    weak_skill_ids: List[str]
    branch_decision: Optional[dict]
    branch_skill: Optional[dict]
    branch_message: Optional[str]  # offer to branch, or alternative help at max depth


class DiagnosisAgent:
    """
    Runs the diagnosis graph for a session's main problem.

    Args:
        engine: SessionEngine (sessions, skill graph, proficiency tracker)
        identifier: SkillIdentifier
        selector: DiagnosticQuestionSelector
        checker: PrerequisiteChecker
    """

    def __init__(self, engine, identifier, selector, checker):
        self.engine = engine
        self.skill_graph = engine.skill_graph
        self.tracker = engine.tracker
        self.identifier = identifier
        self.selector = selector
        self.checker = checker
        self.graph = None  # Lazy initialization

    # ==================== Node Functions ====================

    def identify_skill_node(self, state: DiagnosisState) -> dict:
        """Primary and required skills for the problem. A timeout yields none."""
        try:
            identification = self.identifier.identify(state["problem_text"], state["image_url"])
        except ExternalServiceTimeout as e:
            logger.warning(f"[DiagnosisAgent] Skill identification timed out, continuing without skills: {e}")
            return {"primary_skill": None, "required_skills": [], "reasoning": ""}

        return {
            "primary_skill": identification.primary_skill,
            "required_skills": identification.required_skills,
            "reasoning": identification.reasoning,
        }

    def select_questions_node(self, state: DiagnosisState) -> dict:
        primary = state["primary_skill"]
        fallback = next((s for s in state["required_skills"] if s != primary), None)
        questions = self.selector.select_diagnostic_questions(primary, fallback)
        return {"diagnostic_questions": [q.to_dict() for q in questions]}

    def check_readiness_node(self, state: DiagnosisState) -> dict:
        readiness = self.checker.check_readiness(state["user_id"], state["primary_skill"])
        return {
            "readiness": readiness.to_dict(),
            "weak_skill_ids": [s.id for s in readiness.weak_skills],
        }

    def decide_branch_node(self, state: DiagnosisState) -> dict:
        """
        Whether to branch now, and into which prerequisite.

        A failed layer-1 readiness check counts as a reason to branch even
        when the learner has not answered anything yet. With the stack full
        no branch is proposed and alternative help is offered instead.
        """
        proficiencies = self.tracker.get_all_proficiencies(state["user_id"])
        required = state["required_skills"] or [state["primary_skill"]]

        decision = should_branch(
            state["student_response"], required, proficiencies, state["incorrect_attempts"]
        )

        candidates = list(state["weak_skill_ids"])
        for skill_id in weak_skills_for_branching(
            state["current_skill_id"], required, self.skill_graph, proficiencies, state["depth"]
        ):
            if skill_id not in candidates:
                candidates.append(skill_id)
        options = valid_branch_options(candidates, state["branch_history"])

        selection = None
        message = None
        if decision.should_branch or not state["readiness"]["ready"]:
            if should_offer_alternative_help(state["depth"], state["max_depth"]):
                stuck_on = state["current_skill_id"] or state["primary_skill"]
                message = alternative_help_message(self.skill_graph.get_skill(stuck_on).name)
            elif can_branch_deeper(state["depth"], state["max_depth"]):
                selection = select_branch_skill(options, self.skill_graph, state["depth"], proficiencies)
                if selection:
                    message = branch_message(selection.skill_name, selection.reason)

        return {
            "branch_decision": decision.to_dict(),
            "branch_skill": selection.to_dict() if selection else None,
            "branch_message": message,
        }

    # ==================== Routing Functions ====================

    @staticmethod
    def route_after_identify(state: DiagnosisState) -> str:
        if state["primary_skill"] is None:
            return "end"
        return "select_questions"

    # ==================== Build the Graph ====================

    def create_graph(self):
        """Build and compile the LangGraph state machine."""
        graph = StateGraph(DiagnosisState)

        graph.add_node("identify_skill", self.identify_skill_node)
        graph.add_node("select_questions", self.select_questions_node)
        graph.add_node("check_readiness", self.check_readiness_node)
        graph.add_node("decide_branch", self.decide_branch_node)

        graph.set_entry_point("identify_skill")

        graph.add_conditional_edges(
            "identify_skill",
            self.route_after_identify,
            {
                "select_questions": "select_questions",
                "end": END
            }
        )
        graph.add_edge("select_questions", "check_readiness")
        graph.add_edge("check_readiness", "decide_branch")
        graph.add_edge("decide_branch", END)

        return graph.compile()

    def _ensure_graph(self):
        if self.graph is None:
            self.graph = self.create_graph()

    # ==================== Agent Interface ====================

    def diagnose(
        self,
        session_id: str,
        user_id: Optional[str] = None,
        student_response: str = "",
        incorrect_attempts: int = 0
    ) -> dict:
        """
        Diagnose a session's main problem and move the session to diagnosis.

        Paused or ended sessions are rejected before any LLM call. Service
        errors other than a skill-identification timeout propagate before
        the session is touched.

        Returns:
            Dict with primary_skill, required_skills, diagnostic_questions,
            readiness, branch_decision, branch_skill, branch_message and stuck_level
        """
        session = self.engine.load_session(session_id, user_id)
        self.engine.require_active(session)

        self._ensure_graph()
        branch = session.current_branch
        state = DiagnosisState(
            user_id=session.user_id,
            problem_text=session.main_problem.text,
            image_url=session.main_problem.image_url,
            depth=session.skill_stack.depth,
            max_depth=self.engine.max_depth,
            current_skill_id=branch.skill_id if branch else None,
            branch_history=list(session.branch_history),
            student_response=student_response or "",
            incorrect_attempts=incorrect_attempts,
            primary_skill=None,
            required_skills=[],
            reasoning="",
            diagnostic_questions=[],
            readiness=None,
            weak_skill_ids=[],
            branch_decision=None,
            branch_skill=None,
            branch_message=None,
        )
        result = self.graph.invoke(state)

        self.engine.begin_diagnosis(session_id, main_skill_id=result["primary_skill"])

        stuck_level = analyze_stuck_level(session.messages)
        logger.info(
            f"[DiagnosisAgent] {session_id}: primary={result['primary_skill']} "
            f"questions={len(result['diagnostic_questions'])} stuck={describe_stuck_level(stuck_level)}"
        )

        return {
            "session_id": session_id,
            "primary_skill": result["primary_skill"],
            "required_skills": result["required_skills"],
            "reasoning": result["reasoning"],
            "diagnostic_questions": result["diagnostic_questions"],
            "readiness": result["readiness"],
            "branch_decision": result["branch_decision"],
            "branch_skill": result["branch_skill"],
            "branch_message": result["branch_message"],
            "stuck_level": stuck_level,
        }
