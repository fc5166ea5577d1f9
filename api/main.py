"""
FastAPI Backend for Stepback - Recursive prerequisite tutoring.

Sessions branch into prerequisite practice when the learner is stuck and
return to the parent problem once the prerequisite is mastered.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from agent import DiagnosisAgent
from judging import AnswerJudge, SkillIdentifier
from learning import (
    DiagnosticQuestionSelector,
    MainProblem,
    PracticeProblem,
    PrerequisiteChecker,
    ProficiencyLevel,
    ProficiencyTracker,
    SessionEngine,
    TutorError,
)
from redis_store import create_stores

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

# ==================== Initialize ====================

app = FastAPI(
    title="Stepback API",
    description="Recursive prerequisite tutoring",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize shared components
skill_graph = config.get_skill_graph()
proficiency_store, session_store = create_stores()
tracker = ProficiencyTracker(proficiency_store)
checker = PrerequisiteChecker(skill_graph, tracker)
selector = DiagnosticQuestionSelector(skill_graph, max_questions=config.MAX_DIAGNOSTIC_QUESTIONS)
engine = SessionEngine(
    skill_graph,
    session_store,
    tracker,
    judge=AnswerJudge(),
    max_depth=config.MAX_STACK_DEPTH,
    mastery_threshold=config.MASTERY_THRESHOLD,
)
diagnosis_agent = DiagnosisAgent(engine, SkillIdentifier(skill_graph), selector, checker)


@app.exception_handler(TutorError)
async def tutor_error_handler(request: Request, exc: TutorError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ==================== Request Models ====================

class CreateSessionRequest(BaseModel):
    user_id: str
    problem_text: str
    latex: Optional[str] = None
    image_url: Optional[str] = None
    main_skill_id: Optional[str] = None
    initial_message: Optional[str] = None


class DiagnoseRequest(BaseModel):
    user_id: Optional[str] = None
    student_response: str = ""
    incorrect_attempts: int = 0


class BranchRequest(BaseModel):
    skill_id: str
    name: Optional[str] = None
    description: Optional[str] = None


class ProblemModel(BaseModel):
    text: str
    hint: str = ""
    solution: str = ""
    latex: Optional[str] = None


class PracticeRequest(BaseModel):
    problems: List[ProblemModel]


class AnswerRequest(BaseModel):
    problem_index: int
    answer: str


class AttemptRequest(BaseModel):
    answer: str
    correct: bool


class MessageRequest(BaseModel):
    role: str
    content: str


class EndSessionRequest(BaseModel):
    abandoned: bool = False


class CheckPrerequisitesRequest(BaseModel):
    user_id: str
    skill_id: str


# ==================== Endpoints ====================

@app.get("/")
def root():
    """Health check."""
    return {
        "status": "ok",
        "service": "Stepback API",
        "version": "1.0.0",
        "skills": len(skill_graph),
    }


# ---------- Sessions ----------

@app.post("/sessions")
def create_session(request: CreateSessionRequest):
    session = engine.create_session(
        request.user_id,
        MainProblem(text=request.problem_text, latex=request.latex, image_url=request.image_url),
        main_skill_id=request.main_skill_id,
        initial_message=request.initial_message,
    )
    return session.to_dict()


@app.get("/sessions/{session_id}")
def get_session(session_id: str, user_id: Optional[str] = None):
    return engine.load_session(session_id, user_id).to_dict()


@app.post("/sessions/{session_id}/diagnose")
def diagnose(session_id: str, request: DiagnoseRequest):
    """Identify skills, pick diagnostic questions and decide whether to branch."""
    return diagnosis_agent.diagnose(
        session_id,
        user_id=request.user_id,
        student_response=request.student_response,
        incorrect_attempts=request.incorrect_attempts,
    )


@app.post("/sessions/{session_id}/branch")
def branch(session_id: str, request: BranchRequest):
    return engine.branch_to_skill(session_id, request.skill_id, request.name, request.description).to_dict()


@app.post("/sessions/{session_id}/practice")
def start_practice(session_id: str, request: PracticeRequest):
    problems = [
        PracticeProblem(text=p.text, hint=p.hint, solution=p.solution, latex=p.latex)
        for p in request.problems
    ]
    return engine.start_practice(session_id, problems).to_dict()


@app.post("/sessions/{session_id}/answers")
def submit_answer(session_id: str, request: AnswerRequest):
    """Judge and record a practice answer."""
    return engine.submit_answer(session_id, request.problem_index, request.answer).to_dict()


@app.post("/sessions/{session_id}/attempts")
def record_attempt(session_id: str, request: AttemptRequest):
    """Record an answer that was judged elsewhere."""
    return engine.record_attempt(session_id, request.answer, request.correct).to_dict()


@app.post("/sessions/{session_id}/next")
def next_problem(session_id: str):
    branch = engine.next_problem(session_id)
    return branch.to_dict()


@app.post("/sessions/{session_id}/complete-branch")
def complete_branch(session_id: str):
    return engine.complete_current_branch(session_id).to_dict()


@app.post("/sessions/{session_id}/return")
def return_to_parent(session_id: str):
    returned = engine.return_to_parent(session_id)
    return {
        "returned": returned.to_dict(),
        "session": engine.load_session(session_id).to_dict(),
    }


@app.post("/sessions/{session_id}/messages")
def add_message(session_id: str, request: MessageRequest):
    return engine.add_message(session_id, request.role, request.content).to_dict()


@app.post("/sessions/{session_id}/pause")
def pause_session(session_id: str):
    return engine.pause_session(session_id).to_dict()


@app.post("/sessions/{session_id}/resume")
def resume_session(session_id: str):
    return engine.resume_session(session_id).to_dict()


@app.post("/sessions/{session_id}/end")
def end_session(session_id: str, request: Optional[EndSessionRequest] = None):
    abandoned = request.abandoned if request else False
    return engine.end_session(session_id, abandoned=abandoned).to_dict()


# ---------- Skills ----------

@app.post("/skills/check-prerequisites")
def check_prerequisites(request: CheckPrerequisitesRequest):
    result = checker.check_readiness(request.user_id, request.skill_id)
    return {"skill_id": request.skill_id, **result.to_dict()}


@app.get("/skills")
def list_skills():
    return {"skills": [s.to_dict() for s in skill_graph.get_all_skills()], "stats": skill_graph.get_stats()}


@app.get("/skills/{skill_id}")
def get_skill(skill_id: str):
    skill = skill_graph.get_skill(skill_id)
    return {
        **skill.summary().to_dict(),
        "category": skill.category,
        "layer1": [p.to_dict() for p in skill_graph.get_prerequisites(skill_id, 1)],
        "layer2": [p.to_dict() for p in skill_graph.get_prerequisites(skill_id, 2)],
        "dependents": skill_graph.get_dependents(skill_id),
        "depth": skill_graph.compute_depth(skill_id),
    }


# ---------- Proficiency ----------

@app.get("/users/{user_id}/proficiency")
def get_proficiency(user_id: str, level: Optional[ProficiencyLevel] = None):
    if level is not None:
        records = tracker.get_proficiency_by_level(user_id, level)
    else:
        records = tracker.get_all_proficiencies(user_id)
    return {"user_id": user_id, "proficiency": {k: v.to_dict() for k, v in records.items()}}


@app.post("/users/{user_id}/proficiency/{skill_id}/reset")
def reset_proficiency(user_id: str, skill_id: str):
    skill_graph.get_skill(skill_id)
    return {"user_id": user_id, "skill_id": skill_id, **tracker.reset_proficiency(user_id, skill_id).to_dict()}


# ==================== Run ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
