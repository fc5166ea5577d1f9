"""
Config - Environment-driven settings and the process-wide skill graph.

Environment (read from .env when present):
    REDIS_HOST / REDIS_PORT / REDIS_PASSWORD / REDIS_DB
    STORE_BACKEND        -> "redis" (default) or "memory"
    SKILL_GRAPH_PATH     -> JSON skill graph (default data/skill_graph.json)
    OPENAI_MODEL         -> model used by the judge and skill identifier
    LLM_TIMEOUT_SECONDS  -> hard timeout for every LLM call
    LOG_LEVEL            -> root log level for the API process
"""

import os
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

STORE_BACKEND = os.getenv("STORE_BACKEND", "redis").lower()

SKILL_GRAPH_PATH = Path(os.getenv("SKILL_GRAPH_PATH", str(BASE_DIR / "data" / "skill_graph.json")))

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", 10))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ==================== Domain Constants ====================

MAX_STACK_DEPTH = 3  # main-problem level + two nested branches
MASTERY_THRESHOLD = 0.6  # branch mastery: 60% over the full problem set
MAX_DIAGNOSTIC_QUESTIONS = 3


@lru_cache(maxsize=1)
def get_skill_graph():
    """Load the skill graph once per process."""
    from learning.skill_graph import SkillGraph

    return SkillGraph.load(SKILL_GRAPH_PATH)
