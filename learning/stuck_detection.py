"""
Stuck Detection - Reads recent learner messages and scores how stuck they are.

Levels:
    0-1 -> not stuck / slightly uncertain (vague hints)
    2   -> stuck (more specific guidance)
    3   -> very stuck (concrete, actionable hints)

Only the last five messages are considered, and only the learner's own.
"""

import re
from typing import Dict, List

RECENT_WINDOW = 5
SHORT_RESPONSE = 10
THOUGHTFUL_RESPONSE = 30
REPETITION_SIMILARITY = 0.8
MAX_LEVEL = 3

HELP_KEYWORDS = re.compile(r"(\b(help|stuck|confused|don't know|idk|don't understand|lost|what|huh)\b|\?{2,})", re.I)
REASONING_KEYWORDS = re.compile(
    r"\b(because|so|if|then|would|could|think|believe|maybe|suppose|let me|i see|understand|right|makes sense)\b",
    re.I,
)
ENGAGED_QUESTIONS = re.compile(
    r"\b(why|how|when|where|which|would it|could i|should i|what if|does that mean)\b", re.I
)
MATH_REASONING = re.compile(
    r"\b(equals|multiply|divide|add|subtract|solve|calculate|formula|equation|variable)\b", re.I
)
PUNCTUATION_ONLY = re.compile(r"^[\s?!.]*$")


def _stuck_score(content: str) -> int:
    score = 0
    if len(content) < SHORT_RESPONSE:
        score += 1
    if HELP_KEYWORDS.search(content):
        score += 1
    if PUNCTUATION_ONLY.match(content):
        score += 2
    return score


def _progress_score(content: str) -> int:
    score = 0
    if len(content) >= THOUGHTFUL_RESPONSE:
        score += 1
    for pattern in (REASONING_KEYWORDS, ENGAGED_QUESTIONS, MATH_REASONING):
        if pattern.search(content):
            score += 1
    return score


def _similar(first: str, second: str) -> bool:
    """Jaccard similarity over whitespace-separated words."""
    words1 = set(first.lower().split())
    words2 = set(second.lower().split())
    union = words1 | words2
    if not union:
        return True
    return len(words1 & words2) / len(union) >= REPETITION_SIMILARITY


def analyze_stuck_level(messages: List[Dict[str, str]]) -> int:
    """
    Score how stuck the learner is, from 0 to 3.

    Args:
        messages: Conversation as [{"role": ..., "content": ...}], oldest first
    """
    recent = messages[-RECENT_WINDOW:]
    user_messages = [m.get("content", "").strip() for m in recent if m.get("role") == "user"]
    if not user_messages:
        return 0

    stuck = 0
    progress = 0
    for i, content in enumerate(user_messages):
        stuck += _stuck_score(content)
        progress += _progress_score(content)
        if i > 0 and _similar(content, user_messages[i - 1]):
            stuck += 1

    if progress >= 2:
        return 0

    if progress >= 1 and stuck > 0:
        stuck //= 2

    # Conservative: two indicators before anything beyond vague hints
    if stuck < 2:
        return min(stuck, 1)

    return min(stuck, MAX_LEVEL)


def describe_stuck_level(level: int) -> str:
    if level == 0:
        return "Not stuck - Student just starting or engaged"
    if level == 1:
        return "Slightly uncertain - Use vague hints"
    if level == 2:
        return "Stuck - Provide more specific guidance"
    return f"Very stuck (level {level}) - Give concrete actionable hints"
