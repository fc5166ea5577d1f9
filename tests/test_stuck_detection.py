"""Tests for learning/stuck_detection.py"""

from learning.stuck_detection import analyze_stuck_level, describe_stuck_level


def user(content):
    return {"role": "user", "content": content}


def assistant(content):
    return {"role": "assistant", "content": content}


def test_no_user_messages():
    assert analyze_stuck_level([]) == 0
    assert analyze_stuck_level([assistant("What is 2 + 2?")]) == 0


def test_engaged_reasoning_is_not_stuck():
    messages = [user("???"), user("I think x equals 4 because 2x = 8, right?")]
    assert analyze_stuck_level(messages) == 0


def test_single_vague_reply_is_slight():
    assert analyze_stuck_level([user("ok")]) == 1


def test_repeated_confusion_is_very_stuck():
    messages = [user("???"), assistant("Try isolating x."), user("???"), user("help")]
    assert analyze_stuck_level(messages) == 3


def test_some_progress_halves_stuck_score():
    assert analyze_stuck_level([user("???"), user("help me solve it")]) == 2


def test_only_recent_messages_count():
    messages = [user("???"), user("???")] + [assistant("hint")] * 5
    assert analyze_stuck_level(messages) == 0


def test_describe_levels():
    assert describe_stuck_level(0).startswith("Not stuck")
    assert describe_stuck_level(2).startswith("Stuck")
    assert "level 3" in describe_stuck_level(3)
