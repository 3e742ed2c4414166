"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cloop_tutor.tutoring.errors import UpstreamGenerationError  # noqa: E402
from cloop_tutor.tutoring.models import Goal, Question, Session, Topic  # noqa: E402
from cloop_tutor.tutoring.persistence import InMemoryPersistence  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full session flows)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Test doubles
# =============================================================================


# Prompt fragment -> call kind
PROMPT_KINDS = [
    ("evaluating a student's answer", "evaluate"),
    ("Generate a follow-up question", "follow_up"),
    ("progressive learning goals", "goals"),
    ("questions for the following learning goal", "questions"),
    ("personalized recommendations", "recommendations"),
    ("Explain the learning goal", "explanation"),
]


def prompt_kind(prompt: str) -> str:
    for fragment, kind in PROMPT_KINDS:
        if fragment in prompt:
            return kind
    return "unknown"


class FakeGenerator:
    """
    Scripted stand-in for the generation client.

    Responses are registered per call kind. A kind may map to a single value
    (returned every time), a list (consumed in order, last item repeated), a
    callable taking the prompt, or an exception instance (raised). Kinds
    without a script raise UpstreamGenerationError, exercising fallbacks.
    """

    def __init__(self, **scripts):
        self.scripts = {}
        self.calls = []
        for kind, script in scripts.items():
            self.script(kind, script)

    def script(self, kind, script):
        self.scripts[kind] = deque(script) if isinstance(script, list) else script

    def calls_of(self, kind):
        return [c for c in self.calls if c["kind"] == kind]

    def _respond(self, prompt, model, temperature, max_tokens):
        kind = prompt_kind(prompt)
        self.calls.append(
            {
                "kind": kind,
                "prompt": prompt,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if kind not in self.scripts:
            raise UpstreamGenerationError(f"no scripted response for {kind}")

        script = self.scripts[kind]
        if isinstance(script, deque):
            value = script.popleft() if len(script) > 1 else script[0]
        else:
            value = script

        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(prompt)
            if isinstance(value, Exception):
                raise value
        return value

    async def complete_json(self, prompt, *, model=None, temperature=0.7, max_tokens=800):
        return self._respond(prompt, model, temperature, max_tokens)

    async def complete_text(self, prompt, *, model=None, temperature=0.7, max_tokens=200):
        return self._respond(prompt, model, temperature, max_tokens)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


def evaluation_payload(is_correct=True, **overrides):
    payload = {
        "is_correct": is_correct,
        "score_percent": 100 if is_correct else 30,
        "error_type": "None" if is_correct else "Conceptual",
        "diff_html": "" if is_correct else "<del>wrong</del> <ins>right</ins>",
        "complete_answer": "The full answer",
        "feedback": "Great job!" if is_correct else "Not quite.",
        "needs_resources": False,
    }
    payload.update(overrides)
    return payload


def grade_by_answer(correct_answers, needs_resources=False):
    """Evaluation script: correct iff the student's answer is in ``correct_answers``."""

    def grade(prompt):
        line = next(ln for ln in prompt.splitlines() if ln.startswith("Student's Answer:"))
        answer = line.split(":", 1)[1].strip()
        if answer in correct_answers:
            return evaluation_payload(True)
        return evaluation_payload(False, needs_resources=needs_resources)

    return grade


def make_session(user_id, topic_id, when):
    """Single-goal, single-question session last active at ``when``."""
    topic = Topic(id=topic_id, title="Photosynthesis")
    goal = Goal(id="g1", topic_id=topic_id, title="Light reactions", order=1)
    return Session(
        user_id=user_id,
        topic_id=topic_id,
        topic=topic,
        goals=[goal],
        current_goal=goal,
        questions=[Question(id="q1", goal_id="g1", question="Q?", answer="A")],
        start_time=when,
        last_activity_time=when,
    )


def goals_payload(*titles):
    return {
        "goals": [
            {"title": title, "description": f"About {title}", "order": i + 1}
            for i, title in enumerate(titles)
        ]
    }


def questions_payload(count, prefix="Q"):
    return {
        "questions": [
            {"question": f"{prefix}{i + 1}?", "answer": f"A{i + 1}", "difficulty": "easy"}
            for i in range(count)
        ]
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def topic():
    return Topic(id="t1", title="Photosynthesis", content="How plants turn light into sugar.")


@pytest.fixture
def persistence(topic):
    store = InMemoryPersistence()
    store.add_topic(topic)
    return store
