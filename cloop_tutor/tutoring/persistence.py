"""
Persistence collaborator for the tutoring engine.

The engine never talks to a database directly; it consumes the ``Persistence``
protocol below. ``InMemoryPersistence`` is the reference store used by the CLI
and the test-suite. Production deployments plug in their own implementation
over whatever schema the app uses.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

from loguru import logger

from .models import Goal, GoalProgress, Question, Topic


class Persistence(Protocol):
    """Storage operations consumed by the tutoring engine.

    All ``get_*`` calls are idempotent reads. ``save_*``/``update_*`` calls
    return what was persisted. Implementations signal failures by raising
    ``PersistenceError``.
    """

    async def get_topic(self, topic_id: str) -> Topic | None: ...

    async def get_goals_for_topic(self, topic_id: str) -> list[Goal]: ...

    async def save_goals_for_topic(self, topic_id: str, goals: list[Goal]) -> list[Goal]: ...

    async def get_goal(self, goal_id: str) -> Goal | None: ...

    async def get_user_progress(self, user_id: str, topic_id: str) -> GoalProgress | None: ...

    async def update_user_progress(self, progress: GoalProgress) -> GoalProgress: ...

    async def get_questions_for_goal(self, goal_id: str) -> list[Question]: ...

    async def save_questions_for_goal(
        self, goal_id: str, questions: list[Question]
    ) -> list[Question]: ...

    async def mark_session_inactive(self, user_id: str, topic_id: str) -> None: ...

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Scope in which a multi-step write either fully applies or not at all."""
        ...


class InMemoryPersistence:
    """
    Dictionary-backed ``Persistence`` implementation.

    Records are copied on the way in and out so callers cannot mutate stored
    state behind the store's back. ``transaction()`` snapshots the progress
    table and restores it if the block raises.
    """

    def __init__(self) -> None:
        self._topics: dict[str, Topic] = {}
        self._goals: dict[str, list[Goal]] = {}
        self._questions: dict[str, list[Question]] = {}
        self._progress: dict[tuple[str, str], GoalProgress] = {}
        self.inactive_sessions: list[tuple[str, str]] = []

    # ------------------------------------------------------------------ topics

    def add_topic(self, topic: Topic) -> Topic:
        self._topics[topic.id] = copy.deepcopy(topic)
        return topic

    async def get_topic(self, topic_id: str) -> Topic | None:
        topic = self._topics.get(topic_id)
        return copy.deepcopy(topic) if topic else None

    # ------------------------------------------------------------------- goals

    async def get_goals_for_topic(self, topic_id: str) -> list[Goal]:
        return copy.deepcopy(self._goals.get(topic_id, []))

    async def save_goals_for_topic(self, topic_id: str, goals: list[Goal]) -> list[Goal]:
        stored = sorted(copy.deepcopy(goals), key=lambda g: g.order)
        self._goals[topic_id] = stored
        return copy.deepcopy(stored)

    async def get_goal(self, goal_id: str) -> Goal | None:
        for goals in self._goals.values():
            for goal in goals:
                if goal.id == goal_id:
                    return copy.deepcopy(goal)
        return None

    # ---------------------------------------------------------------- progress

    async def get_user_progress(self, user_id: str, topic_id: str) -> GoalProgress | None:
        progress = self._progress.get((user_id, topic_id))
        return copy.deepcopy(progress) if progress else None

    async def update_user_progress(self, progress: GoalProgress) -> GoalProgress:
        self._progress[(progress.user_id, progress.topic_id)] = copy.deepcopy(progress)
        return copy.deepcopy(progress)

    # --------------------------------------------------------------- questions

    async def get_questions_for_goal(self, goal_id: str) -> list[Question]:
        return copy.deepcopy(self._questions.get(goal_id, []))

    async def save_questions_for_goal(
        self, goal_id: str, questions: list[Question]
    ) -> list[Question]:
        self._questions[goal_id] = copy.deepcopy(questions)
        return copy.deepcopy(questions)

    # ---------------------------------------------------------------- sessions

    async def mark_session_inactive(self, user_id: str, topic_id: str) -> None:
        self.inactive_sessions.append((user_id, topic_id))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy(self._progress)
        try:
            yield
        except Exception:  # Intentionally broad - restore on any error before re-raising
            self._progress = snapshot
            logger.debug("In-memory transaction rolled back")
            raise
