"""
Exceptions raised by the tutoring engine.

Only ``SessionNotFound``, ``TopicNotFound``, ``NoGoalsError`` and
``PersistenceError`` reach callers. ``UpstreamGenerationError`` is caught by
whichever component issued the generation call and replaced with fallback
content.
"""

from __future__ import annotations


class TutorError(Exception):
    """Base class for tutoring engine errors."""


class SessionNotFound(TutorError):
    """No active session is registered for the (user, topic) pair."""

    def __init__(self, user_id: str, topic_id: str):
        self.user_id = user_id
        self.topic_id = topic_id
        super().__init__(f"No active session found for user={user_id} topic={topic_id}")


class TopicNotFound(TutorError):
    def __init__(self, topic_id: str):
        self.topic_id = topic_id
        super().__init__(f"Topic with ID {topic_id} not found")


class NoGoalsError(TutorError):
    def __init__(self, topic_id: str):
        self.topic_id = topic_id
        super().__init__(f"No goals found for topic {topic_id}")


class GoalNotFound(TutorError):
    def __init__(self, goal_id: str):
        self.goal_id = goal_id
        super().__init__(f"Goal with ID {goal_id} not found")


class UpstreamGenerationError(TutorError):
    """The generation capability failed, timed out, or returned unusable output."""


class PersistenceError(TutorError):
    """A persistence collaborator failed; propagated unchanged."""
