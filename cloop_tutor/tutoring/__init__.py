"""
Adaptive tutoring session engine.

Modules:
- models: topics, goals, questions, evaluations, progress and sessions
- errors: exceptions raised to callers
- persistence: storage protocol and the in-memory store
- answer_evaluator: scores answers and summarizes goal performance
- goal_content_manager: goals, question batches and learner progress
- summary: end-of-session report
- session_registry: active sessions and per-session locks
- engine: the session orchestrator state machine
- sweeper: background retirement of idle sessions
"""
from .errors import (
    GoalNotFound,
    NoGoalsError,
    PersistenceError,
    SessionNotFound,
    TopicNotFound,
    TutorError,
    UpstreamGenerationError,
)
from .models import (
    Evaluation,
    Goal,
    GoalProgress,
    Performance,
    Question,
    Session,
    SessionSummary,
    Topic,
)

__all__ = [
    "GoalNotFound",
    "NoGoalsError",
    "PersistenceError",
    "SessionNotFound",
    "TopicNotFound",
    "TutorError",
    "UpstreamGenerationError",
    "Evaluation",
    "Goal",
    "GoalProgress",
    "Performance",
    "Question",
    "Session",
    "SessionSummary",
    "Topic",
]
