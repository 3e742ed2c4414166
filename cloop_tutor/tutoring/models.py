"""
Data model for the adaptive tutoring engine.

Dataclasses for topics, goals, questions, evaluations and the per-learner
progress aggregate. ``to_dict`` produces the camelCase wire shape handed back
to the HTTP layer; ``from_dict`` accepts both camelCase and snake_case so the
persistence collaborator can round-trip records however it stores them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Classification of what went wrong in an answer."""

    SPELLING = "Spelling"
    GRAMMAR = "Grammar"
    CONCEPTUAL = "Conceptual"
    FACTUAL = "Factual"
    INCOMPLETE = "Incomplete"
    NONE = "None"


class SessionStatus(str, Enum):
    """Lifecycle of an in-memory session."""

    ACTIVE = "active"
    COMPLETED = "completed"


class ProgressStatus(str, Enum):
    """Lifecycle of a persisted goal progress aggregate."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BubbleColor(str, Enum):
    GREEN = "green"
    RED = "red"


FEEDBACK_OPTIONS = ["Got it", "Explain"]
OPTION_GOT_IT = "Got it"
OPTION_EXPLAIN = "Explain"


def _pick(data: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    """Read a key in either naming convention."""
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _parse_dt(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Curriculum
# =============================================================================


@dataclass
class Topic:
    """A topic from the curriculum; created outside this engine."""

    id: str
    title: str
    content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Topic:
        return cls(
            id=str(data["id"]),
            title=data["title"],
            content=data.get("content", ""),
        )


@dataclass
class Goal:
    """A named learning objective within a topic."""

    id: str
    topic_id: str
    title: str
    description: str = ""
    order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topicId": self.topic_id,
            "title": self.title,
            "description": self.description,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Goal:
        return cls(
            id=str(data["id"]),
            topic_id=str(_pick(data, "topicId", "topic_id", "")),
            title=data["title"],
            description=data.get("description", ""),
            order=int(data.get("order", 0)),
        )


@dataclass
class Question:
    """A single question in a goal's batch, with its expected answer."""

    id: str
    goal_id: str
    question: str
    answer: str
    difficulty: str = "easy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goalId": self.goal_id,
            "question": self.question,
            "answer": self.answer,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        return cls(
            id=str(data["id"]),
            goal_id=str(_pick(data, "goalId", "goal_id", "")),
            question=data["question"],
            answer=data["answer"],
            difficulty=data.get("difficulty", "easy"),
        )


# =============================================================================
# Evaluation
# =============================================================================


@dataclass
class Evaluation:
    """Scored, annotated verdict on one learner answer."""

    is_correct: bool
    score_percent: int
    error_type: ErrorType
    diff_html: str
    complete_answer: str
    feedback: str
    bubble_color: BubbleColor
    needs_resources: bool
    options: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "is_correct": self.is_correct,
            "score_percent": self.score_percent,
            "error_type": self.error_type.value,
            "diff_html": self.diff_html,
            "complete_answer": self.complete_answer,
            "feedback": self.feedback,
            "bubble_color": self.bubble_color.value,
            "needs_resources": self.needs_resources,
        }
        if self.options is not None:
            data["options"] = list(self.options)
        return data


@dataclass(frozen=True)
class AnswerRecord:
    """One answered question; appended to the session, never mutated."""

    question_id: str
    question: str
    user_answer: str
    evaluation: Evaluation
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class Performance:
    """Aggregate result of one goal's answers."""

    total_questions: int
    correct_answers: int
    accuracy_percent: int
    is_mastered: bool
    most_common_error: str | None = None
    error_counts: dict[str, int] = field(default_factory=dict)

    @property
    def needs_more_practice(self) -> bool:
        return not self.is_mastered

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalQuestions": self.total_questions,
            "correctAnswers": self.correct_answers,
            "accuracyPercent": self.accuracy_percent,
            "isMastered": self.is_mastered,
            "mostCommonError": self.most_common_error,
            "errorCounts": dict(self.error_counts),
            "needsMorePractice": self.needs_more_practice,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Performance:
        return cls(
            total_questions=int(_pick(data, "totalQuestions", "total_questions", 0)),
            correct_answers=int(_pick(data, "correctAnswers", "correct_answers", 0)),
            accuracy_percent=int(_pick(data, "accuracyPercent", "accuracy_percent", 0)),
            is_mastered=bool(_pick(data, "isMastered", "is_mastered", False)),
            most_common_error=_pick(data, "mostCommonError", "most_common_error"),
            error_counts=dict(_pick(data, "errorCounts", "error_counts", {}) or {}),
        )


@dataclass
class OverallPerformance:
    """Running totals across every completed goal of a topic."""

    total_questions: int = 0
    correct_answers: int = 0
    accuracy_percent: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalQuestions": self.total_questions,
            "correctAnswers": self.correct_answers,
            "accuracyPercent": self.accuracy_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OverallPerformance:
        return cls(
            total_questions=int(_pick(data, "totalQuestions", "total_questions", 0)),
            correct_answers=int(_pick(data, "correctAnswers", "correct_answers", 0)),
            accuracy_percent=int(_pick(data, "accuracyPercent", "accuracy_percent", 0)),
        )


@dataclass
class GoalProgress:
    """Persisted per-(user, topic) progress through the goal list."""

    user_id: str
    topic_id: str
    completed_goals: list[str] = field(default_factory=list)
    goal_performances: dict[str, Performance] = field(default_factory=dict)
    overall_performance: OverallPerformance = field(default_factory=OverallPerformance)
    started_at: datetime = field(default_factory=datetime.now)
    last_accessed_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    status: ProgressStatus = ProgressStatus.IN_PROGRESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "topicId": self.topic_id,
            "completedGoals": list(self.completed_goals),
            "goalPerformances": {
                goal_id: perf.to_dict() for goal_id, perf in self.goal_performances.items()
            },
            "overallPerformance": self.overall_performance.to_dict(),
            "startedAt": _iso(self.started_at),
            "lastAccessedAt": _iso(self.last_accessed_at),
            "completedAt": _iso(self.completed_at),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GoalProgress:
        performances = _pick(data, "goalPerformances", "goal_performances", {}) or {}
        overall = _pick(data, "overallPerformance", "overall_performance", {}) or {}
        return cls(
            user_id=str(_pick(data, "userId", "user_id")),
            topic_id=str(_pick(data, "topicId", "topic_id")),
            completed_goals=list(_pick(data, "completedGoals", "completed_goals", []) or []),
            goal_performances={
                goal_id: Performance.from_dict(perf) for goal_id, perf in performances.items()
            },
            overall_performance=OverallPerformance.from_dict(overall),
            started_at=_parse_dt(_pick(data, "startedAt", "started_at")) or datetime.now(),
            last_accessed_at=_parse_dt(_pick(data, "lastAccessedAt", "last_accessed_at"))
            or datetime.now(),
            completed_at=_parse_dt(_pick(data, "completedAt", "completed_at")),
            status=ProgressStatus(data.get("status", ProgressStatus.IN_PROGRESS.value)),
        )


# =============================================================================
# Session
# =============================================================================


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values."""
    return int(value + 0.5)


def session_key(user_id: str, topic_id: str) -> str:
    """Composite registry key for a (learner, topic) pair."""
    return f"{user_id}_{topic_id}"


@dataclass
class Session:
    """Live state of one learner working through one topic's goals."""

    user_id: str
    topic_id: str
    topic: Topic
    goals: list[Goal]
    current_goal: Goal
    questions: list[Question]
    current_question_index: int = 0
    answers: list[AnswerRecord] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    last_activity_time: datetime = field(default_factory=datetime.now)
    status: SessionStatus = SessionStatus.ACTIVE

    @property
    def key(self) -> str:
        return session_key(self.user_id, self.topic_id)

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def current_goal_position(self) -> int:
        """1-based position of the current goal in the topic's goal list."""
        for i, goal in enumerate(self.goals):
            if goal.id == self.current_goal.id:
                return i + 1
        return 0

    def elapsed_minutes(self, now: datetime | None = None) -> int:
        delta = (now or datetime.now()) - self.start_time
        return round_half_up(delta.total_seconds() / 60)


@dataclass
class Resources:
    """Supplementary material for a struggling learner."""

    explanation: str
    videos: list[dict[str, str]] = field(default_factory=list)
    images: list[dict[str, str]] = field(default_factory=list)
    articles: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "explanation": self.explanation,
            "videos": list(self.videos),
            "images": list(self.images),
            "articles": list(self.articles),
        }


@dataclass
class SessionSummary:
    """End-of-session report; derived on demand, never stored."""

    topic: str
    total_goals: int
    completed_goals: int
    overall_performance: OverallPerformance
    time_spent: int  # minutes
    star_rating: int
    learning_gaps: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    status: ProgressStatus = ProgressStatus.IN_PROGRESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "totalGoals": self.total_goals,
            "completedGoals": self.completed_goals,
            "overallPerformance": self.overall_performance.to_dict(),
            "timeSpent": self.time_spent,
            "starRating": self.star_rating,
            "learningGaps": list(self.learning_gaps),
            "recommendations": list(self.recommendations),
            "status": self.status.value,
        }
