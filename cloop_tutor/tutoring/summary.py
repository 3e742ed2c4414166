"""
End-of-session report derived from persisted goal progress.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from loguru import logger

from config import get_settings
from cloop_tutor.generation.client import Generator
from cloop_tutor.generation.prompts import RECOMMENDATIONS_PROMPT
from cloop_tutor.generation.schemas import RecommendationsResult, parse_response

from .errors import TopicNotFound, UpstreamGenerationError
from .models import Goal, GoalProgress, OverallPerformance, SessionSummary, round_half_up
from .persistence import Persistence

FALLBACK_RECOMMENDATIONS = [
    "Review the concepts you found challenging",
    "Practice with more examples",
    "Try explaining the concepts to someone else",
]
MAX_RECOMMENDATIONS = 5


class SessionSummaryGenerator:
    """Builds a ``SessionSummary`` from a learner's stored progress on a topic."""

    def __init__(
        self,
        persistence: Persistence,
        generator: Generator,
        model: str | None = None,
        learning_gap_threshold: int | None = None,
        star_thresholds: dict[int, int] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        settings = get_settings()
        self.persistence = persistence
        self.generator = generator
        self.model = model or settings.llm_light_model
        self.learning_gap_threshold = (
            learning_gap_threshold
            if learning_gap_threshold is not None
            else settings.learning_gap_threshold_percent
        )
        self.star_thresholds = star_thresholds or settings.get_star_thresholds()
        self.clock = clock

    def star_rating(self, accuracy_percent: int) -> int:
        """3 stars at >=80%, 2 at >=60%, otherwise 1."""
        for stars in sorted(self.star_thresholds, reverse=True):
            if accuracy_percent >= self.star_thresholds[stars]:
                return stars
        return 1

    def learning_gaps(self, goals: list[Goal], progress: GoalProgress) -> list[str]:
        """Titles of goals whose recorded accuracy fell below the gap threshold, in goal order."""
        gaps = []
        for goal in goals:
            performance = progress.goal_performances.get(goal.id)
            if performance is not None and performance.accuracy_percent < self.learning_gap_threshold:
                gaps.append(goal.title)
        return gaps

    def time_spent_minutes(self, progress: GoalProgress) -> int:
        end = progress.completed_at or self.clock()
        return round_half_up((end - progress.started_at).total_seconds() / 60)

    async def generate(self, user_id: str, topic_id: str) -> SessionSummary:
        topic = await self.persistence.get_topic(topic_id)
        if topic is None:
            raise TopicNotFound(topic_id)

        goals = await self.persistence.get_goals_for_topic(topic_id)
        progress = await self.persistence.get_user_progress(user_id, topic_id)

        if progress is None:
            logger.debug("No progress for user={} topic={}; returning empty summary", user_id, topic_id)
            return SessionSummary(
                topic=topic.title,
                total_goals=len(goals),
                completed_goals=0,
                overall_performance=OverallPerformance(),
                time_spent=0,
                star_rating=1,
                recommendations=list(FALLBACK_RECOMMENDATIONS),
            )

        accuracy = progress.overall_performance.accuracy_percent
        gaps = self.learning_gaps(goals, progress)
        recommendations = await self.generate_recommendations(topic.title, goals, accuracy, gaps)

        return SessionSummary(
            topic=topic.title,
            total_goals=len(goals),
            completed_goals=len(progress.completed_goals),
            overall_performance=progress.overall_performance,
            time_spent=self.time_spent_minutes(progress),
            star_rating=self.star_rating(accuracy),
            learning_gaps=gaps,
            recommendations=recommendations,
            status=progress.status,
        )

    async def generate_recommendations(
        self,
        topic_title: str,
        goals: list[Goal],
        accuracy_percent: int,
        learning_gaps: list[str],
    ) -> list[str]:
        prompt = RECOMMENDATIONS_PROMPT.format(
            topic_title=topic_title,
            goal_titles=", ".join(g.title for g in goals),
            accuracy_percent=accuracy_percent,
            learning_gaps=", ".join(learning_gaps) or "None identified",
        )
        try:
            payload = await self.generator.complete_json(
                prompt, model=self.model, temperature=0.8, max_tokens=300
            )
            result = parse_response(RecommendationsResult, payload)
        except UpstreamGenerationError as e:
            logger.warning("Recommendation generation fell back to defaults: {}", e)
            return list(FALLBACK_RECOMMENDATIONS)

        return result.recommendations[:MAX_RECOMMENDATIONS]
