"""
Goal Content Manager: goals, per-goal question batches and learner progress.

Goals and question batches are generated lazily through the generation
capability and cached in persistence; once stored they are reused, never
regenerated. Learner progress is a per-(user, topic) aggregate updated each
time a goal's question batch is finished.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable

from loguru import logger

from config import get_settings
from cloop_tutor.generation.client import Generator
from cloop_tutor.generation.prompts import GOALS_PROMPT, QUESTIONS_PROMPT
from cloop_tutor.generation.schemas import GoalsResult, QuestionsResult, parse_response

from .answer_evaluator import accuracy_percent
from .errors import GoalNotFound, NoGoalsError, UpstreamGenerationError
from .models import (
    Goal,
    GoalProgress,
    OverallPerformance,
    Performance,
    ProgressStatus,
    Question,
    SessionSummary,
)
from .persistence import Persistence
from .summary import SessionSummaryGenerator


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def fallback_goal_specs(topic_title: str) -> list[tuple[str, str]]:
    """(title, description) pairs used when goal generation fails."""
    return [
        ("Understand the basics", f"Learn what {topic_title} means and its importance"),
        ("Identify key concepts", "Recognize important ideas and components"),
        ("Apply knowledge", "Use understanding in practical examples"),
        ("Connect concepts", "Link this topic to related ideas"),
    ]


def fallback_questions(goal: Goal) -> list[Question]:
    """Generic questions for a goal; served uncached so a later call retries generation."""
    description = goal.description or goal.title
    return [
        Question(
            id=f"{goal.id}-fallback-1",
            goal_id=goal.id,
            question=f"In your own words, what does '{goal.title}' mean?",
            answer=description,
            difficulty="easy",
        ),
        Question(
            id=f"{goal.id}-fallback-2",
            goal_id=goal.id,
            question=f"Why is '{goal.title}' important?",
            answer=description,
            difficulty="easy",
        ),
        Question(
            id=f"{goal.id}-fallback-3",
            goal_id=goal.id,
            question=f"Give one example related to '{goal.title}'.",
            answer=description,
            difficulty="medium",
        ),
    ]


class GoalContentManager:
    """Owns goal definitions, question batches and per-user goal progress."""

    def __init__(
        self,
        persistence: Persistence,
        generator: Generator,
        summary_generator: SessionSummaryGenerator | None = None,
        model: str | None = None,
        default_question_count: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        settings = get_settings()
        self.persistence = persistence
        self.generator = generator
        self.model = model or settings.llm_evaluation_model
        self.default_question_count = default_question_count or settings.questions_per_goal
        self.clock = clock
        self.summary_generator = summary_generator or SessionSummaryGenerator(
            persistence, generator, clock=clock
        )

    # =========================================================================
    # Goals
    # =========================================================================

    async def generate_goals(self, topic_id: str, topic_title: str, topic_content: str) -> list[Goal]:
        """
        Return the topic's goals, generating and persisting them on first use.

        Generation asks for 5-7 progressive goals. If it fails, a fixed list of
        four goals is persisted instead. Existing goals are never regenerated.
        """
        existing = await self.persistence.get_goals_for_topic(topic_id)
        if existing:
            logger.debug("Using {} stored goals for topic {}", len(existing), topic_id)
            return existing

        prompt = GOALS_PROMPT.format(topic_title=topic_title, topic_content=topic_content or "")
        try:
            payload = await self.generator.complete_json(
                prompt, model=self.model, temperature=0.8, max_tokens=800
            )
            result = parse_response(GoalsResult, payload)
            goals = [
                Goal(
                    id=_new_id(),
                    topic_id=topic_id,
                    title=draft.title,
                    description=draft.description,
                    order=i + 1,
                )
                for i, draft in enumerate(
                    sorted(
                        result.goals,
                        key=lambda d: d.order if d.order is not None else float("inf"),
                    )
                )
            ]
        except UpstreamGenerationError as e:
            logger.warning("Goal generation for '{}' fell back to defaults: {}", topic_title, e)
            goals = [
                Goal(id=_new_id(), topic_id=topic_id, title=title, description=description, order=i + 1)
                for i, (title, description) in enumerate(fallback_goal_specs(topic_title))
            ]

        saved = await self.persistence.save_goals_for_topic(topic_id, goals)
        logger.info("Stored {} goals for topic {}", len(saved), topic_id)
        return saved

    async def start_progress(self, user_id: str, topic_id: str) -> GoalProgress:
        """Return the learner's progress on a topic, creating an empty record on first visit."""
        progress = await self.persistence.get_user_progress(user_id, topic_id)
        if progress is not None:
            return progress

        now = self.clock()
        progress = GoalProgress(
            user_id=user_id,
            topic_id=topic_id,
            started_at=now,
            last_accessed_at=now,
        )
        return await self.persistence.update_user_progress(progress)

    async def get_current_goal(self, user_id: str, topic_id: str) -> Goal:
        """
        First goal not yet completed by the learner.

        When every goal is completed the last goal is returned; callers detect
        the end of the topic by comparing against the goal they were on.
        """
        goals = await self.persistence.get_goals_for_topic(topic_id)
        if not goals:
            raise NoGoalsError(topic_id)

        progress = await self.persistence.get_user_progress(user_id, topic_id)
        completed = set(progress.completed_goals) if progress else set()

        for goal in sorted(goals, key=lambda g: g.order):
            if goal.id not in completed:
                return goal
        return sorted(goals, key=lambda g: g.order)[-1]

    async def complete_goal(
        self,
        user_id: str,
        topic_id: str,
        goal_id: str,
        performance: Performance,
    ) -> GoalProgress:
        """
        Record a finished goal and refresh the overall performance.

        Idempotent: completing a goal that is already in ``completed_goals``
        only refreshes ``last_accessed_at``. Overall totals are re-summed from
        the recorded goal performances rather than incremented.
        """
        async with self.persistence.transaction():
            now = self.clock()
            progress = await self.persistence.get_user_progress(user_id, topic_id)
            if progress is None:
                progress = GoalProgress(
                    user_id=user_id,
                    topic_id=topic_id,
                    started_at=now,
                    last_accessed_at=now,
                )

            progress.last_accessed_at = now

            if goal_id in progress.completed_goals:
                logger.debug("Goal {} already completed for user {}", goal_id, user_id)
                return await self.persistence.update_user_progress(progress)

            progress.completed_goals.append(goal_id)
            progress.goal_performances[goal_id] = performance
            progress.overall_performance = self._overall_from(progress.goal_performances)

            goals = await self.persistence.get_goals_for_topic(topic_id)
            completed = set(progress.completed_goals)
            all_completed = bool(goals) and all(goal.id in completed for goal in goals)

            if all_completed:
                if progress.status != ProgressStatus.COMPLETED:
                    progress.completed_at = now
                progress.status = ProgressStatus.COMPLETED
            else:
                progress.status = ProgressStatus.IN_PROGRESS

            logger.info(
                "Goal {} completed by user {} ({}% accuracy, overall {}%)",
                goal_id,
                user_id,
                performance.accuracy_percent,
                progress.overall_performance.accuracy_percent,
            )
            return await self.persistence.update_user_progress(progress)

    @staticmethod
    def _overall_from(performances: dict[str, Performance]) -> OverallPerformance:
        total = sum(p.total_questions for p in performances.values())
        correct = sum(p.correct_answers for p in performances.values())
        return OverallPerformance(
            total_questions=total,
            correct_answers=correct,
            accuracy_percent=accuracy_percent(correct, total),
        )

    # =========================================================================
    # Questions
    # =========================================================================

    async def get_questions_for_goal(self, goal_id: str, count: int | None = None) -> list[Question]:
        """
        Question batch for a goal.

        Returns the cached batch when it already holds ``count`` questions;
        otherwise generates ``count`` questions (easy to medium) and caches
        them. Repeated calls without intervening writes return the same batch.
        """
        count = count or self.default_question_count

        cached = await self.persistence.get_questions_for_goal(goal_id)
        if len(cached) >= count:
            logger.debug("Question cache hit for goal {} ({} stored)", goal_id, len(cached))
            return cached[:count]

        goal = await self.persistence.get_goal(goal_id)
        if goal is None:
            raise GoalNotFound(goal_id)
        topic = await self.persistence.get_topic(goal.topic_id)
        topic_title = topic.title if topic else ""

        prompt = QUESTIONS_PROMPT.format(
            count=count,
            topic_title=topic_title,
            goal_title=goal.title,
            goal_description=goal.description,
        )
        try:
            payload = await self.generator.complete_json(
                prompt, model=self.model, temperature=0.8, max_tokens=2000
            )
            result = parse_response(QuestionsResult, payload)
        except UpstreamGenerationError as e:
            if cached:
                logger.warning(
                    "Question generation for goal {} failed; reusing {} cached: {}",
                    goal_id,
                    len(cached),
                    e,
                )
                return cached
            logger.warning("Question generation for goal {} fell back to defaults: {}", goal_id, e)
            return fallback_questions(goal)

        questions = [
            Question(
                id=_new_id(),
                goal_id=goal_id,
                question=draft.question,
                answer=draft.answer,
                difficulty=draft.difficulty,
            )
            for draft in result.questions[:count]
        ]
        saved = await self.persistence.save_questions_for_goal(goal_id, questions)
        logger.info("Generated {} questions for goal '{}'", len(saved), goal.title)
        return saved

    # =========================================================================
    # Summary
    # =========================================================================

    async def get_session_summary(self, user_id: str, topic_id: str) -> SessionSummary:
        return await self.summary_generator.generate(user_id, topic_id)
