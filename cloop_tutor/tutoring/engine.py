"""
Session Orchestrator: the tutoring state machine.

Drives one learner through a topic's goals. Each turn evaluates the learner's
answer, records it, and decides whether to stay on the question, move to the
next question, switch to the next goal, or finish the session.

State per session:
- active: ``current_question_index`` points into the current goal's batch
- completed: terminal; the session is removed from the registry

Transitions:
- correct answer -> next question (same goal)
- correct answer on the last question -> goal completed, next goal's first question
- correct answer on the last question of the last goal -> session completed
- incorrect answer -> stay on the question (learner may answer again or pick
  a feedback option, which always advances)

Every turn holds the session's registry lock, so concurrent requests for the
same (user, topic) are applied in order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from loguru import logger

from config import get_settings
from cloop_tutor.generation.client import Generator
from cloop_tutor.integrations.resource_finder import GenerationResourceFinder, ResourceFinder

from .answer_evaluator import AnswerEvaluator
from .errors import SessionNotFound, TopicNotFound, UpstreamGenerationError
from .goal_content_manager import GoalContentManager
from .models import (
    OPTION_EXPLAIN,
    AnswerRecord,
    Goal,
    Question,
    Resources,
    Session,
    SessionStatus,
    Topic,
)
from .persistence import Persistence
from .session_registry import SessionRegistry

DEFAULT_MAX_IDLE_MS = 60 * 60 * 1000


def greeting_messages(topic: Topic, goal: Goal) -> list[dict[str, str]]:
    return [
        {"message": f"Let's start learning about {topic.title}! 📚", "message_type": "text"},
        {
            "message": (
                f"We'll begin with: {goal.title}. "
                "I'll ask you some questions to check your understanding."
            ),
            "message_type": "text",
        },
    ]


def question_payload(question: Question, goal: Goal) -> dict[str, Any]:
    return {"id": question.id, "question": question.question, "goal": goal.title}


class SessionOrchestrator:
    """
    Runs adaptive tutoring sessions.

    Usage:
        orchestrator = SessionOrchestrator(persistence, generator)
        start = await orchestrator.start_session("u1", "t1")
        turn = await orchestrator.process_answer("u1", "t1", "my answer")
        if "evaluation" in turn and turn["evaluation"].get("options"):
            turn = await orchestrator.handle_feedback_option("u1", "t1", "Explain")
    """

    def __init__(
        self,
        persistence: Persistence,
        generator: Generator,
        resource_finder: ResourceFinder | None = None,
        registry: SessionRegistry | None = None,
        evaluator: AnswerEvaluator | None = None,
        goal_manager: GoalContentManager | None = None,
        questions_per_goal: int | None = None,
        resource_level: str | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        settings = get_settings()
        self.persistence = persistence
        self.clock = clock
        self.registry = registry or SessionRegistry(persistence, clock=clock)
        self.evaluator = evaluator or AnswerEvaluator(generator)
        self.goal_manager = goal_manager or GoalContentManager(persistence, generator, clock=clock)
        self.resource_finder = resource_finder or GenerationResourceFinder(generator)
        self.questions_per_goal = questions_per_goal or settings.questions_per_goal
        self.resource_level = resource_level or settings.resource_level
        self.estimated_duration = settings.estimated_session_duration

    # =========================================================================
    # Inbound operations
    # =========================================================================

    async def start_session(self, user_id: str, topic_id: str) -> dict[str, Any]:
        """
        Open (or restart) a session for a learner on a topic.

        Returns:
            {messages, currentQuestion: {id, question, goal}, sessionInfo}

        Raises:
            TopicNotFound: If the topic does not exist
        """
        async with self.registry.locked(user_id, topic_id):
            topic = await self.persistence.get_topic(topic_id)
            if topic is None:
                raise TopicNotFound(topic_id)

            goals = await self.goal_manager.generate_goals(topic.id, topic.title, topic.content)
            await self.goal_manager.start_progress(user_id, topic_id)
            current_goal = await self.goal_manager.get_current_goal(user_id, topic_id)
            questions = await self.goal_manager.get_questions_for_goal(
                current_goal.id, self.questions_per_goal
            )

            now = self.clock()
            session = Session(
                user_id=user_id,
                topic_id=topic_id,
                topic=topic,
                goals=goals,
                current_goal=current_goal,
                questions=questions,
                start_time=now,
                last_activity_time=now,
            )
            self.registry.put(session)

            logger.info(
                "Session started for user={} topic='{}' (goal {}/{}: {})",
                user_id,
                topic.title,
                session.current_goal_position,
                len(goals),
                current_goal.title,
            )

            return {
                "messages": greeting_messages(topic, current_goal),
                "currentQuestion": question_payload(questions[0], current_goal),
                "sessionInfo": {
                    "totalGoals": len(goals),
                    "currentGoalIndex": session.current_goal_position,
                    "questionsInGoal": len(questions),
                    "estimatedDuration": self.estimated_duration,
                },
            }

    async def process_answer(self, user_id: str, topic_id: str, answer: str) -> dict[str, Any]:
        """
        Evaluate the learner's answer to the current question and advance on success.

        Returns:
            {evaluation, sessionInfo, resources?, nextQuestion?, goalCompleted?, sessionCompleted?}

        Raises:
            SessionNotFound: If no session is active for the pair or its question batch is used up
        """
        async with self.registry.locked(user_id, topic_id):
            session = self.registry.require(user_id, topic_id)
            session.last_activity_time = self.clock()

            question = session.current_question
            if question is None:
                # Every question in the batch has been answered
                raise SessionNotFound(user_id, topic_id)

            evaluation = await self.evaluator.evaluate_answer(
                answer,
                question.answer,
                question.question,
                session.current_goal.title,
            )
            session.answers.append(
                AnswerRecord(
                    question_id=question.id,
                    question=question.question,
                    user_answer=answer,
                    evaluation=evaluation,
                    timestamp=self.clock(),
                )
            )

            response: dict[str, Any] = {
                "evaluation": evaluation.to_dict(),
                "sessionInfo": {
                    "totalGoals": len(session.goals),
                    "currentGoalIndex": session.current_goal_position,
                    "currentQuestionIndex": session.current_question_index + 1,
                    "questionsInGoal": len(session.questions),
                    "timeSpent": session.elapsed_minutes(self.clock()),
                },
            }

            if not evaluation.is_correct and evaluation.needs_resources:
                resources = await self._find_resources(session)
                if resources is not None:
                    response["resources"] = resources.to_dict()

            if evaluation.is_correct:
                response.update(await self._advance(session))

            return response

    async def handle_feedback_option(self, user_id: str, topic_id: str, option: str) -> dict[str, Any]:
        """
        Apply the learner's choice after an incorrect answer.

        Any option moves on to the next question; "Explain" first attaches an
        explanation with resources.

        Returns:
            {explanation?, nextQuestion?, goalCompleted?, sessionCompleted?}

        Raises:
            SessionNotFound: If no session is active for the pair
        """
        async with self.registry.locked(user_id, topic_id):
            session = self.registry.require(user_id, topic_id)
            session.last_activity_time = self.clock()

            response: dict[str, Any] = {}

            if option == OPTION_EXPLAIN:
                resources = await self._find_resources(session)
                if resources is not None:
                    response["explanation"] = {
                        "text": resources.explanation,
                        "resources": {
                            "videos": resources.videos,
                            "images": resources.images,
                            "articles": resources.articles,
                        },
                    }

            response.update(await self._advance(session))
            return response

    async def cleanup_inactive_sessions(self, max_idle_ms: int = DEFAULT_MAX_IDLE_MS) -> list[str]:
        """Retire sessions idle for longer than ``max_idle_ms``; see ``SessionRegistry.sweep_inactive``."""
        return await self.registry.sweep_inactive(max_idle_ms)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _advance(self, session: Session) -> dict[str, Any]:
        """
        Move past the current question.

        Session fields are only written once every collaborator call for the
        transition has succeeded, so a persistence failure leaves the learner
        on the same question rather than in a half-switched state.
        """
        next_index = session.current_question_index + 1
        if next_index < len(session.questions):
            session.current_question_index = next_index
            return {"nextQuestion": question_payload(session.questions[next_index], session.current_goal)}

        finished_goal = session.current_goal
        batch_ids = {q.id for q in session.questions}
        goal_answers = [a for a in session.answers if a.question_id in batch_ids]
        performance = self.evaluator.analyze_goal_performance(goal_answers)

        await self.goal_manager.complete_goal(
            session.user_id, session.topic_id, finished_goal.id, performance
        )
        next_goal = await self.goal_manager.get_current_goal(session.user_id, session.topic_id)

        if next_goal.id != finished_goal.id:
            questions = await self.goal_manager.get_questions_for_goal(
                next_goal.id, self.questions_per_goal
            )
            session.current_goal = next_goal
            session.questions = questions
            session.current_question_index = 0
            session.answers = []

            logger.info(
                "User {} completed goal '{}' ({}%), moving to '{}'",
                session.user_id,
                finished_goal.title,
                performance.accuracy_percent,
                next_goal.title,
            )
            return {
                "nextQuestion": question_payload(questions[0], next_goal),
                "goalCompleted": {
                    "goal": finished_goal.title,
                    "performance": performance.to_dict(),
                },
            }

        summary = await self.goal_manager.get_session_summary(session.user_id, session.topic_id)
        session.current_question_index = next_index
        session.status = SessionStatus.COMPLETED
        self.registry.remove(session.user_id, session.topic_id)

        logger.info(
            "Session completed for user={} topic='{}' ({} stars, {}% overall)",
            session.user_id,
            session.topic.title,
            summary.star_rating,
            summary.overall_performance.accuracy_percent,
        )
        return {"sessionCompleted": {"summary": summary.to_dict()}}

    async def _find_resources(self, session: Session) -> Resources | None:
        try:
            return await self.resource_finder.find_resources(
                session.current_goal.title,
                session.topic.title,
                self.resource_level,
            )
        except UpstreamGenerationError as e:
            logger.warning("Resource lookup failed for '{}': {}", session.current_goal.title, e)
            return None
