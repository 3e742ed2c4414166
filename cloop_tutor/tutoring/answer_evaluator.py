"""
Answer evaluation for tutoring sessions.

Scores a learner's free-text answer against the expected answer using the
generation capability, then applies deterministic post-processing (bubble
colour, feedback options, diff markup clean-up). Evaluation never raises: any
upstream failure produces a fixed low-confidence verdict instead.
"""

from __future__ import annotations

import html
import re
from collections.abc import Sequence

from loguru import logger

from config import get_settings
from cloop_tutor.generation.client import Generator
from cloop_tutor.generation.prompts import (
    EVALUATION_PROMPT,
    FOLLOW_UP_EASIER,
    FOLLOW_UP_HARDER,
    FOLLOW_UP_PROMPT,
)
from cloop_tutor.generation.schemas import EvaluationResult, parse_response

from .errors import UpstreamGenerationError
from .models import (
    FEEDBACK_OPTIONS,
    AnswerRecord,
    BubbleColor,
    ErrorType,
    Evaluation,
    Performance,
    round_half_up,
)

FALLBACK_SCORE_PERCENT = 50
FALLBACK_FEEDBACK = "Let's review this concept."
FALLBACK_FOLLOW_UP = "Can you tell me more about what you understand?"

# Any tag that is not an opening/closing <del> or <ins>
_FOREIGN_TAG = re.compile(r"<(?!/?(?:del|ins)>)[^>]*>", re.IGNORECASE)


def sanitize_diff_html(diff_html: str) -> str:
    """Keep only <del>/<ins> markup in a correction diff."""
    return _FOREIGN_TAG.sub("", diff_html)


def naive_diff_html(user_answer: str, expected_answer: str) -> str:
    """Whole-answer diff: everything the learner wrote is struck, the expected text inserted."""
    return (
        f"<del>{html.escape(user_answer, quote=False)}</del> "
        f"<ins>{html.escape(expected_answer, quote=False)}</ins>"
    )


def accuracy_percent(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(correct / total * 100)


class AnswerEvaluator:
    """
    Evaluates learner answers and summarizes goal performance.

    Evaluation dimensions (scored by the generation capability):
    1. Spelling
    2. Grammar
    3. Conceptual understanding
    4. Factual accuracy
    5. Completeness
    """

    def __init__(
        self,
        generator: Generator,
        model: str | None = None,
        follow_up_model: str | None = None,
        mastery_threshold: int | None = None,
    ):
        settings = get_settings()
        self.generator = generator
        self.model = model or settings.llm_evaluation_model
        self.follow_up_model = follow_up_model or settings.llm_light_model
        self.mastery_threshold = (
            mastery_threshold
            if mastery_threshold is not None
            else settings.mastery_threshold_percent
        )

    async def evaluate_answer(
        self,
        user_answer: str,
        expected_answer: str,
        question: str,
        concept: str,
    ) -> Evaluation:
        """
        Evaluate a learner's answer against the expected answer.

        Args:
            user_answer: What the learner typed
            expected_answer: Reference answer stored with the question
            question: The question that was asked
            concept: Goal title the question belongs to

        Returns:
            Evaluation with correction markup and, if incorrect, feedback options
        """
        prompt = EVALUATION_PROMPT.format(
            question=question,
            concept=concept,
            expected_answer=expected_answer,
            user_answer=user_answer,
        )

        try:
            payload = await self.generator.complete_json(
                prompt, model=self.model, temperature=0.3, max_tokens=500
            )
            result = parse_response(EvaluationResult, payload)
        except UpstreamGenerationError as e:
            logger.warning("Answer evaluation fell back to default verdict: {}", e)
            return self.fallback_evaluation(user_answer, expected_answer)

        return self._finalize(result)

    def _finalize(self, result: EvaluationResult) -> Evaluation:
        return Evaluation(
            is_correct=result.is_correct,
            score_percent=round_half_up(result.score_percent),
            error_type=result.error_type,
            diff_html=sanitize_diff_html(result.diff_html),
            complete_answer=result.complete_answer,
            feedback=result.feedback,
            bubble_color=BubbleColor.GREEN if result.is_correct else BubbleColor.RED,
            needs_resources=result.needs_resources,
            options=None if result.is_correct else list(FEEDBACK_OPTIONS),
        )

    @staticmethod
    def fallback_evaluation(user_answer: str, expected_answer: str) -> Evaluation:
        """Low-confidence verdict used whenever the generation capability is unusable."""
        return Evaluation(
            is_correct=False,
            score_percent=FALLBACK_SCORE_PERCENT,
            error_type=ErrorType.CONCEPTUAL,
            diff_html=naive_diff_html(user_answer, expected_answer),
            complete_answer=expected_answer,
            feedback=FALLBACK_FEEDBACK,
            bubble_color=BubbleColor.RED,
            needs_resources=True,
            options=list(FEEDBACK_OPTIONS),
        )

    async def generate_follow_up_question(
        self,
        user_answer: str,
        question: str,
        concept: str,
        was_correct: bool,
    ) -> str:
        """Ask for one follow-up question: harder after a correct answer, easier otherwise."""
        prompt = FOLLOW_UP_PROMPT.format(
            question=question,
            concept=concept,
            user_answer=user_answer,
            was_correct=str(was_correct).lower(),
            direction=FOLLOW_UP_HARDER if was_correct else FOLLOW_UP_EASIER,
        )

        try:
            text = await self.generator.complete_text(
                prompt, model=self.follow_up_model, temperature=0.7, max_tokens=100
            )
        except UpstreamGenerationError as e:
            logger.warning("Follow-up question generation failed: {}", e)
            return FALLBACK_FOLLOW_UP

        return text.strip() or FALLBACK_FOLLOW_UP

    def analyze_goal_performance(self, answers: Sequence[AnswerRecord]) -> Performance:
        """
        Summarize the answers given for one goal.

        Pure: the result depends only on ``answers``. The error histogram
        counts incorrect answers by error type; ties for the most common error
        go to the type seen first.
        """
        total = len(answers)
        correct = sum(1 for a in answers if a.evaluation.is_correct)
        accuracy = accuracy_percent(correct, total)

        error_counts: dict[str, int] = {}
        for record in answers:
            if record.evaluation.is_correct:
                continue
            error = record.evaluation.error_type.value
            error_counts[error] = error_counts.get(error, 0) + 1

        most_common: str | None = None
        for error, count in error_counts.items():
            if most_common is None or count > error_counts[most_common]:
                most_common = error

        return Performance(
            total_questions=total,
            correct_answers=correct,
            accuracy_percent=accuracy,
            is_mastered=accuracy >= self.mastery_threshold,
            most_common_error=most_common,
            error_counts=error_counts,
        )
