"""
Response schemas for the language generation capability.

One model per call site. Every payload returned by the generation client is
validated here before anything else touches it; a payload that does not fit is
turned into ``UpstreamGenerationError`` so the caller falls back to its fixed
content instead of trusting ad hoc field checks.
"""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cloop_tutor.tutoring.errors import UpstreamGenerationError
from cloop_tutor.tutoring.models import ErrorType

_ERROR_TYPE_LOOKUP = {e.value.lower(): e for e in ErrorType}


class _GenerationModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


# =============================================================================
# Answer evaluation
# =============================================================================


class EvaluationResult(_GenerationModel):
    """Verdict returned for a single learner answer."""

    is_correct: bool
    score_percent: float = Field(ge=0, le=100)
    error_type: ErrorType
    diff_html: str = ""
    complete_answer: str
    feedback: str
    needs_resources: bool = False

    @field_validator("error_type", mode="before")
    @classmethod
    def _normalize_error_type(cls, value: Any) -> Any:
        if value is None:
            return ErrorType.NONE
        if isinstance(value, str):
            match = _ERROR_TYPE_LOOKUP.get(value.strip().lower())
            if match is not None:
                return match
        return value


# =============================================================================
# Goals and questions
# =============================================================================


class GoalDraft(_GenerationModel):
    title: str = Field(min_length=1)
    description: str = ""
    order: int | None = None


class GoalsResult(_GenerationModel):
    goals: list[GoalDraft] = Field(min_length=1)


class QuestionDraft(_GenerationModel):
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    difficulty: Literal["easy", "medium", "hard"] = "easy"

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lower_difficulty(cls, value: Any) -> Any:
        if value is None:
            return "easy"
        return value.strip().lower() if isinstance(value, str) else value


class QuestionsResult(_GenerationModel):
    questions: list[QuestionDraft] = Field(min_length=1)


# =============================================================================
# Summaries and resources
# =============================================================================


class RecommendationsResult(_GenerationModel):
    recommendations: list[str] = Field(min_length=1)

    @field_validator("recommendations")
    @classmethod
    def _drop_blank(cls, value: list[str]) -> list[str]:
        cleaned = [item for item in value if item]
        if not cleaned:
            raise ValueError("recommendations must contain at least one non-empty item")
        return cleaned


class ExplanationResult(_GenerationModel):
    explanation: str = Field(min_length=1)


ResultT = TypeVar("ResultT", bound=BaseModel)


def parse_response(model: type[ResultT], payload: Any) -> ResultT:
    """
    Validate a generation payload against the call site's schema.

    Raises:
        UpstreamGenerationError: If the payload does not match.
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise UpstreamGenerationError(
            f"Generation payload does not match {model.__name__}: {e.error_count()} error(s)"
        ) from e
