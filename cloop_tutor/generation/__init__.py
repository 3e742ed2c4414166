"""
Language generation capability: HTTP client, prompt templates and the
response schemas each call site validates against.
"""

from .client import GenerationClient, Generator, strip_code_fences
from .schemas import (
    EvaluationResult,
    ExplanationResult,
    GoalsResult,
    QuestionsResult,
    RecommendationsResult,
    parse_response,
)

__all__ = [
    "GenerationClient",
    "Generator",
    "strip_code_fences",
    "EvaluationResult",
    "ExplanationResult",
    "GoalsResult",
    "QuestionsResult",
    "RecommendationsResult",
    "parse_response",
]
