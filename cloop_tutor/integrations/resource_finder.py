"""
Supplementary learning resources for struggling learners.

The orchestrator only depends on the ``ResourceFinder`` protocol. The
``GenerationResourceFinder`` shipped here asks the generation capability for a
short explanation and pairs it with search links for videos and articles.
"""

from __future__ import annotations

from typing import Protocol
from urllib.parse import quote_plus

from loguru import logger

from config import get_settings
from cloop_tutor.generation.client import Generator
from cloop_tutor.generation.prompts import EXPLANATION_PROMPT
from cloop_tutor.generation.schemas import ExplanationResult, parse_response
from cloop_tutor.tutoring.errors import UpstreamGenerationError
from cloop_tutor.tutoring.models import Resources

YOUTUBE_SEARCH_URL = "https://www.youtube.com/results?search_query={query}"
WIKIPEDIA_SEARCH_URL = "https://en.wikipedia.org/w/index.php?search={query}"
KHAN_SEARCH_URL = "https://www.khanacademy.org/search?page_search_query={query}"


class ResourceFinder(Protocol):
    async def find_resources(self, goal_title: str, topic_title: str, level: str) -> Resources: ...


def search_links(goal_title: str, topic_title: str) -> dict[str, list[dict[str, str]]]:
    """Deterministic search links for a goal, grouped by resource kind."""
    query = quote_plus(f"{topic_title} {goal_title}".strip())
    return {
        "videos": [
            {"title": f"Videos: {goal_title}", "url": YOUTUBE_SEARCH_URL.format(query=query)},
        ],
        "images": [],
        "articles": [
            {"title": f"Encyclopedia: {topic_title}", "url": WIKIPEDIA_SEARCH_URL.format(query=query)},
            {"title": f"Lessons: {goal_title}", "url": KHAN_SEARCH_URL.format(query=query)},
        ],
    }


class GenerationResourceFinder:
    """Resource finder backed by the generation capability."""

    def __init__(self, generator: Generator, model: str | None = None):
        self.generator = generator
        self.model = model or get_settings().llm_light_model

    async def find_resources(self, goal_title: str, topic_title: str, level: str) -> Resources:
        links = search_links(goal_title, topic_title)
        prompt = EXPLANATION_PROMPT.format(goal_title=goal_title, topic_title=topic_title, level=level)

        try:
            payload = await self.generator.complete_json(
                prompt, model=self.model, temperature=0.5, max_tokens=300
            )
            explanation = parse_response(ExplanationResult, payload).explanation
        except UpstreamGenerationError as e:
            logger.warning("Explanation for '{}' fell back to default: {}", goal_title, e)
            explanation = (
                f"Let's revisit '{goal_title}' in {topic_title}. "
                "Take a look at the resources below, then try the question again."
            )

        return Resources(
            explanation=explanation,
            videos=links["videos"],
            images=links["images"],
            articles=links["articles"],
        )
