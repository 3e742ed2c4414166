"""
Cloop Tutor - adaptive tutoring sessions driven by a language model.

A learner works through a topic's goals one question batch at a time; every
answer is evaluated, recorded and used to decide what comes next.
"""

__version__ = "1.0.0"

from cloop_tutor.generation.client import GenerationClient
from cloop_tutor.tutoring.engine import SessionOrchestrator
from cloop_tutor.tutoring.errors import (
    SessionNotFound,
    TopicNotFound,
    TutorError,
    UpstreamGenerationError,
)
from cloop_tutor.tutoring.persistence import InMemoryPersistence
from cloop_tutor.tutoring.session_registry import SessionRegistry
from cloop_tutor.tutoring.sweeper import SessionSweeper

__all__ = [
    "GenerationClient",
    "InMemoryPersistence",
    "SessionNotFound",
    "SessionOrchestrator",
    "SessionRegistry",
    "SessionSweeper",
    "TopicNotFound",
    "TutorError",
    "UpstreamGenerationError",
]
