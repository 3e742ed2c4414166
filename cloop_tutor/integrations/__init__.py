"""
External integrations for the tutoring engine.

Modules:
- resource_finder: explanations and search links for struggling learners
"""
from .resource_finder import GenerationResourceFinder, ResourceFinder

__all__ = ["GenerationResourceFinder", "ResourceFinder"]
