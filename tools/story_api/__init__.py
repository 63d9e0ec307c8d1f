"""
Story backend clients.

Exports the abstract interface and the in-memory implementation.
The MongoDB client is imported lazily by the factory.
"""

from tools.story_api.base import StoriesPage, StoryClient, StoryFilters, UploadResult
from tools.story_api.factory import create_story_client
from tools.story_api.mock_client import MockStoryClient

__all__ = [
    "MockStoryClient",
    "StoriesPage",
    "StoryClient",
    "StoryFilters",
    "UploadResult",
    "create_story_client",
]
