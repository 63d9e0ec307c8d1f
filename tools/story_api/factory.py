"""
Factory for creating story backend clients.

Picks the implementation named by ``settings.storage_backend``.
"""

from enum import Enum
from typing import TYPE_CHECKING

from core.logging import get_logger
from tools.story_api.base import StoryClient


if TYPE_CHECKING:
    from core.config import Settings


logger = get_logger(__name__)


class StoryBackend(str, Enum):
    """Supported story backends."""
    MEMORY = "memory"
    MONGODB = "mongodb"


def get_story_backend(settings: "Settings") -> StoryBackend:
    """
    Determine which backend to use based on settings.

    Raises:
        ValueError: If the configured backend is unknown
    """
    backend_str = settings.storage_backend.lower()

    try:
        return StoryBackend(backend_str)
    except ValueError:
        raise ValueError(
            f"Unsupported story backend: {backend_str}. "
            f"Supported backends: {[b.value for b in StoryBackend]}"
        )


def create_story_client(settings: "Settings") -> StoryClient:
    """
    Create a story client based on settings.

    The MongoDB client is returned unconnected; call ``await client.setup()``
    before use.
    """
    backend = get_story_backend(settings)

    if backend == StoryBackend.MONGODB:
        from tools.story_api.mongo_client import MongoStoryClient

        logger.info(
            "Creating MongoDB story client",
            database=settings.mongodb_database,
        )
        return MongoStoryClient(
            connection_string=settings.mongodb_url,
            database_name=settings.mongodb_database,
            upload_dir=settings.upload_dir,
        )

    from tools.story_api.mock_client import MockStoryClient

    logger.info("Creating in-memory story client")
    return MockStoryClient(latency=settings.mock_latency_seconds)
