"""
Version history.

Every save appends an immutable snapshot on the backend. Restoring a
snapshot does not rewrite history: the backend applies the snapshot as
the working state and records it as a brand-new version.

The ``saving`` flag that keeps saves and restores from interleaving is
owned by the caller (see manager.session); nothing here locks.
"""

from typing import Optional

from core.cache import QueryCache
from core.config import settings
from core.logging import get_logger
from stories.errors import StoryTransportError, StoryValidationError
from stories.models import Story, StoryVersion
from tools.story_api.base import StoryClient


logger = get_logger(__name__)


def story_key(story_id: str) -> str:
    return f"story:{story_id}"


def versions_key(story_id: str) -> str:
    return f"story:{story_id}:versions"


def chronological(versions: list[StoryVersion]) -> list[StoryVersion]:
    """Versions ordered by creation time, for display."""
    return sorted(versions, key=lambda v: (v.created_at, v.version))


def label(version: StoryVersion) -> str:
    return f"Version {version.version} - {version.created_at:%Y-%m-%d %H:%M}"


class VersionHistoryManager:
    """
    Lists, saves and restores story versions.

    Reads go through the query cache; any write drops the story's
    cached detail and version list so the next read hits the backend.
    """

    def __init__(self, client: StoryClient, cache: Optional[QueryCache] = None):
        self.client = client
        self.cache = cache or QueryCache(ttl=settings.cache_ttl_seconds)

    async def list_versions(self, story: Story) -> list[StoryVersion]:
        """Versions of the story, ascending by version number."""
        key = versions_key(story.id)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        versions = sorted(
            await self.client.list_versions(story.id),
            key=lambda v: v.version,
        )
        self.cache.set(key, versions)
        return list(versions)

    async def save(self, story: Story) -> Story:
        """Persist the working state; the backend appends the snapshot."""
        saved = await self.client.save_story(story)
        self._check_monotonic(story, saved)
        self.invalidate(story.id)

        logger.info(
            "Story saved",
            story_id=story.id,
            version=saved.version,
        )
        return saved

    async def restore(self, story: Story, version_id: Optional[str]) -> Story:
        """
        Make a snapshot the story's working state, as a new version.

        Raises:
            StoryValidationError: No version selected
            StoryNotFoundError: Unknown version
            StoryTransportError: Backend failure or a non-increasing version
        """
        if not version_id:
            raise StoryValidationError("No version selected")

        logger.info(
            "Restoring version",
            story_id=story.id,
            version_id=version_id,
            current_version=story.version,
        )

        restored = await self.client.restore_version(story.id, version_id)
        self._check_monotonic(story, restored)
        self.invalidate(story.id)

        logger.info(
            "Version restored",
            story_id=story.id,
            version_id=version_id,
            version=restored.version,
        )
        return restored

    def invalidate(self, story_id: str) -> None:
        """Drop the cached detail and version list of a story."""
        self.cache.invalidate(story_key(story_id))

    @staticmethod
    def _check_monotonic(before: Story, after: Story) -> None:
        if after.version <= before.version:
            logger.error(
                "Backend returned a non-increasing version",
                story_id=before.id,
                before=before.version,
                after=after.version,
            )
            raise StoryTransportError(
                f"Version did not advance (was {before.version}, got {after.version})"
            )
