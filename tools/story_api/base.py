"""
Abstract base class for story backend clients.

This defines the contract that all backend implementations must follow,
whether the in-memory mock, MongoDB, or a remote HTTP service.

Design principles:
- Transport agnostic: Components only see this interface
- Async-first: All operations are coroutines
- Result objects: Return models and dataclasses, not raw dicts
- One error hierarchy: Implementations raise stories.errors types only
"""

import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel

from stories.errors import (
    StoryError,
    StoryNotFoundError,
    StoryTransportError,
    StoryValidationError,
)
from stories.models import Illustration, Story, StoryVersion, normalize_image_path, utcnow


UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    return UNSAFE_FILENAME_CHARS.sub("_", filename)


def build_storage_path(
    filename: Optional[str],
    root: str = "uploads",
    now: Optional[datetime] = None,
) -> str:
    """
    Storage path for a new upload.

    Uploads are grouped by month (``uploads/2025-03/``) and get a unique
    prefix so two files with the same name never collide.
    """
    now = now or utcnow()
    name = PurePosixPath(filename or "illustration.png")
    stem = sanitize_filename(name.stem) or "illustration"
    unique_name = f"{uuid.uuid4()}-{stem}{name.suffix}"
    return normalize_image_path(f"{root}/{now:%Y-%m}/{unique_name}")


@dataclass
class UploadResult:
    """Identifier and storage path assigned to an uploaded illustration."""
    illustration_id: str
    storage_path: str

    def __post_init__(self) -> None:
        self.storage_path = normalize_image_path(self.storage_path)


@dataclass
class StoriesPage:
    """
    One page of the story list.

    ``page`` is 1-based. ``total`` is the number of stories matching the
    filters across all pages, when the backend knows it.
    """
    stories: list[Story] = field(default_factory=list)
    has_more: bool = False
    page: int = 1
    total: Optional[int] = None


class StoryFilters(BaseModel):
    """Optional filters for listing stories. None means "any"."""

    locale: Optional[str] = None
    theme: Optional[str] = None
    age_group: Optional[str] = None
    week_number: Optional[int] = None
    day_order: Optional[int] = None
    search: Optional[str] = None
    has_image: Optional[bool] = None
    series_name: Optional[str] = None

    def matches(self, story: Story, illustration_count: int = 0) -> bool:
        """In-process equivalent of the backend query."""
        if self.locale and story.locale != self.locale:
            return False
        if self.theme and self.theme not in story.themes:
            return False
        if self.age_group and story.age_group != self.age_group:
            return False
        if self.week_number is not None and story.week_number != self.week_number:
            return False
        if self.day_order is not None and story.day_order != self.day_order:
            return False
        if self.series_name and story.series_name != self.series_name:
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in story.title.lower() and needle not in story.content.lower():
                return False
        if self.has_image is not None and (illustration_count > 0) != self.has_image:
            return False
        return True


class StoryClient(ABC):
    """
    Abstract interface for story backends.

    Usage:
        client = MockStoryClient()

        story = await client.create_story(Story(title="...", ...))
        upload = await client.upload_illustration(story.id, data, position=42)
        versions = await client.list_versions(story.id)
        restored = await client.restore_version(story.id, versions[0].id)
        page = await client.fetch_stories_page(1, 12, StoryFilters(locale="fr"))
    """

    # =========================================
    # Stories
    # =========================================

    @abstractmethod
    async def create_story(self, story: Story) -> Story:
        """
        Persist a new story at version 1 and record its first snapshot.

        Returns:
            The stored story with its assigned id
        """
        pass

    @abstractmethod
    async def get_story(self, story_id: str) -> Story:
        """
        Get a story with its illustrations.

        Raises:
            StoryNotFoundError: If story_id doesn't exist
        """
        pass

    @abstractmethod
    async def save_story(self, story: Story) -> Story:
        """
        Save the story's working state as a new version.

        The backend assigns version = current max + 1 and appends a
        snapshot; the version field of the argument is ignored.

        Raises:
            StoryNotFoundError: If the story doesn't exist
        """
        pass

    @abstractmethod
    async def fetch_stories_page(
        self,
        page: int,
        page_size: int,
        filters: Optional[StoryFilters] = None,
    ) -> StoriesPage:
        """
        Fetch one page of stories, ordered by day then creation time.

        Args:
            page: 1-based page number
            page_size: Maximum stories per page
            filters: Optional filters
        """
        pass

    @abstractmethod
    async def get_available_weeks(
        self,
        filters: Optional[StoryFilters] = None,
    ) -> list[int]:
        """Distinct week numbers that have stories, ascending."""
        pass

    # =========================================
    # Illustrations
    # =========================================

    @abstractmethod
    async def list_illustrations(self, story_id: str) -> list[Illustration]:
        """All illustrations of a story, ordered by position."""
        pass

    @abstractmethod
    async def upload_illustration(
        self,
        story_id: str,
        data: bytes,
        position: int,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Store an image and attach it to the story.

        Raises:
            StoryNotFoundError: If the story doesn't exist
        """
        pass

    @abstractmethod
    async def delete_illustration(self, story_id: str, illustration_id: str) -> None:
        """
        Remove an illustration.

        Raises:
            StoryNotFoundError: If the illustration doesn't exist on this story
        """
        pass

    # =========================================
    # Versions
    # =========================================

    @abstractmethod
    async def list_versions(self, story_id: str) -> list[StoryVersion]:
        """Version snapshots of a story, ascending by version number."""
        pass

    @abstractmethod
    async def restore_version(self, story_id: str, version_id: str) -> Story:
        """
        Make a snapshot the story's working state, as a new version.

        Raises:
            StoryNotFoundError: If the story or version doesn't exist
        """
        pass

    async def close(self) -> None:
        """Clean up resources (connections, pools)."""
        pass


__all__ = [
    "StoriesPage",
    "StoryClient",
    "StoryError",
    "StoryFilters",
    "StoryNotFoundError",
    "StoryTransportError",
    "StoryValidationError",
    "UploadResult",
    "build_storage_path",
    "sanitize_filename",
]
