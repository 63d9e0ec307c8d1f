"""
In-memory story backend.

Stands in for the real backend in tests and local development. Keeps
stories, illustrations and version snapshots in dictionaries and follows
the same rules a real backend must: server-assigned version numbers,
position-ordered illustrations, NotFound for unknown ids.

Key features:
- Optional simulated network latency
- Scripted failures for testing error handling
- Per-operation call counters
"""

import asyncio
import uuid
from collections import Counter
from typing import Optional

from core.config import settings
from core.logging import get_logger
from stories.models import Illustration, Story, StoryVersion, utcnow
from tools.story_api.base import (
    StoriesPage,
    StoryClient,
    StoryError,
    StoryFilters,
    StoryNotFoundError,
    StoryTransportError,
    UploadResult,
    build_storage_path,
)


logger = get_logger(__name__)


class MockStoryClient(StoryClient):
    """
    Mock implementation of StoryClient.

    All state lives in process memory behind an asyncio.Lock, so
    concurrent uploads from one event loop are safe.

    Usage:
        client = MockStoryClient()
        story = await client.create_story(story)

        # Make the next upload fail like a dropped connection
        client.fail_next("upload_illustration")
    """

    def __init__(self, latency: Optional[float] = None):
        """
        Initialize mock client.

        Args:
            latency: Seconds to sleep per call. Defaults to config value.
        """
        self._stories: dict[str, Story] = {}
        self._illustrations: dict[str, list[Illustration]] = {}
        self._versions: dict[str, list[StoryVersion]] = {}
        self._latency = settings.mock_latency_seconds if latency is None else latency
        self._failures: dict[str, list[StoryError]] = {}
        self._lock = asyncio.Lock()
        self.calls: Counter[str] = Counter()

    async def _enter(self, operation: str) -> None:
        """Count the call, simulate latency and raise a scripted failure."""
        self.calls[operation] += 1
        if self._latency:
            await asyncio.sleep(self._latency)
        pending = self._failures.get(operation)
        if pending:
            error = pending.pop(0)
            logger.debug("Mock backend failing call", operation=operation, error=str(error))
            raise error

    def _require_story(self, story_id: str) -> Story:
        story = self._stories.get(story_id)
        if story is None:
            raise StoryNotFoundError(f"Story {story_id} not found")
        return story

    def _snapshot(self, story: Story) -> None:
        self._versions.setdefault(story.id, []).append(
            StoryVersion.from_story(story, version_id=f"ver-{uuid.uuid4().hex[:12]}")
        )

    def _next_version(self, story_id: str) -> int:
        versions = self._versions.get(story_id, [])
        current = self._stories[story_id].version
        return max([current, *(v.version for v in versions)]) + 1

    def _with_illustrations(self, story: Story) -> Story:
        return story.model_copy(
            update={"illustrations": self._sorted_illustrations(story.id)}
        )

    def _sorted_illustrations(self, story_id: str) -> list[Illustration]:
        return sorted(self._illustrations.get(story_id, []), key=lambda i: i.position)

    # =========================================
    # Stories
    # =========================================

    async def create_story(self, story: Story) -> Story:
        await self._enter("create_story")
        async with self._lock:
            now = utcnow()
            stored = story.model_copy(
                update={
                    "id": story.id or f"story-{uuid.uuid4().hex[:12]}",
                    "version": 1,
                    "created_at": now,
                    "modified_at": now,
                    "illustrations": [],
                }
            )
            self._stories[stored.id] = stored
            self._illustrations.setdefault(stored.id, [])
            self._snapshot(stored)
            return self._with_illustrations(stored)

    async def get_story(self, story_id: str) -> Story:
        await self._enter("get_story")
        async with self._lock:
            return self._with_illustrations(self._require_story(story_id))

    async def save_story(self, story: Story) -> Story:
        await self._enter("save_story")
        async with self._lock:
            existing = self._require_story(story.id)
            saved = story.model_copy(
                update={
                    "version": self._next_version(story.id),
                    "created_at": existing.created_at,
                    "modified_at": utcnow(),
                    "illustrations": [],
                }
            )
            self._stories[saved.id] = saved
            self._snapshot(saved)
            return self._with_illustrations(saved)

    async def fetch_stories_page(
        self,
        page: int,
        page_size: int,
        filters: Optional[StoryFilters] = None,
    ) -> StoriesPage:
        await self._enter("fetch_stories_page")
        filters = filters or StoryFilters()
        async with self._lock:
            matching = [
                story for story in self._stories.values()
                if filters.matches(story, len(self._illustrations.get(story.id, [])))
            ]
            matching.sort(key=lambda s: (s.day_order, s.created_at))

            offset = (max(page, 1) - 1) * page_size
            window = matching[offset:offset + page_size]
            return StoriesPage(
                stories=[self._with_illustrations(s) for s in window],
                has_more=offset + len(window) < len(matching),
                page=page,
                total=len(matching),
            )

    async def get_available_weeks(
        self,
        filters: Optional[StoryFilters] = None,
    ) -> list[int]:
        await self._enter("get_available_weeks")
        filters = filters or StoryFilters()
        async with self._lock:
            return sorted({
                story.week_number for story in self._stories.values()
                if filters.matches(story, len(self._illustrations.get(story.id, [])))
            })

    # =========================================
    # Illustrations
    # =========================================

    async def list_illustrations(self, story_id: str) -> list[Illustration]:
        await self._enter("list_illustrations")
        async with self._lock:
            self._require_story(story_id)
            return self._sorted_illustrations(story_id)

    async def upload_illustration(
        self,
        story_id: str,
        data: bytes,
        position: int,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> UploadResult:
        await self._enter("upload_illustration")
        async with self._lock:
            self._require_story(story_id)
            illustration = Illustration(
                id=f"ill-{uuid.uuid4().hex[:12]}",
                story_id=story_id,
                image_path=build_storage_path(filename, root=settings.upload_dir),
                position=position,
                filename=filename,
                mime_type=mime_type,
                created_at=utcnow(),
            )
            self._illustrations.setdefault(story_id, []).append(illustration)
            return UploadResult(
                illustration_id=illustration.id,
                storage_path=illustration.image_path,
            )

    async def delete_illustration(self, story_id: str, illustration_id: str) -> None:
        await self._enter("delete_illustration")
        async with self._lock:
            illustrations = self._illustrations.get(story_id, [])
            remaining = [i for i in illustrations if i.id != illustration_id]
            if len(remaining) == len(illustrations):
                raise StoryNotFoundError(
                    f"Illustration {illustration_id} not found on story {story_id}"
                )
            self._illustrations[story_id] = remaining

    # =========================================
    # Versions
    # =========================================

    async def list_versions(self, story_id: str) -> list[StoryVersion]:
        await self._enter("list_versions")
        async with self._lock:
            self._require_story(story_id)
            return sorted(self._versions.get(story_id, []), key=lambda v: v.version)

    async def restore_version(self, story_id: str, version_id: str) -> Story:
        await self._enter("restore_version")
        async with self._lock:
            current = self._require_story(story_id)
            snapshot = next(
                (v for v in self._versions.get(story_id, []) if v.id == version_id),
                None,
            )
            if snapshot is None:
                raise StoryNotFoundError(f"Version {version_id} not found")

            restored = current.model_copy(
                update={
                    **snapshot.snapshot_fields(),
                    "version": self._next_version(story_id),
                    "modified_at": utcnow(),
                }
            )
            self._stories[story_id] = restored
            self._snapshot(restored)
            return self._with_illustrations(restored)

    # =========================================
    # Testing utilities
    # =========================================

    def fail_next(self, operation: str, error: Optional[StoryError] = None) -> None:
        """Make the next call of ``operation`` raise (transport failure by default)."""
        self._failures.setdefault(operation, []).append(
            error or StoryTransportError(f"Simulated {operation} failure")
        )

    async def set_latency(self, seconds: float) -> None:
        self._latency = seconds

    async def clear_all(self) -> None:
        """Clear all stored data (for testing)."""
        async with self._lock:
            self._stories.clear()
            self._illustrations.clear()
            self._versions.clear()
            self._failures.clear()
            self.calls.clear()
