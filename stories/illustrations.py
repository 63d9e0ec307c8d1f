"""
Illustration position tracking.

Keeps a story's illustration set in step with the backend. Uploads are
validated locally, then persisted; after every mutation the whole list
is refetched rather than patched, so the local order is always the
backend's order.
"""

from dataclasses import dataclass
from typing import Optional

from core.config import settings
from core.logging import get_logger
from stories.errors import StoryError, StoryValidationError
from stories.models import Illustration, Story
from tools.story_api.base import StoryClient


logger = get_logger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/gif")


@dataclass(frozen=True)
class ImageInsertedEvent:
    """Emitted by the editor when an image is placed at a content offset."""
    offset: int
    data: bytes
    filename: Optional[str] = None
    mime_type: Optional[str] = None


class IllustrationTracker:
    """
    Illustration set of one story.

    Usage:
        tracker = IllustrationTracker(client, story.id)
        await tracker.refresh()

        illustration = await tracker.attach(story, data, position=120)
        await tracker.delete(story, illustration.id)
    """

    def __init__(
        self,
        client: StoryClient,
        story_id: str,
        max_bytes: Optional[int] = None,
    ):
        self.client = client
        self.story_id = story_id
        self.max_bytes = max_bytes or settings.max_illustration_bytes
        self._illustrations: list[Illustration] = []
        self._pending: list[Illustration] = []

    @property
    def illustrations(self) -> list[Illustration]:
        """Persisted illustrations in backend order."""
        return list(self._illustrations)

    @property
    def pending(self) -> list[Illustration]:
        """Illustrations whose upload is still in flight."""
        return list(self._pending)

    def deletable(self) -> list[Illustration]:
        """Illustrations that can go through the id-based delete path."""
        return [i for i in self._illustrations if i.is_persisted]

    async def refresh(self) -> list[Illustration]:
        """Replace the local set with the backend's list."""
        self._illustrations = await self.client.list_illustrations(self.story_id)
        return self.illustrations

    def validate(
        self,
        data: bytes,
        position: int,
        mime_type: Optional[str] = None,
    ) -> None:
        """
        Check an upload before it is attempted.

        Raises:
            StoryValidationError: Oversized file, unsupported type or
                negative position
        """
        if len(data) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise StoryValidationError(
                f"Image is too large. Maximum size is {limit_mb:g}MB"
            )
        if mime_type is not None and mime_type not in ALLOWED_MIME_TYPES:
            raise StoryValidationError(
                "Invalid file type. Only jpeg, png, and gif are allowed."
            )
        if position < 0:
            raise StoryValidationError("Insertion position cannot be negative")

    def _check_story(self, story: Story) -> None:
        if story.id != self.story_id:
            raise StoryValidationError(
                f"Story {story.id} is not tracked here (tracking {self.story_id})"
            )

    async def attach(
        self,
        story: Story,
        data: bytes,
        position: int,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Illustration:
        """
        Upload an image at a content offset.

        Returns:
            The persisted illustration with backend id and storage path

        Raises:
            StoryValidationError: Rejected before any backend call
            StoryError: Backend failure; the pending entry is dropped
        """
        self._check_story(story)
        self.validate(data, position, mime_type)

        pending = Illustration(
            story_id=story.id,
            data=data,
            position=position,
            filename=filename,
            mime_type=mime_type,
        )
        self._pending.append(pending)

        try:
            result = await self.client.upload_illustration(
                story.id,
                data,
                position,
                filename=filename,
                mime_type=mime_type,
            )
        except StoryError as e:
            logger.error(
                "Illustration upload failed",
                story_id=story.id,
                position=position,
                error=str(e),
            )
            raise
        finally:
            self._pending = [p for p in self._pending if p is not pending]

        logger.info(
            "Illustration uploaded",
            story_id=story.id,
            illustration_id=result.illustration_id,
            position=position,
        )

        # The upload is committed from here on
        try:
            await self.refresh()
        except StoryError as e:
            logger.warning(
                "Illustration list refresh failed after upload",
                story_id=story.id,
                illustration_id=result.illustration_id,
                error=str(e),
            )

        return Illustration(
            id=result.illustration_id,
            story_id=story.id,
            image_path=result.storage_path,
            position=position,
            filename=filename,
            mime_type=mime_type,
        )

    async def on_image_inserted(self, story: Story, event: ImageInsertedEvent) -> Illustration:
        return await self.attach(
            story,
            event.data,
            event.offset,
            filename=event.filename,
            mime_type=event.mime_type,
        )

    async def delete(self, story: Story, illustration_id: Optional[str]) -> None:
        """
        Remove an illustration from the backend and the local set.

        Not safe to retry blindly: a NotFound from the backend is passed
        to the caller as-is.

        Raises:
            StoryValidationError: The illustration has no id yet
            StoryNotFoundError: Unknown illustration id
        """
        self._check_story(story)
        if not illustration_id:
            logger.warning(
                "Refusing to delete illustration without id",
                story_id=story.id,
            )
            raise StoryValidationError(
                "Illustration has not finished uploading and cannot be deleted yet"
            )

        await self.client.delete_illustration(story.id, illustration_id)

        logger.info(
            "Illustration deleted",
            story_id=story.id,
            illustration_id=illustration_id,
        )
        await self.refresh()
