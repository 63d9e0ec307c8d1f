"""
Story editing session.

Bridges the editor, the illustration tracker, the version manager and
the backend for one story. This is the failure boundary: every action
returns an ActionResult instead of raising, and every failure is logged.

The session owns the ``saving`` flag. While it is set, further saves and
restores are refused, which is what keeps version numbers from being
assigned out of order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from core.cache import QueryCache
from core.config import ClientPreferences, Settings, settings as default_settings
from core.logging import configure_logging, get_logger
from stories.content import (
    ContentBlock,
    RichEditor,
    load_into_editor,
    to_editable_rich_form,
)
from stories.errors import (
    StoryError,
    StoryNotFoundError,
    StoryTransportError,
    StoryValidationError,
)
from stories.illustrations import IllustrationTracker, ImageInsertedEvent
from stories.models import Story
from stories.prompts import render
from stories.versions import VersionHistoryManager, story_key
from tools.story_api.base import StoryClient


logger = get_logger(__name__)


class Surface(str, Enum):
    """Where the caller should show a result message."""
    INLINE = "inline"  # Next to the control that triggered it
    TOAST = "toast"    # Transient notification


@dataclass
class ActionResult:
    """Outcome of a session action."""
    ok: bool
    message: str
    value: Any = None
    error_kind: Optional[str] = None  # validation, not_found, transport
    surface: Surface = Surface.TOAST

    @classmethod
    def success(cls, message: str, value: Any = None) -> "ActionResult":
        return cls(ok=True, message=message, value=value)


class StoryEditorSession:
    """
    Editing session for a single story.

    Usage:
        session = StoryEditorSession(client, story_id, preferences=prefs)
        await session.load(editor)

        session.update_content(editor.get_content())
        result = await session.save()
        if not result.ok:
            show(result.message, result.surface)
    """

    def __init__(
        self,
        client: StoryClient,
        story_id: str,
        preferences: Optional[ClientPreferences] = None,
        cache: Optional[QueryCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.story_id = story_id
        self.settings = settings or default_settings
        self.preferences = preferences or ClientPreferences(locale=self.settings.default_locale)
        self.cache = cache or QueryCache(ttl=self.settings.cache_ttl_seconds)

        if self.preferences.dev_mode:
            configure_logging(self.preferences)

        self.tracker = IllustrationTracker(
            client,
            story_id,
            max_bytes=self.settings.max_illustration_bytes,
        )
        self.versions = VersionHistoryManager(client, self.cache)

        self.story: Optional[Story] = None
        self.draft: Optional[str] = None
        self.editor: Optional[RichEditor] = None
        self.saving = False

    # =========================================
    # State
    # =========================================

    @property
    def dirty(self) -> bool:
        """Whether the draft differs from the last loaded or saved content."""
        return self.story is not None and self.draft is not None and self.draft != self.story.content

    def _ensure_loaded(self) -> Story:
        if self.story is None:
            raise RuntimeError("Session not loaded. Call load() first.")
        return self.story

    async def load(self, editor: Optional[RichEditor] = None) -> Story:
        """
        Fetch the story and its illustrations, and fill an empty editor.

        Raises:
            StoryError: The story could not be loaded
        """
        key = story_key(self.story_id)
        story = self.cache.get(key)
        if story is None:
            story = await self.client.get_story(self.story_id)
            self.cache.set(key, story)

        self.story = story
        self.draft = story.content
        self.editor = editor
        load_into_editor(editor, story.content)
        await self.tracker.refresh()

        logger.info(
            "Story loaded",
            story_id=story.id,
            version=story.version,
            illustrations=len(self.tracker.illustrations),
        )
        return story

    def update_content(self, content: str) -> None:
        """Editor change callback."""
        self.draft = content

    def render(self) -> list[ContentBlock]:
        """Display blocks for the current working content."""
        story = self._ensure_loaded()
        content = self.draft if self.draft is not None else story.content
        return render(content, self.tracker.illustrations)

    # =========================================
    # Failure boundary
    # =========================================

    async def _guard(
        self,
        action: str,
        operation: Callable[[], Awaitable[Any]],
        success_message: str,
    ) -> ActionResult:
        try:
            value = await operation()
        except StoryValidationError as e:
            logger.info(f"{action} rejected", story_id=self.story_id, reason=str(e))
            return ActionResult(
                ok=False,
                message=str(e),
                error_kind="validation",
                surface=Surface.INLINE,
            )
        except StoryNotFoundError as e:
            logger.warning(f"{action} target not found", story_id=self.story_id, error=str(e))
            return ActionResult(ok=False, message=str(e), error_kind="not_found")
        except StoryTransportError as e:
            logger.error(f"{action} failed", story_id=self.story_id, error=str(e))
            return ActionResult(
                ok=False,
                message=f"{action} failed: {e}",
                error_kind="transport",
            )
        except StoryError as e:
            logger.error(f"{action} failed", story_id=self.story_id, error=str(e), exc_info=True)
            return ActionResult(ok=False, message=f"{action} failed: {e}", error_kind="transport")

        return ActionResult.success(success_message, value)

    # =========================================
    # Illustrations
    # =========================================

    async def on_image_inserted(self, event: ImageInsertedEvent) -> ActionResult:
        """Editor callback: an image was placed at ``event.offset``."""
        story = self._ensure_loaded()
        result = await self._guard(
            "Illustration upload",
            lambda: self.tracker.on_image_inserted(story, event),
            "Illustration added successfully.",
        )
        if result.ok:
            self.versions.invalidate(story.id)
        return result

    async def delete_illustration(self, illustration_id: Optional[str]) -> ActionResult:
        story = self._ensure_loaded()
        result = await self._guard(
            "Illustration delete",
            lambda: self.tracker.delete(story, illustration_id),
            "Illustration deleted successfully",
        )
        if result.ok:
            self.versions.invalidate(story.id)
        return result

    # =========================================
    # Versions
    # =========================================

    async def list_versions(self) -> ActionResult:
        story = self._ensure_loaded()
        return await self._guard(
            "Version listing",
            lambda: self.versions.list_versions(story),
            "Versions loaded",
        )

    async def _exclusive(
        self,
        action: str,
        operation: Callable[[Story], Awaitable[Story]],
        success_message: str,
    ) -> ActionResult:
        """Run a save-like operation under the saving flag."""
        story = self._ensure_loaded()
        if self.saving:
            logger.info(f"{action} refused, save in progress", story_id=story.id)
            return ActionResult(
                ok=False,
                message="A save is already in progress",
                error_kind="validation",
                surface=Surface.INLINE,
            )

        self.saving = True
        try:
            result = await self._guard(action, lambda: operation(story), success_message)
        finally:
            self.saving = False

        if result.ok:
            updated: Story = result.value
            self.story = updated
            self.cache.set(story_key(updated.id), updated)
        return result

    async def save(self, **changes: Any) -> ActionResult:
        """
        Save the draft plus any field changes as a new version.

        On failure the session's story and draft are left as they were.
        """
        async def apply(story: Story) -> Story:
            content = self.draft if self.draft is not None else story.content
            try:
                working = Story.model_validate(
                    {**story.model_dump(), **changes, "content": content}
                )
            except ValidationError as e:
                raise StoryValidationError(str(e)) from e
            return await self.versions.save(working)

        return await self._exclusive("Save", apply, "Story saved")

    async def restore(self, version_id: Optional[str]) -> ActionResult:
        """
        Restore a version as the new working state.

        The draft and the editor are replaced with the restored content.
        """
        result = await self._exclusive(
            "Restore",
            lambda story: self.versions.restore(story, version_id),
            "Version restored successfully",
        )
        if result.ok:
            self.draft = self.story.content
            if self.editor is not None:
                self.editor.set_content(to_editable_rich_form(self.story.content))
        return result

