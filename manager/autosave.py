"""
Background autosave for an editing session.

Uses APScheduler to periodically save the session's draft. Each autosave
is an ordinary session save, so it appends a version snapshot and obeys
the session's ``saving`` flag like a manual save.

Design principles:
- Non-blocking: Runs on the event loop, never blocks editing
- Opt-in: Only runs when the injected preferences enable auto_save
- Quiet: Skips when the draft is clean or a save is already in flight
"""

import asyncio
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.logging import get_logger

if TYPE_CHECKING:
    from manager.session import ActionResult, StoryEditorSession


logger = get_logger(__name__)


class AutoSaveScheduler:
    """
    Periodic autosave for one StoryEditorSession.

    Usage:
        autosave = AutoSaveScheduler(session)
        await autosave.start()
        # ... user edits ...
        await autosave.shutdown()
    """

    def __init__(
        self,
        session: "StoryEditorSession",
        interval_seconds: Optional[int] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            session: The editing session to save
            interval_seconds: Seconds between autosaves (default from config)
        """
        self.session = session
        self.interval = interval_seconds or settings.autosave_interval_seconds

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._save_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.session.preferences.auto_save

    async def start(self) -> None:
        """Start periodic autosave if the preferences allow it."""
        if not self.enabled:
            logger.info("Autosave disabled by preferences", story_id=self.session.story_id)
            return

        if self._scheduler is not None:
            logger.warning("Autosave already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._autosave,
            trigger=IntervalTrigger(seconds=self.interval),
            id=f"autosave:{self.session.story_id}",
            name="Autosave story draft",
            max_instances=1,  # Prevent overlapping saves
            replace_existing=True,
        )
        self._scheduler.start()

        logger.info(
            "Autosave started",
            story_id=self.session.story_id,
            interval_seconds=self.interval,
        )

    async def shutdown(self) -> None:
        """Stop autosaving, waiting for an in-flight save to finish."""
        if self._scheduler is None:
            return

        async with self._save_lock:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        logger.info("Autosave stopped", story_id=self.session.story_id)

    async def _autosave(self) -> Optional["ActionResult"]:
        """
        Single autosave cycle.

        Called periodically by APScheduler. Failures are reported by the
        session and logged; they never stop the scheduler.
        """
        if self.session.story is None or not self.session.dirty:
            logger.debug("Nothing to autosave", story_id=self.session.story_id)
            return None

        if self.session.saving:
            logger.debug("Save in progress, skipping autosave", story_id=self.session.story_id)
            return None

        async with self._save_lock:
            result = await self.session.save()

        if not result.ok:
            logger.warning(
                "Autosave failed",
                story_id=self.session.story_id,
                error=result.message,
            )
        return result

    async def trigger_save(self) -> Optional["ActionResult"]:
        """
        Run an autosave cycle immediately.

        Useful for testing or before navigating away from the editor.
        """
        return await self._autosave()

    @property
    def is_running(self) -> bool:
        """Check if autosave is running."""
        return self._scheduler is not None and self._scheduler.running
