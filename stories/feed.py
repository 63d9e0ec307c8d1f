"""
Locale-grouped incremental story feed.

The feed state is an immutable value; the pure functions below produce
the next state from the current one. StoryFeedAggregator owns the single
mutable reference and drives fetches against the backend.

State machine:

    IDLE --begin_loading--> LOADING --append_page--> SUCCESS | EXHAUSTED
                              |
                              +--fail--> ERROR --begin_loading--> LOADING

SUCCESS goes back to LOADING for the next page. EXHAUSTED is terminal
until the feed is reset.
"""

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from core.config import settings
from core.logging import get_logger
from stories.errors import StoryError, StoryValidationError
from stories.models import Story
from tools.story_api.base import StoriesPage, StoryClient, StoryFilters


logger = get_logger(__name__)


class FeedPhase(str, Enum):
    """Where the feed is in its load cycle."""
    IDLE = "idle"            # Nothing requested yet
    LOADING = "loading"      # A page fetch is in flight
    SUCCESS = "success"      # Last fetch succeeded, more pages exist
    ERROR = "error"          # Last fetch failed, accumulated stories kept
    EXHAUSTED = "exhausted"  # Last page received


class FeedPageState(BaseModel):
    """
    Everything the feed view renders.

    ``groups`` is rebuilt from ``stories`` on every change and never holds
    a story absent from it.
    """

    stories: list[Story] = Field(default_factory=list)
    groups: dict[str, list[Story]] = Field(default_factory=dict)
    phase: FeedPhase = FeedPhase.IDLE
    error: Optional[str] = None
    has_more: bool = True
    page: int = Field(default=0, description="Last page successfully loaded")
    page_size: int = Field(default=12, ge=1)

    model_config = {"frozen": True}

    @property
    def loading(self) -> bool:
        return self.phase == FeedPhase.LOADING

    @property
    def next_page(self) -> int:
        return self.page + 1


def group_by_locale(stories: Iterable[Story]) -> dict[str, list[Story]]:
    """Partition by locale in one pass, keeping first-seen group order."""
    groups: dict[str, list[Story]] = {}
    for story in stories:
        groups.setdefault(story.locale, []).append(story)
    return groups


def begin_loading(state: FeedPageState) -> FeedPageState:
    """
    Enter LOADING.

    Raises:
        StoryValidationError: A fetch is already in flight or the feed
            has no more pages
    """
    if state.loading:
        raise StoryValidationError("A page fetch is already in flight")
    if not state.has_more:
        raise StoryValidationError("The feed has no more pages")
    return state.model_copy(update={"phase": FeedPhase.LOADING})


def append_page(existing: FeedPageState, page: StoriesPage) -> FeedPageState:
    """
    Merge a fetched page into the feed.

    Stories are appended in arrival order without de-duplication, then
    the locale groups are rebuilt from the flat list. A short page or an
    explicit has_more=False exhausts the feed.
    """
    stories = [*existing.stories, *page.stories]
    exhausted = not page.has_more or len(page.stories) < existing.page_size

    return existing.model_copy(
        update={
            "stories": stories,
            "groups": group_by_locale(stories),
            "phase": FeedPhase.EXHAUSTED if exhausted else FeedPhase.SUCCESS,
            "error": None,
            "has_more": not exhausted,
            "page": page.page,
        }
    )


def fail(state: FeedPageState, message: str) -> FeedPageState:
    """Enter ERROR, keeping everything loaded so far."""
    return state.model_copy(update={"phase": FeedPhase.ERROR, "error": message})


def should_load_more(state: FeedPageState, viewport_intersecting: bool) -> bool:
    """Whether the visibility sensor should trigger the next fetch."""
    return not state.loading and state.has_more and viewport_intersecting


class StoryFeedAggregator:
    """
    Drives paginated fetches and owns the feed state.

    Each fetch is stamped with the generation current when it started.
    ``reset`` bumps the generation, so a response that lands after a
    reset (e.g. the filters changed mid-flight) is dropped instead of
    being merged into the new feed.

    Usage:
        feed = StoryFeedAggregator(client, page_size=20)
        await feed.load_next()

        # From the visibility sensor at the bottom of the list
        await feed.on_visibility(intersecting=True)
    """

    def __init__(
        self,
        client: StoryClient,
        page_size: Optional[int] = None,
        filters: Optional[StoryFilters] = None,
    ):
        self.client = client
        self.filters = filters or StoryFilters()
        self._page_size = page_size or settings.feed_page_size
        self._state = FeedPageState(page_size=self._page_size)
        self._generation = 0

    @property
    def state(self) -> FeedPageState:
        return self._state

    @property
    def groups(self) -> dict[str, list[Story]]:
        return self._state.groups

    async def load_next(self) -> FeedPageState:
        """
        Fetch the next page if no fetch is in flight and pages remain.

        Fetch failures move the feed to ERROR; they are not raised.
        """
        if self._state.loading or not self._state.has_more:
            logger.debug(
                "Skipping page fetch",
                phase=self._state.phase,
                has_more=self._state.has_more,
            )
            return self._state

        generation = self._generation
        self._state = begin_loading(self._state)
        page_number = self._state.next_page

        try:
            page = await self.client.fetch_stories_page(
                page_number,
                self._page_size,
                self.filters,
            )
        except StoryError as e:
            if generation != self._generation:
                logger.info("Discarding failure of a superseded fetch", page=page_number)
                return self._state
            logger.warning(
                "Story page fetch failed",
                page=page_number,
                error=str(e),
            )
            self._state = fail(self._state, str(e))
            return self._state

        if generation != self._generation:
            logger.info(
                "Discarding stale story page",
                page=page_number,
                generation=generation,
                current_generation=self._generation,
            )
            return self._state

        self._state = append_page(self._state, page)
        logger.debug(
            "Story page merged",
            page=page_number,
            received=len(page.stories),
            total=len(self._state.stories),
            phase=self._state.phase,
        )
        return self._state

    async def on_visibility(self, intersecting: bool) -> FeedPageState:
        """Visibility sensor callback."""
        if should_load_more(self._state, intersecting):
            return await self.load_next()
        return self._state

    async def retry(self) -> FeedPageState:
        """Retry after an error; a no-op in any other phase."""
        if self._state.phase != FeedPhase.ERROR:
            return self._state
        return await self.load_next()

    def reset(self, filters: Optional[StoryFilters] = None) -> FeedPageState:
        """Start over, optionally with new filters. In-flight fetches are orphaned."""
        if filters is not None:
            self.filters = filters
        self._generation += 1
        self._state = FeedPageState(page_size=self._page_size)
        logger.debug("Feed reset", generation=self._generation)
        return self._state

    async def available_weeks(self) -> list[int]:
        """Week numbers that have stories under the current filters."""
        return await self.client.get_available_weeks(self.filters)
