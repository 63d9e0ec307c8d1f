"""
Tests for the locale-grouped story feed.
"""

import asyncio

import pytest

from stories.errors import StoryValidationError
from stories.feed import (
    FeedPageState,
    FeedPhase,
    StoryFeedAggregator,
    append_page,
    begin_loading,
    fail,
    group_by_locale,
    should_load_more,
)
from tools.story_api.base import StoriesPage, StoryFilters
from tools.story_api.mock_client import MockStoryClient


class GatedClient(MockStoryClient):
    """Mock backend whose page fetches wait until released."""

    def __init__(self):
        super().__init__(latency=0)
        self.gate = asyncio.Event()

    async def fetch_stories_page(self, page, page_size, filters=None):
        await self.gate.wait()
        return await super().fetch_stories_page(page, page_size, filters)


async def seed(client, make_story, locales):
    for day, locale in enumerate(locales, start=1):
        await client.create_story(
            make_story(title=f"{locale}-{day}", locale=locale, day_order=min(day, 7))
        )


def test_group_by_locale(make_story):
    stories = [
        make_story(title="a", locale="fr"),
        make_story(title="b", locale="en"),
        make_story(title="c", locale="fr"),
    ]

    groups = group_by_locale(stories)

    assert list(groups) == ["fr", "en"]
    assert [s.title for s in groups["fr"]] == ["a", "c"]


def test_append_page_keeps_arrival_order(make_story):
    state = begin_loading(FeedPageState(page_size=2))
    first = [make_story(title="1", locale="fr"), make_story(title="2", locale="en")]

    state = append_page(state, StoriesPage(stories=first, has_more=True, page=1))
    state = append_page(
        begin_loading(state),
        StoriesPage(stories=[make_story(title="3", locale="fr")], has_more=False, page=2),
    )

    assert [s.title for s in state.stories] == ["1", "2", "3"]
    assert [s.title for s in state.groups["fr"]] == ["1", "3"]
    assert sum(len(g) for g in state.groups.values()) == len(state.stories)
    assert state.phase == FeedPhase.EXHAUSTED
    assert state.page == 2


def test_short_page_exhausts_feed(make_story):
    state = begin_loading(FeedPageState(page_size=12))
    page = StoriesPage(stories=[make_story() for _ in range(5)], has_more=True, page=1)

    state = append_page(state, page)

    assert not state.has_more
    assert state.phase == FeedPhase.EXHAUSTED
    assert not should_load_more(state, viewport_intersecting=True)


def test_begin_loading_guards():
    loading = begin_loading(FeedPageState())
    with pytest.raises(StoryValidationError):
        begin_loading(loading)

    exhausted = FeedPageState(has_more=False, phase=FeedPhase.EXHAUSTED)
    with pytest.raises(StoryValidationError):
        begin_loading(exhausted)


def test_fail_keeps_stories(make_story):
    state = FeedPageState(stories=[make_story()], page=1)

    failed = fail(begin_loading(state), "boom")

    assert failed.phase == FeedPhase.ERROR
    assert failed.error == "boom"
    assert len(failed.stories) == 1
    assert should_load_more(failed, viewport_intersecting=True)


def test_should_load_more_needs_intersection():
    assert not should_load_more(FeedPageState(), viewport_intersecting=False)
    assert should_load_more(FeedPageState(), viewport_intersecting=True)


@pytest.mark.asyncio
async def test_paginates_to_exhaustion(mock_client, make_story):
    await seed(mock_client, make_story, ["fr", "en", "fr", "es", "en"])
    feed = StoryFeedAggregator(mock_client, page_size=2)

    await feed.load_next()
    assert feed.state.phase == FeedPhase.SUCCESS
    await feed.on_visibility(intersecting=True)
    await feed.on_visibility(intersecting=True)

    assert feed.state.phase == FeedPhase.EXHAUSTED
    assert len(feed.state.stories) == 5
    assert set(feed.groups) == {"fr", "en", "es"}

    # Exhausted feeds make no further calls
    await feed.on_visibility(intersecting=True)
    assert mock_client.calls["fetch_stories_page"] == 3


@pytest.mark.asyncio
async def test_failure_then_retry(mock_client, make_story):
    await seed(mock_client, make_story, ["fr", "en", "fr"])
    feed = StoryFeedAggregator(mock_client, page_size=2)
    await feed.load_next()

    mock_client.fail_next("fetch_stories_page")
    state = await feed.load_next()

    assert state.phase == FeedPhase.ERROR
    assert len(state.stories) == 2

    state = await feed.retry()

    assert state.phase == FeedPhase.EXHAUSTED
    assert len(state.stories) == 3
    assert state.error is None


@pytest.mark.asyncio
async def test_retry_outside_error_is_noop(mock_client):
    feed = StoryFeedAggregator(mock_client, page_size=2)

    await feed.retry()

    assert mock_client.calls["fetch_stories_page"] == 0


@pytest.mark.asyncio
async def test_concurrent_load_is_ignored(make_story):
    client = GatedClient()
    await seed(client, make_story, ["fr"])
    feed = StoryFeedAggregator(client, page_size=2)

    first = asyncio.create_task(feed.load_next())
    await asyncio.sleep(0)
    assert feed.state.loading

    await feed.load_next()
    client.gate.set()
    await first

    assert client.calls["fetch_stories_page"] == 1


@pytest.mark.asyncio
async def test_stale_page_discarded_after_reset(make_story):
    client = GatedClient()
    await seed(client, make_story, ["fr", "en"])
    feed = StoryFeedAggregator(client, page_size=12)

    in_flight = asyncio.create_task(feed.load_next())
    await asyncio.sleep(0)

    feed.reset(StoryFilters(locale="en"))
    client.gate.set()
    await in_flight

    assert feed.state.phase == FeedPhase.IDLE
    assert feed.state.stories == []

    await feed.load_next()
    assert [s.locale for s in feed.state.stories] == ["en"]


@pytest.mark.asyncio
async def test_available_weeks(mock_client, make_story):
    await mock_client.create_story(make_story(week_number=3))
    await mock_client.create_story(make_story(week_number=1, locale="en"))
    feed = StoryFeedAggregator(mock_client, filters=StoryFilters(locale="fr"))

    assert await feed.available_weeks() == [3]


def test_last_page_of_eight_exhausts_feed(make_story):
    state = begin_loading(FeedPageState(page_size=20))
    page = StoriesPage(stories=[make_story() for _ in range(8)], has_more=False, page=1)

    state = append_page(state, page)

    assert state.phase == FeedPhase.EXHAUSTED
    assert not state.has_more
    assert len(state.stories) == 8
    assert not should_load_more(state, viewport_intersecting=True)
