"""
Tests for VersionHistoryManager.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.cache import QueryCache
from stories.errors import StoryNotFoundError, StoryTransportError, StoryValidationError
from stories.models import StoryVersion
from stories.versions import (
    VersionHistoryManager,
    chronological,
    label,
    story_key,
    versions_key,
)


@pytest.fixture
def cache():
    return QueryCache(ttl=60)


@pytest.fixture
def manager(mock_client, cache):
    return VersionHistoryManager(mock_client, cache)


async def save_times(manager, story, count):
    for i in range(count):
        story = await manager.save(story.model_copy(update={"content": f"edit {i}"}))
    return story


@pytest.mark.asyncio
async def test_save_appends_version(manager, story):
    saved = await manager.save(story.model_copy(update={"content": "v2"}))

    assert saved.version == 2
    versions = await manager.list_versions(saved)
    assert [v.version for v in versions] == [1, 2]


@pytest.mark.asyncio
async def test_restore_creates_new_version(manager, story):
    """Restoring version 2 of a story at version 5 yields version 6."""
    current = await save_times(manager, story, 4)
    assert current.version == 5

    versions = await manager.list_versions(current)
    v2 = next(v for v in versions if v.version == 2)

    restored = await manager.restore(current, v2.id)

    assert restored.version == 6
    assert restored.content == v2.content

    history = await manager.list_versions(restored)
    assert [v.version for v in history] == [1, 2, 3, 4, 5, 6]
    assert history[-1].content == v2.content


@pytest.mark.asyncio
async def test_restore_without_selection(manager, mock_client, story):
    with pytest.raises(StoryValidationError, match="No version selected"):
        await manager.restore(story, "")

    assert mock_client.calls["restore_version"] == 0


@pytest.mark.asyncio
async def test_restore_unknown_version(manager, story):
    with pytest.raises(StoryNotFoundError):
        await manager.restore(story, "ver-missing")


@pytest.mark.asyncio
async def test_list_versions_is_cached(manager, mock_client, story):
    await manager.list_versions(story)
    await manager.list_versions(story)

    assert mock_client.calls["list_versions"] == 1


@pytest.mark.asyncio
async def test_write_invalidates_story_keys(manager, cache, story):
    cache.set(story_key(story.id), story)
    await manager.list_versions(story)
    assert versions_key(story.id) in cache

    await manager.save(story.model_copy(update={"content": "v2"}))

    assert story_key(story.id) not in cache
    assert versions_key(story.id) not in cache


@pytest.mark.asyncio
async def test_non_increasing_version_is_a_transport_error(manager, mock_client, story):
    async def stale_save(s):
        return s

    mock_client.save_story = stale_save

    with pytest.raises(StoryTransportError):
        await manager.save(story)


def make_version(version, minutes):
    return StoryVersion(
        id=f"ver-{version}",
        story_id="story-1",
        version=version,
        title="Titre",
        age_group="4-6",
        created_at=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    )


def test_chronological_order():
    versions = [make_version(3, 20), make_version(1, 0), make_version(2, 10)]

    assert [v.version for v in chronological(versions)] == [1, 2, 3]


def test_label():
    assert label(make_version(2, 5)) == "Version 2 - 2025-03-01 09:05"
