"""
Tests for MockStoryClient.

Verifies that the mock backend follows the same rules a real backend
must, since every other test builds on it.
"""

import pytest

from stories.errors import StoryNotFoundError, StoryTransportError
from tools.story_api.base import StoryFilters, build_storage_path, sanitize_filename
from tools.story_api.mock_client import MockStoryClient


@pytest.mark.asyncio
async def test_create_story(mock_client, make_story):
    """A new story starts at version 1 with one snapshot."""
    story = await mock_client.create_story(make_story())

    assert story.id.startswith("story-")
    assert story.version == 1

    versions = await mock_client.list_versions(story.id)
    assert [v.version for v in versions] == [1]


@pytest.mark.asyncio
async def test_get_unknown_story(mock_client):
    with pytest.raises(StoryNotFoundError):
        await mock_client.get_story("missing")


@pytest.mark.asyncio
async def test_save_assigns_next_version(mock_client, story):
    """The version on the argument is ignored."""
    edited = story.model_copy(update={"title": "Nouveau titre", "version": 42})

    saved = await mock_client.save_story(edited)

    assert saved.version == 2
    assert saved.title == "Nouveau titre"
    assert saved.created_at == story.created_at


@pytest.mark.asyncio
async def test_illustrations_ordered_by_position(mock_client, story):
    await mock_client.upload_illustration(story.id, b"b", position=50, filename="b.png")
    await mock_client.upload_illustration(story.id, b"a", position=10, filename="a.png")

    illustrations = await mock_client.list_illustrations(story.id)

    assert [i.position for i in illustrations] == [10, 50]
    fetched = await mock_client.get_story(story.id)
    assert [i.position for i in fetched.illustrations] == [10, 50]


@pytest.mark.asyncio
async def test_upload_storage_path(mock_client, story):
    result = await mock_client.upload_illustration(
        story.id, b"data", position=0, filename="mon chat.png"
    )

    assert result.illustration_id.startswith("ill-")
    assert result.storage_path.startswith("uploads/")
    assert result.storage_path.endswith("-mon_chat.png")


@pytest.mark.asyncio
async def test_delete_unknown_illustration(mock_client, story):
    with pytest.raises(StoryNotFoundError):
        await mock_client.delete_illustration(story.id, "ill-missing")


@pytest.mark.asyncio
async def test_restore_unknown_version(mock_client, story):
    with pytest.raises(StoryNotFoundError):
        await mock_client.restore_version(story.id, "ver-missing")


@pytest.mark.asyncio
async def test_paging_and_filters(mock_client, make_story):
    for day in (3, 1, 2):
        await mock_client.create_story(make_story(title=f"fr-{day}", day_order=day))
    await mock_client.create_story(make_story(title="en-1", locale="en", week_number=2))

    first = await mock_client.fetch_stories_page(1, 2)
    assert first.has_more
    assert first.total == 4

    last = await mock_client.fetch_stories_page(2, 2)
    assert not last.has_more
    assert len(last.stories) == 2

    french = await mock_client.fetch_stories_page(1, 10, StoryFilters(locale="fr"))
    assert [s.title for s in french.stories] == ["fr-1", "fr-2", "fr-3"]

    assert await mock_client.get_available_weeks() == [1, 2]
    assert await mock_client.get_available_weeks(StoryFilters(locale="en")) == [2]


@pytest.mark.asyncio
async def test_has_image_filter(mock_client, make_story):
    with_image = await mock_client.create_story(make_story(title="avec"))
    await mock_client.create_story(make_story(title="sans"))
    await mock_client.upload_illustration(with_image.id, b"x", position=0)

    page = await mock_client.fetch_stories_page(1, 10, StoryFilters(has_image=True))

    assert [s.title for s in page.stories] == ["avec"]


@pytest.mark.asyncio
async def test_scripted_failure(mock_client, story):
    mock_client.fail_next("get_story")

    with pytest.raises(StoryTransportError):
        await mock_client.get_story(story.id)

    # Only the next call fails
    assert (await mock_client.get_story(story.id)).id == story.id
    assert mock_client.calls["get_story"] == 2


@pytest.mark.asyncio
async def test_clear_all(mock_client, story):
    await mock_client.clear_all()

    with pytest.raises(StoryNotFoundError):
        await mock_client.get_story(story.id)
    assert mock_client.calls["get_story"] == 1


def test_default_latency_from_settings():
    assert MockStoryClient()._latency == 0


def test_sanitize_filename():
    assert sanitize_filename("mon chat!.png") == "mon_chat_.png"
    assert sanitize_filename("été") == "_t_"


def test_storage_path_without_filename():
    path = build_storage_path(None, root="uploads")

    assert path.startswith("uploads/")
    assert path.endswith("-illustration.png")
