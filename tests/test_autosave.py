"""
Tests for AutoSaveScheduler.
"""

import pytest

from core.config import ClientPreferences
from manager.autosave import AutoSaveScheduler
from manager.session import StoryEditorSession


@pytest.fixture
def session(mock_client, story):
    return StoryEditorSession(mock_client, story.id)


@pytest.mark.asyncio
async def test_clean_draft_is_not_saved(session, mock_client):
    await session.load()
    autosave = AutoSaveScheduler(session, interval_seconds=1)

    assert await autosave.trigger_save() is None
    assert mock_client.calls["save_story"] == 0


@pytest.mark.asyncio
async def test_unloaded_session_is_not_saved(session, mock_client):
    autosave = AutoSaveScheduler(session, interval_seconds=1)

    assert await autosave.trigger_save() is None
    assert mock_client.calls["save_story"] == 0


@pytest.mark.asyncio
async def test_dirty_draft_is_saved(session):
    await session.load()
    session.update_content("<p>autosaved</p>")
    autosave = AutoSaveScheduler(session, interval_seconds=1)

    result = await autosave.trigger_save()

    assert result.ok
    assert session.story.version == 2
    assert not session.dirty


@pytest.mark.asyncio
async def test_skips_while_saving(session, mock_client):
    await session.load()
    session.update_content("<p>autosaved</p>")
    session.saving = True
    autosave = AutoSaveScheduler(session, interval_seconds=1)

    assert await autosave.trigger_save() is None
    assert mock_client.calls["save_story"] == 0


@pytest.mark.asyncio
async def test_failure_is_reported_not_raised(session, mock_client):
    await session.load()
    session.update_content("<p>autosaved</p>")
    mock_client.fail_next("save_story")
    autosave = AutoSaveScheduler(session, interval_seconds=1)

    result = await autosave.trigger_save()

    assert not result.ok
    assert session.dirty


@pytest.mark.asyncio
async def test_start_and_shutdown(session):
    autosave = AutoSaveScheduler(session, interval_seconds=60)

    await autosave.start()
    assert autosave.is_running

    await autosave.shutdown()
    assert not autosave.is_running


@pytest.mark.asyncio
async def test_disabled_by_preferences(mock_client, story):
    session = StoryEditorSession(
        mock_client,
        story.id,
        preferences=ClientPreferences.from_storage({"autoSave": False}),
    )
    autosave = AutoSaveScheduler(session)

    await autosave.start()

    assert not autosave.enabled
    assert not autosave.is_running
