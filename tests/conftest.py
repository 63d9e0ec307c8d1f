"""
Pytest configuration and fixtures.
"""

import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("MOCK_LATENCY_SECONDS", "0")

from stories.models import AgeGroup, Story  # noqa: E402
from tools.story_api.mock_client import MockStoryClient  # noqa: E402


LEGACY_CONTENT = (
    "Il était une fois un chat.\n"
    "\n"
    "[Illustration: un chat sur un toit]\n"
    "Le chat regardait la lune."
)


class FakeEditor:
    """Minimal stand-in for the rich editor widget."""

    def __init__(self, content: str = ""):
        self.content = content
        self.set_calls = 0

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()

    def get_content(self) -> str:
        return self.content

    def set_content(self, markup: str) -> None:
        self.content = markup
        self.set_calls += 1


@pytest.fixture
def make_story():
    """Factory for unsaved stories with sensible defaults."""
    def _make(**overrides) -> Story:
        fields = {
            "title": "Le chat et la lune",
            "content": LEGACY_CONTENT,
            "themes": ["animaux", "nuit"],
            "age_group": AgeGroup.PRESCHOOL,
            "locale": "fr",
            "week_number": 1,
            "day_order": 1,
        }
        fields.update(overrides)
        return Story(**fields)
    return _make


@pytest.fixture
def mock_client():
    """In-memory backend without latency."""
    return MockStoryClient(latency=0)


@pytest_asyncio.fixture
async def story(mock_client, make_story):
    """A story persisted at version 1."""
    return await mock_client.create_story(make_story())


@pytest.fixture
def editor():
    return FakeEditor()
