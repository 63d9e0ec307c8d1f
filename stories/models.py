"""
Story data model.

Stories, their illustrations and their version snapshots. These are the
only shapes that cross component boundaries: backends produce them,
components consume them, and legacy field spellings are folded into the
canonical names here so nothing downstream has to guess.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgeGroup(str, Enum):
    """Reader age bands a story is written for."""
    TODDLER = "2-3"
    PRESCHOOL = "4-6"
    EARLY_READER = "7-9"
    MIDDLE_GRADE = "10-12"
    YOUNG_TEEN = "13-15"
    TEEN = "16-18"


DAY_ORDER = {
    "Monday": 1,
    "Tuesday": 2,
    "Wednesday": 3,
    "Thursday": 4,
    "Friday": 5,
    "Saturday": 6,
    "Sunday": 7,
}


def day_order_for(day_name: str) -> int:
    """Map an English weekday name to its ordinal (Monday = 1)."""
    try:
        return DAY_ORDER[day_name.strip().capitalize()]
    except KeyError:
        raise ValueError(f"Unknown day of week: {day_name!r}")


# Older producers used these spellings; they fold into canonical fields.
LEGACY_ILLUSTRATION_KEYS = {
    "image_path": ("imagePath", "path"),
    "mime_type": ("fileType", "file_type"),
    "story_id": ("storyId",),
    "created_at": ("createdAt",),
}


def normalize_image_path(path: Optional[str]) -> Optional[str]:
    """Storage paths are used as URLs, so separators are always forward slashes."""
    if path is None:
        return None
    return path.replace("\\", "/")


class Illustration(BaseModel):
    """
    An image attached to a story.

    ``id`` is None only for a pending illustration whose upload has not
    completed; such an entry carries its bytes in ``data`` instead of a
    storage path. ``position`` is the content offset at insertion time and
    is advisory: later edits do not move it.
    """

    id: Optional[str] = None
    story_id: str
    image_path: Optional[str] = None
    data: Optional[bytes] = Field(default=None, repr=False)
    position: int = 0
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for canonical, aliases in LEGACY_ILLUSTRATION_KEYS.items():
            for alias in aliases:
                value = data.pop(alias, None)
                if data.get(canonical) is None and value is not None:
                    data[canonical] = value
        if data.get("position") is None:
            data.pop("position", None)
        return data

    @field_validator("image_path")
    @classmethod
    def _forward_slashes(cls, value: Optional[str]) -> Optional[str]:
        return normalize_image_path(value)

    @property
    def is_persisted(self) -> bool:
        return bool(self.id)

    @property
    def url(self) -> Optional[str]:
        """Root-relative URL of the stored image."""
        if not self.image_path:
            return None
        return "/" + self.image_path.lstrip("/")


class Story(BaseModel):
    """
    A short story in one locale.

    ``content`` is either legacy plain text or rich markup; which one is
    decided structurally by ``stories.content.is_rich_format`` and never
    stored separately.
    """

    # =========================================
    # Identity
    # =========================================
    id: Optional[str] = None
    title: str
    content: str = ""

    # =========================================
    # Classification
    # =========================================
    themes: list[str] = Field(
        default_factory=list,
        description="Theme tags, ordered, without duplicates",
    )
    age_group: AgeGroup
    locale: str = Field(
        ...,
        description="Two-letter language code used for grouping and labels",
    )
    week_number: int = Field(default=1, ge=1)
    day_order: int = Field(default=1, ge=1, le=7)
    series_name: Optional[str] = None

    # =========================================
    # Versioning
    # =========================================
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: Optional[datetime] = None

    illustrations: list[Illustration] = Field(default_factory=list)

    model_config = {"use_enum_values": True}

    @field_validator("themes")
    @classmethod
    def _ordered_set(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("locale")
    @classmethod
    def _two_letter_locale(cls, value: str) -> str:
        value = value.strip().lower()
        if len(value) != 2 or not value.isalpha():
            raise ValueError(f"Locale must be a two-letter code, got {value!r}")
        return value


class StoryVersion(BaseModel):
    """
    Immutable snapshot of a story at one version number.

    Restoring a snapshot creates a new version; snapshots themselves are
    never edited.
    """

    id: str
    story_id: str
    version: int = Field(..., ge=1)
    title: str
    content: str = ""
    age_group: str
    themes: list[str] = Field(default_factory=list)
    locale: Optional[str] = None
    series_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @classmethod
    def from_story(cls, story: Story, version_id: str) -> "StoryVersion":
        """Snapshot the story's current fields."""
        return cls(
            id=version_id,
            story_id=story.id,
            version=story.version,
            title=story.title,
            content=story.content,
            age_group=story.age_group,
            themes=list(story.themes),
            locale=story.locale,
            series_name=story.series_name,
            created_at=story.modified_at or story.created_at,
        )

    def snapshot_fields(self) -> dict[str, Any]:
        """Fields a restore copies back onto the story."""
        return {
            "title": self.title,
            "content": self.content,
            "age_group": self.age_group,
            "themes": list(self.themes),
            "series_name": self.series_name,
        }
