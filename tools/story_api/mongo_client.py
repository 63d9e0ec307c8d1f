"""
MongoDB story backend.

Persists stories, illustrations and version snapshots with motor.
Image bytes are written under the configured upload directory and only
their relative path is stored.

Collections:
- stories: one document per story, _id = story id
- illustrations: one document per image, indexed by (story_id, position)
- story_versions: immutable snapshots, unique on (story_id, version)
"""

import asyncio
import re
import uuid
from pathlib import Path
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from core.logging import get_logger
from stories.models import Illustration, Story, StoryVersion, utcnow
from tools.story_api.base import (
    StoriesPage,
    StoryClient,
    StoryFilters,
    StoryNotFoundError,
    StoryTransportError,
    UploadResult,
    build_storage_path,
)


logger = get_logger(__name__)


def _filters_query(filters: Optional[StoryFilters]) -> dict[str, Any]:
    """Translate filters into a stories collection query (has_image excluded)."""
    if filters is None:
        return {}

    query: dict[str, Any] = {}
    if filters.locale:
        query["locale"] = filters.locale
    if filters.theme:
        query["themes"] = filters.theme
    if filters.age_group:
        query["age_group"] = filters.age_group
    if filters.week_number is not None:
        query["week_number"] = filters.week_number
    if filters.day_order is not None:
        query["day_order"] = filters.day_order
    if filters.series_name:
        query["series_name"] = filters.series_name
    if filters.search:
        pattern = {"$regex": re.escape(filters.search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"content": pattern}]
    return query


class MongoStoryClient(StoryClient):
    """
    MongoDB-based story backend.

    A save writes the max + 1 snapshot first, then moves the story
    document with a compare-and-set on its current version.
    """

    STORIES = "stories"
    ILLUSTRATIONS = "illustrations"
    VERSIONS = "story_versions"

    def __init__(
        self,
        connection_string: str,
        database_name: str = "story_studio",
        upload_dir: str = "uploads",
    ):
        """
        Initialize MongoDB story client.

        Args:
            connection_string: MongoDB connection URI
            database_name: Database name
            upload_dir: Directory image files are written to
        """
        self._connection_string = connection_string
        self._database_name = database_name
        self._upload_dir = upload_dir
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    async def setup(self) -> None:
        """Initialize connection and create indexes. Idempotent."""
        self._client = AsyncIOMotorClient(self._connection_string)
        self._db = self._client[self._database_name]

        try:
            await self._db[self.STORIES].create_index(
                [("locale", ASCENDING), ("day_order", ASCENDING), ("created_at", ASCENDING)],
                name="idx_locale_day_created",
            )
            await self._db[self.STORIES].create_index("week_number")
            await self._db[self.ILLUSTRATIONS].create_index(
                [("story_id", ASCENDING), ("position", ASCENDING)],
                name="idx_story_position",
            )
            await self._db[self.VERSIONS].create_index(
                [("story_id", ASCENDING), ("version", ASCENDING)],
                name="idx_story_version",
                unique=True,
            )
        except PyMongoError as e:
            raise StoryTransportError(f"Failed to initialize MongoDB: {e}") from e

        logger.info(
            "MongoDB story client initialized",
            database=self._database_name,
        )

    def _collection(self, name: str):
        if self._db is None:
            raise RuntimeError(
                "Client not initialized. Call setup() first."
            )
        return self._db[name]

    async def _run(self, operation: str, coro):
        """Await a driver call, mapping driver errors to StoryTransportError."""
        try:
            return await coro
        except PyMongoError as e:
            logger.error(
                "MongoDB operation failed",
                operation=operation,
                error=str(e),
            )
            raise StoryTransportError(f"{operation} failed: {e}") from e

    # =========================================
    # Document conversion
    # =========================================

    @staticmethod
    def _story_doc(story: Story) -> dict[str, Any]:
        doc = story.model_dump(exclude={"id", "illustrations"})
        doc["_id"] = story.id
        return doc

    @staticmethod
    def _story_from_doc(doc: dict[str, Any], illustrations: list[Illustration]) -> Story:
        doc = dict(doc)
        doc["id"] = doc.pop("_id")
        doc["illustrations"] = illustrations
        return Story.model_validate(doc)

    @staticmethod
    def _illustration_from_doc(doc: dict[str, Any]) -> Illustration:
        doc = dict(doc)
        doc["id"] = doc.pop("_id")
        return Illustration.model_validate(doc)

    @staticmethod
    def _version_from_doc(doc: dict[str, Any]) -> StoryVersion:
        doc = dict(doc)
        doc["id"] = doc.pop("_id")
        return StoryVersion.model_validate(doc)

    async def _snapshot(self, story: Story) -> str:
        version = StoryVersion.from_story(story, version_id=f"ver-{uuid.uuid4().hex[:12]}")
        doc = version.model_dump(exclude={"id"})
        doc["_id"] = version.id
        await self._run("insert_version", self._collection(self.VERSIONS).insert_one(doc))
        return version.id

    async def _load(self, doc: dict[str, Any]) -> Story:
        illustrations = await self.list_illustrations(doc["_id"])
        return self._story_from_doc(doc, illustrations)

    # =========================================
    # Stories
    # =========================================

    async def create_story(self, story: Story) -> Story:
        now = utcnow()
        stored = story.model_copy(
            update={
                "id": story.id or f"story-{uuid.uuid4().hex[:12]}",
                "version": 1,
                "created_at": now,
                "modified_at": now,
                "illustrations": [],
            }
        )
        await self._run(
            "create_story",
            self._collection(self.STORIES).insert_one(self._story_doc(stored)),
        )
        await self._snapshot(stored)

        logger.info("Story created", story_id=stored.id, locale=stored.locale)
        return stored

    async def get_story(self, story_id: str) -> Story:
        doc = await self._run(
            "get_story",
            self._collection(self.STORIES).find_one({"_id": story_id}),
        )
        if doc is None:
            raise StoryNotFoundError(f"Story {story_id} not found")
        return await self._load(doc)

    async def _advance(self, story_id: str, fields: dict[str, Any]) -> Story:
        """
        Apply fields as version max + 1.

        The snapshot is inserted first; the unique (story_id, version)
        index rejects a concurrent writer. The story document only moves
        once its snapshot exists, and only if nobody moved it meanwhile.
        A failed snapshot leaves the story untouched; a failed update
        removes the orphaned snapshot.
        """
        stories = self._collection(self.STORIES)
        current = await self._run("get_story", stories.find_one({"_id": story_id}))
        if current is None:
            raise StoryNotFoundError(f"Story {story_id} not found")

        changes = {**fields, "version": current["version"] + 1, "modified_at": utcnow()}
        advanced = self._story_from_doc({**current, **changes}, illustrations=[])
        version_id = await self._snapshot(advanced)

        try:
            doc = await self._run(
                "update_story",
                stories.find_one_and_update(
                    {"_id": story_id, "version": current["version"]},
                    {"$set": changes},
                    return_document=ReturnDocument.AFTER,
                ),
            )
            if doc is None:
                raise StoryTransportError(
                    f"Story {story_id} changed during save, please retry"
                )
        except StoryTransportError:
            await self._run(
                "discard_version",
                self._collection(self.VERSIONS).delete_one({"_id": version_id}),
            )
            raise

        return await self._load(doc)

    async def save_story(self, story: Story) -> Story:
        fields = story.model_dump(
            exclude={"id", "illustrations", "version", "created_at", "modified_at"}
        )
        saved = await self._advance(story.id, fields)

        logger.info("Story saved", story_id=saved.id, version=saved.version)
        return saved

    async def fetch_stories_page(
        self,
        page: int,
        page_size: int,
        filters: Optional[StoryFilters] = None,
    ) -> StoriesPage:
        query = _filters_query(filters)
        if filters is not None and filters.has_image is not None:
            with_images = await self._run(
                "distinct_illustrated",
                self._collection(self.ILLUSTRATIONS).distinct("story_id"),
            )
            query["_id"] = {"$in" if filters.has_image else "$nin": with_images}

        offset = (max(page, 1) - 1) * page_size
        stories = self._collection(self.STORIES)

        total = await self._run("count_stories", stories.count_documents(query))
        cursor = (
            stories.find(query)
            .sort([("day_order", ASCENDING), ("created_at", ASCENDING)])
            .skip(offset)
            .limit(page_size)
        )
        docs = await self._run("fetch_stories_page", cursor.to_list(length=page_size))

        return StoriesPage(
            stories=[await self._load(doc) for doc in docs],
            has_more=offset + len(docs) < total,
            page=page,
            total=total,
        )

    async def get_available_weeks(
        self,
        filters: Optional[StoryFilters] = None,
    ) -> list[int]:
        weeks = await self._run(
            "available_weeks",
            self._collection(self.STORIES).distinct("week_number", _filters_query(filters)),
        )
        return sorted(weeks)

    # =========================================
    # Illustrations
    # =========================================

    async def list_illustrations(self, story_id: str) -> list[Illustration]:
        cursor = self._collection(self.ILLUSTRATIONS).find(
            {"story_id": story_id},
        ).sort("position", ASCENDING)
        docs = await self._run("list_illustrations", cursor.to_list(length=None))
        return [self._illustration_from_doc(doc) for doc in docs]

    async def upload_illustration(
        self,
        story_id: str,
        data: bytes,
        position: int,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> UploadResult:
        exists = await self._run(
            "find_story",
            self._collection(self.STORIES).count_documents({"_id": story_id}, limit=1),
        )
        if not exists:
            raise StoryNotFoundError(f"Story {story_id} not found")

        relative_path = build_storage_path(filename, root=Path(self._upload_dir).name)
        target = Path(self._upload_dir).parent / relative_path
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as e:
            raise StoryTransportError(f"Failed to store illustration: {e}") from e

        illustration_id = f"ill-{uuid.uuid4().hex[:12]}"
        await self._run(
            "upload_illustration",
            self._collection(self.ILLUSTRATIONS).insert_one({
                "_id": illustration_id,
                "story_id": story_id,
                "image_path": relative_path,
                "position": position,
                "filename": filename,
                "mime_type": mime_type,
                "created_at": utcnow(),
            }),
        )

        logger.info(
            "Illustration uploaded",
            story_id=story_id,
            illustration_id=illustration_id,
            image_path=relative_path,
        )
        return UploadResult(illustration_id=illustration_id, storage_path=relative_path)

    async def delete_illustration(self, story_id: str, illustration_id: str) -> None:
        doc = await self._run(
            "delete_illustration",
            self._collection(self.ILLUSTRATIONS).find_one_and_delete(
                {"_id": illustration_id, "story_id": story_id},
            ),
        )
        if doc is None:
            raise StoryNotFoundError(
                f"Illustration {illustration_id} not found on story {story_id}"
            )

        # TODO: unlink the stored file once no other illustration references its path
        logger.info(
            "Illustration deleted",
            story_id=story_id,
            illustration_id=illustration_id,
        )

    # =========================================
    # Versions
    # =========================================

    async def list_versions(self, story_id: str) -> list[StoryVersion]:
        cursor = self._collection(self.VERSIONS).find(
            {"story_id": story_id},
        ).sort("version", ASCENDING)
        docs = await self._run("list_versions", cursor.to_list(length=None))
        return [self._version_from_doc(doc) for doc in docs]

    async def restore_version(self, story_id: str, version_id: str) -> Story:
        doc = await self._run(
            "find_version",
            self._collection(self.VERSIONS).find_one({"_id": version_id, "story_id": story_id}),
        )
        if doc is None:
            raise StoryNotFoundError(f"Version {version_id} not found")

        snapshot = self._version_from_doc(doc)
        restored = await self._advance(story_id, snapshot.snapshot_fields())

        logger.info(
            "Version restored",
            story_id=story_id,
            from_version=snapshot.version,
            version=restored.version,
        )
        return restored

    async def close(self) -> None:
        """Close MongoDB connection."""
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None
        logger.info("MongoDB story client closed")
