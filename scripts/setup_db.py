"""
Database setup script.

Creates the MongoDB indexes the story backend relies on.
Run this before starting with STORAGE_BACKEND=mongodb.

Usage:
    python -m scripts.setup_db
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import settings
from core.logging import configure_logging, get_logger
from stories.errors import StoryTransportError
from tools.story_api.mongo_client import MongoStoryClient


logger = get_logger(__name__)


async def setup_database() -> bool:
    """Connect to MongoDB and create indexes. Returns False on failure."""
    client = MongoStoryClient(
        connection_string=settings.mongodb_url,
        database_name=settings.mongodb_database,
        upload_dir=settings.upload_dir,
    )

    logger.info(
        "Setting up MongoDB",
        url=settings.mongodb_url,
        database=settings.mongodb_database,
    )

    try:
        await client.setup()
    except StoryTransportError as e:
        logger.error("Database setup failed", error=str(e))
        return False
    finally:
        await client.close()

    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Database setup complete", upload_dir=settings.upload_dir)
    return True


if __name__ == "__main__":
    configure_logging()
    ok = asyncio.run(setup_database())
    sys.exit(0 if ok else 1)
