"""
Repository wiring: pick the grade store from the environment.

MONGO_URL set   -> MongoGradeRepository (motor)
MONGO_URL unset -> InMemoryGradeRepository (local development only)
"""

import logging
import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from core.repository import GradeRepository, InMemoryGradeRepository, MongoGradeRepository

logger = logging.getLogger(__name__)

_repository: Optional[GradeRepository] = None


def build_repository() -> GradeRepository:
    mongo_url = os.getenv("MONGO_URL", "").strip()
    if not mongo_url:
        logger.warning("MONGO_URL is not set; grades are kept in memory and lost on restart.")
        return InMemoryGradeRepository()

    db_name = os.getenv("DB_NAME", "classgrade")
    client = AsyncIOMotorClient(mongo_url, serverSelectionTimeoutMS=5000)
    logger.info("Using MongoDB grade store (database=%s)", db_name)
    return MongoGradeRepository(client, db_name)


def get_repository() -> GradeRepository:
    """FastAPI dependency returning the process-wide repository."""
    global _repository
    if _repository is None:
        _repository = build_repository()
    return _repository


async def close_repository():
    global _repository
    if _repository is not None:
        await _repository.close()
        _repository = None
