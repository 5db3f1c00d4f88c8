"""
Database helpers

MongoDB connection, collection helpers and indexes. Route handlers get the
database through the ``get_db`` dependency so it can be swapped out in tests.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
DATABASE_POOL_SIZE = int(os.getenv("DATABASE_POOL_SIZE", "10"))

_client: Optional[MongoClient] = None
db: Optional[Database] = None


def connect() -> Optional[Database]:
    global _client, db
    if db is not None:
        return db
    if not DATABASE_URL or not DATABASE_NAME:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
        return None
    # MongoClient connects lazily, nothing blocks here
    _client = MongoClient(DATABASE_URL, maxPoolSize=DATABASE_POOL_SIZE)
    db = _client[DATABASE_NAME]
    return db


def get_db() -> Database:
    database = connect()
    if database is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database


def _as_dict(data: Any) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def create_document(database: Database, collection_name: str, data: Any) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    doc = _as_dict(data)
    now = datetime.now(timezone.utc)
    doc["created_at"] = now
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["review"].create_index(
        [("product_id", ASCENDING), ("user_id", ASCENDING)], unique=True
    )
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index("user_id")
    database["product"].create_index("category")
    database["product"].create_index("status")
    database["product"].create_index("featured")
