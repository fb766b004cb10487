"""Auxiliary document store for analytics, logs and notifications.

This is a write-mostly sideband next to the relational store. It is not a
security boundary: nothing written here passes through the policy engine,
and anyone with direct access to the MongoDB database can read it.
"""
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Mapping, Optional

from pymongo import MongoClient
from pymongo.database import Database as MongoDatabase
from pymongo.errors import PyMongoError

from . import config

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "ANALYTICS": "analytics",
    "LOGS": "logs",
    "CACHE": "cache",
    "NOTIFICATIONS": "notifications",
}


class DocumentStore:
    """MongoDB handle with an explicit connect/close lifecycle."""

    def __init__(self, uri: str = None, db_name: str = None, client_factory=MongoClient):
        self.uri = uri or config.MONGODB_URI
        self.db_name = db_name or config.MONGODB_DB_NAME
        self._client_factory = client_factory
        self.client = None
        self.database: Optional[MongoDatabase] = None

    def connect(self) -> MongoDatabase:
        """Connect once; later calls reuse the open client."""
        if self.database is not None:
            return self.database
        if not self.uri:
            raise ValueError("MONGODB_URI is not configured")
        client = self._client_factory(self.uri)
        try:
            client.admin.command("ping")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            client.close()
            raise
        self.client = client
        self.database = client[self.db_name]
        logger.info("Connected to MongoDB")
        return self.database

    def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.database = None

    def is_connected(self) -> bool:
        return self.database is not None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _collection(self, name: str):
        if self.database is None:
            raise RuntimeError("DocumentStore is not connected; call connect() first")
        return self.database[name]

    def insert_document(self, collection: str, document: Mapping[str, Any]):
        now = datetime.now(UTC)
        return self._collection(collection).insert_one({
            **document,
            "createdAt": now,
            "updatedAt": now,
        })

    def find_documents(self, collection: str, filter: Optional[Mapping[str, Any]] = None,
                       **options) -> List[Dict[str, Any]]:
        return list(self._collection(collection).find(dict(filter or {}), **options))

    def update_document(self, collection: str, filter: Mapping[str, Any], update: Mapping[str, Any]):
        return self._collection(collection).update_one(dict(filter), {
            "$set": {
                **update,
                "updatedAt": datetime.now(UTC),
            }
        })

    def delete_document(self, collection: str, filter: Mapping[str, Any]):
        return self._collection(collection).delete_one(dict(filter))
