"""Storage backends selected once at process start from configuration."""

from __future__ import annotations

import logging

from courseqa.config import CourseQAConfig
from courseqa.storage.base import IssueFilter, QAStore
from courseqa.storage.objects import LocalObjectStore, ObjectStore, S3ObjectStore

logger = logging.getLogger(__name__)

__all__ = [
    "IssueFilter",
    "ObjectStore",
    "QAStore",
    "build_object_store",
    "open_store",
]


async def open_store(config: CourseQAConfig) -> QAStore:
    """Construct the configured QAStore and ensure its schema."""
    if config.db_backend == "dynamodb":
        from courseqa.storage.dynamodb import DynamoStore

        store: QAStore = DynamoStore(config.ddb_table_prefix, region=config.aws_region)
    elif config.db_backend == "sqlite":
        from courseqa.storage.db import get_db
        from courseqa.storage.repos import SqliteStore

        store = SqliteStore(await get_db(config.db_path))
    else:
        raise ValueError(f"Unknown database backend: {config.db_backend!r}")

    await store.ensure_schema()
    logger.info("Using %s storage backend", config.db_backend)
    return store


def build_object_store(config: CourseQAConfig) -> ObjectStore:
    if config.storage_backend == "s3":
        return S3ObjectStore(config.s3_bucket, config.s3_prefix, region=config.aws_region)
    if config.storage_backend == "local":
        return LocalObjectStore(config.objects_dir)
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}")
