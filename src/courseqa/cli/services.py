"""Storage lifecycle shared by CLI commands."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from courseqa.config import CourseQAConfig
from courseqa.storage import QAStore, build_object_store, open_store
from courseqa.storage.objects import ObjectStore


@asynccontextmanager
async def open_services(config: CourseQAConfig) -> AsyncIterator[tuple[QAStore, ObjectStore]]:
    """Open the configured stores, closing the QA store on exit."""
    store = await open_store(config)
    try:
        yield store, build_object_store(config)
    finally:
        await store.close()
