"""FastAPI application factory for the course QA API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from courseqa import __version__
from courseqa.config import CourseQAConfig
from courseqa.qa.autofix import AutoFixer
from courseqa.qa.engine import ScanRunner, build_scan_runner
from courseqa.storage import QAStore, build_object_store, open_store
from courseqa.storage.objects import ObjectStore

logger = logging.getLogger(__name__)


def create_app(
    config: CourseQAConfig | None = None,
    store: QAStore | None = None,
    objects: ObjectStore | None = None,
    runner: ScanRunner | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Collaborators that are not passed in are built from ``config`` when the
    application starts. A store opened here is closed on shutdown.
    """
    config = config or CourseQAConfig.load()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_store = store is None
        app.state.config = config
        app.state.store = store or await open_store(config)
        app.state.objects = objects or build_object_store(config)
        app.state.runner = runner or build_scan_runner(
            config, app.state.store, app.state.objects
        )
        app.state.fixer = AutoFixer(app.state.store, app.state.objects)
        try:
            yield
        finally:
            if owned_store:
                await app.state.store.close()

    app = FastAPI(
        title="courseqa",
        version=__version__,
        docs_url="/api/docs",
        lifespan=lifespan,
    )

    from courseqa.web.api.fix import router as fix_router
    from courseqa.web.api.issues import router as issues_router
    from courseqa.web.api.projects import router as projects_router
    from courseqa.web.api.scans import router as scans_router
    from courseqa.web.api.vpat import router as vpat_router

    app.include_router(projects_router, prefix="/api")
    app.include_router(scans_router, prefix="/api")
    app.include_router(issues_router, prefix="/api")
    app.include_router(fix_router, prefix="/api")
    app.include_router(vpat_router, prefix="/api")

    return app
