"""REST API for projects, package uploads and asset downloads."""

from __future__ import annotations

import io
import zipfile

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from courseqa.qa.models import Project
from courseqa.qa.package import store_package

router = APIRouter(tags=["projects"])


class ProjectCreate(BaseModel):
    title: str


def project_not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Project not found"})


@router.post("/projects")
async def create_project(body: ProjectCreate, request: Request):
    title = body.title.strip()
    if not title:
        return JSONResponse(status_code=400, content={"detail": "title is required"})
    project = Project(title=title)
    store = request.app.state.store
    await store.create_project(project)
    return await store.get_project(project.id)


@router.get("/projects/{project_id}")
async def get_project(project_id: str, request: Request):
    store = request.app.state.store
    project = await store.get_project(project_id)
    if not project:
        return project_not_found()
    project["assets"] = await store.list_assets(project_id)
    return project


@router.post("/projects/{project_id}/package")
async def upload_package(project_id: str, request: Request):
    """Store the raw zip request body as the project's newest package."""
    store = request.app.state.store
    if not await store.get_project(project_id):
        return project_not_found()

    body = await request.body()
    if not body or not zipfile.is_zipfile(io.BytesIO(body)):
        return JSONResponse(
            status_code=400,
            content={"detail": "Request body must be a zip archive"},
        )

    asset = await store_package(store, request.app.state.objects, project_id, body)
    return {"ok": True, "asset": await store.get_asset(asset.id)}


@router.get("/assets/{asset_id}")
async def download_asset(asset_id: str, request: Request):
    asset = await request.app.state.store.get_asset(asset_id)
    if not asset:
        return JSONResponse(status_code=404, content={"detail": "Asset not found"})
    data = await request.app.state.objects.read(asset["locator"])
    return Response(content=data, media_type=asset["mime_type"])
