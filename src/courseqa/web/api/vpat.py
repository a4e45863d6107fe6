"""REST API for VPAT drafts."""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from courseqa.errors import DomainError
from courseqa.qa.vpat import VPAT_CONTENT_TYPE, generate_vpat_draft, read_vpat_draft
from courseqa.web.api.projects import project_not_found

router = APIRouter(tags=["vpat"])


@router.post("/projects/{project_id}/vpat")
async def create_vpat(project_id: str, request: Request):
    store = request.app.state.store
    if not await store.get_project(project_id):
        return project_not_found()

    try:
        file_name = await generate_vpat_draft(store, request.app.state.objects, project_id)
    except DomainError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    return {
        "ok": True,
        "file_name": file_name,
        "download_url": f"/api/projects/{project_id}/vpat?download=1&file={quote(file_name)}",
    }


@router.get("/projects/{project_id}/vpat")
async def download_vpat(
    project_id: str,
    request: Request,
    download: str | None = None,
    file: str | None = None,
):
    if not await request.app.state.store.get_project(project_id):
        return project_not_found()
    if not download:
        return JSONResponse(status_code=400, content={"detail": "download query is required"})
    if not file:
        return JSONResponse(status_code=400, content={"detail": "file query is required"})

    try:
        name, data = await read_vpat_draft(request.app.state.objects, project_id, file)
    except (DomainError, OSError) as e:
        return JSONResponse(status_code=404, content={"detail": str(e) or "VPAT file not found"})

    return Response(
        content=data,
        media_type=VPAT_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )
