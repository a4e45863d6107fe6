"""REST API for auto-fix runs and their downloadable artifacts."""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from courseqa.errors import DomainError
from courseqa.qa.autofix import resolve_fix_artifact
from courseqa.web.api.projects import project_not_found

router = APIRouter(tags=["fix"])


@router.post("/projects/{project_id}/fix")
async def run_fix(project_id: str, request: Request):
    if not await request.app.state.store.get_project(project_id):
        return project_not_found()

    try:
        result = await request.app.state.fixer.run(project_id)
    except DomainError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    return {
        "ok": True,
        "zip_asset_id": result.zip_asset_id,
        "zip_download_url": f"/api/assets/{result.zip_asset_id}",
        "diff_download_url": (
            f"/api/projects/{project_id}/fix?download=1&file={quote(result.diff_name)}"
        ),
        "changed_files": result.changed_files,
        "total_fixes": result.total_fixes.to_dict(),
        "fixed_zip_name": result.fixed_zip_name,
        "diff_name": result.diff_name,
    }


@router.get("/projects/{project_id}/fix")
async def download_fix_artifact(
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

    objects = request.app.state.objects
    try:
        locator, content_type, name = resolve_fix_artifact(objects, project_id, file)
        data = await objects.read(locator)
    except (DomainError, OSError) as e:
        return JSONResponse(status_code=404, content={"detail": str(e) or "Artifact not found"})

    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )
