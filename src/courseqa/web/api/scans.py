"""REST API for running scans and reading scan results."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from courseqa.qa.history import compare_runs, list_history
from courseqa.qa.scoring import score_issues
from courseqa.web.api.projects import project_not_found

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scans"])


async def _run_scan(request: Request, project_id: str, **extra):
    if not await request.app.state.store.get_project(project_id):
        return project_not_found()
    try:
        outcome = await request.app.state.runner.execute(project_id)
    except Exception as e:
        logger.error("Scan of project %s failed: %s", project_id, e)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": str(e) or "Unknown scan error"},
        )
    return {"ok": True, **outcome.to_dict(), **extra}


@router.post("/projects/{project_id}/scan")
async def start_scan(project_id: str, request: Request):
    return await _run_scan(request, project_id)


@router.post("/projects/{project_id}/rescan")
async def rescan(project_id: str, request: Request):
    return await _run_scan(request, project_id, rescan=True)


@router.get("/projects/{project_id}/scan")
async def get_scan(
    project_id: str,
    request: Request,
    scan_run_id: str | None = None,
    scanRunId: str | None = None,
):
    store = request.app.state.store
    scan_run_id = scan_run_id or scanRunId
    if not await store.get_project(project_id):
        return project_not_found()

    if scan_run_id:
        scan_run = await store.get_scan_run(scan_run_id)
    else:
        scan_run = await store.get_latest_scan_run(project_id)
    if not scan_run:
        return {"scan_run": None, "issues": [], "score": None}
    if scan_run["project_id"] != project_id:
        return JSONResponse(
            status_code=400,
            content={"detail": "Scan run does not belong to this project"},
        )

    issues = await store.list_issues_for_run(scan_run["id"])
    return {
        "scan_run": scan_run,
        "issues": issues,
        "score": await store.get_score_summary(scan_run["id"]),
        "score_meta": score_issues(issues).meta(),
    }


@router.get("/projects/{project_id}/scan-runs")
async def list_scan_runs(project_id: str, request: Request):
    store = request.app.state.store
    if not await store.get_project(project_id):
        return project_not_found()

    runs = await list_history(store, project_id)
    comparison = compare_runs(runs)
    return {
        "runs": runs,
        "total": len(runs),
        "comparison": comparison.to_dict() if comparison else None,
    }
