"""REST API for filtered, paginated issue listing."""

from __future__ import annotations

from fastapi import APIRouter, Request

from courseqa.qa.models import Category, Severity
from courseqa.storage.base import IssueFilter, clamp_page
from courseqa.web.api.projects import project_not_found

router = APIRouter(tags=["issues"])

_CATEGORIES = {c.value for c in Category}
_SEVERITIES = {s.value for s in Severity}


def _as_int(value: str | None) -> int | None:
    """Parse a paging parameter, treating junk the same as a missing value."""
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


@router.get("/projects/{project_id}/issues")
async def list_issues(
    project_id: str,
    request: Request,
    scan_run_id: str | None = None,
    scanRunId: str | None = None,
    category: str | None = None,
    severity: str | None = None,
    q: str | None = None,
    limit: str | None = None,
    offset: str | None = None,
):
    store = request.app.state.store
    if not await store.get_project(project_id):
        return project_not_found()

    # Unknown category/severity values are ignored rather than rejected.
    filters = IssueFilter(
        project_id=project_id,
        scan_run_id=scan_run_id or scanRunId or None,
        category=category if category in _CATEGORIES else None,
        severity=severity if severity in _SEVERITIES else None,
        q=q,
    )
    limit, offset = clamp_page(_as_int(limit), _as_int(offset))
    return {
        "issues": await store.list_issues_filtered(filters, limit, offset),
        "total": await store.count_issues_filtered(filters),
        "limit": limit,
        "offset": offset,
        "filters": {
            "scan_run_id": filters.scan_run_id,
            "category": filters.category,
            "severity": filters.severity,
            "q": q or "",
        },
    }
