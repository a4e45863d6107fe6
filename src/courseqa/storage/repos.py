"""Repository classes for async CRUD on SQLite, and the sqlite QAStore."""

from __future__ import annotations

import time
from pathlib import Path

import aiosqlite

from courseqa.qa.models import Asset, Issue, Project, ScanRun, ScanStatus, ScoreSummary
from courseqa.storage.base import DEFAULT_ISSUE_PAGE, IssueFilter, QAStore, clamp_page
from courseqa.storage.db import get_db, migrate

_SEVERITY_ORDER = (
    "CASE severity WHEN 'critical' THEN 4 WHEN 'high' THEN 3 "
    "WHEN 'medium' THEN 2 ELSE 1 END DESC"
)


class ProjectRepo:
    """CRUD for projects."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, project: Project) -> None:
        await self._db.execute(
            "INSERT INTO projects (id, title, created_at) VALUES (?, ?, ?)",
            (project.id, project.title, project.created_at),
        )
        await self._db.commit()

    async def get(self, project_id: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None


class AssetRepo:
    """CRUD for project assets."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, asset: Asset) -> None:
        await self._db.execute(
            "INSERT INTO assets "
            "(id, project_id, kind, locator, mime_type, sort_order, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                asset.id,
                asset.project_id,
                asset.kind.value,
                asset.locator,
                asset.mime_type,
                asset.sort_order,
                asset.created_at,
            ),
        )
        await self._db.commit()

    async def get(self, asset_id: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM assets WHERE id = ?", (asset_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def list_by_project(self, project_id: str) -> list[dict]:
        cursor = await self._db.execute(
            "SELECT * FROM assets WHERE project_id = ? "
            "ORDER BY sort_order, created_at, rowid",
            (project_id,),
        )
        return [dict(row) async for row in cursor]


class ScanRunRepo:
    """CRUD for scan runs."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, run: ScanRun) -> None:
        await self._db.execute(
            "INSERT INTO scan_runs "
            "(id, project_id, status, started_at, finished_at, error_text, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                run.id,
                run.project_id,
                run.status.value,
                run.started_at,
                run.finished_at,
                run.error_text,
                run.created_at,
            ),
        )
        await self._db.commit()

    async def update_status(
        self,
        scan_run_id: str,
        status: ScanStatus,
        error_text: str | None = None,
    ) -> None:
        now = time.time()
        started_at = now if status == ScanStatus.RUNNING else None
        finished_at = now if status.is_terminal else None
        await self._db.execute(
            "UPDATE scan_runs SET status = ?, "
            "started_at = COALESCE(started_at, ?), "
            "finished_at = COALESCE(?, finished_at), "
            "error_text = ? "
            "WHERE id = ?",
            (status.value, started_at, finished_at, error_text, scan_run_id),
        )
        await self._db.commit()

    async def get(self, scan_run_id: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM scan_runs WHERE id = ?", (scan_run_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def list_by_project(self, project_id: str, limit: int | None = None) -> list[dict]:
        sql = (
            "SELECT * FROM scan_runs WHERE project_id = ? "
            "ORDER BY created_at DESC, rowid DESC"
        )
        params: tuple = (project_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        cursor = await self._db.execute(sql, params)
        return [dict(row) async for row in cursor]


class IssueRepo:
    """CRUD for issues. Every issue is scoped to one scan run."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, issue: Issue) -> None:
        await self._db.execute(
            "INSERT INTO issues "
            "(id, scan_run_id, project_id, category, severity, rule_key, "
            "title, detail, evidence, file_path, line_no, selector, "
            "fix_suggestion, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                issue.id,
                issue.scan_run_id,
                issue.project_id,
                issue.category.value,
                issue.severity.value,
                issue.rule_key,
                issue.title,
                issue.detail,
                issue.evidence,
                issue.file_path,
                issue.line_no,
                issue.selector,
                issue.fix_suggestion,
                issue.created_at,
            ),
        )
        await self._db.commit()

    async def delete_by_run(self, scan_run_id: str) -> None:
        await self._db.execute(
            "DELETE FROM issues WHERE scan_run_id = ?", (scan_run_id,)
        )
        await self._db.commit()

    async def list_by_run(self, scan_run_id: str) -> list[dict]:
        cursor = await self._db.execute(
            f"SELECT * FROM issues WHERE scan_run_id = ? "
            f"ORDER BY {_SEVERITY_ORDER}, created_at ASC, rowid ASC",
            (scan_run_id,),
        )
        return [dict(row) async for row in cursor]

    async def list_filtered(self, filters: IssueFilter, limit: int, offset: int) -> list[dict]:
        where, params = _issue_where(filters)
        limit, offset = clamp_page(limit, offset)
        cursor = await self._db.execute(
            f"SELECT * FROM issues WHERE {where} "
            f"ORDER BY {_SEVERITY_ORDER}, created_at DESC, rowid DESC "
            "LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        return [dict(row) async for row in cursor]

    async def count_filtered(self, filters: IssueFilter) -> int:
        where, params = _issue_where(filters)
        cursor = await self._db.execute(
            f"SELECT COUNT(1) FROM issues WHERE {where}", params
        )
        row = await cursor.fetchone()
        return row[0] if row else 0


def _issue_where(filters: IssueFilter) -> tuple[str, tuple]:
    clauses = ["project_id = ?"]
    params: list = [filters.project_id]
    if filters.scan_run_id:
        clauses.append("scan_run_id = ?")
        params.append(filters.scan_run_id)
    if filters.category:
        clauses.append("category = ?")
        params.append(filters.category)
    if filters.severity:
        clauses.append("severity = ?")
        params.append(filters.severity)
    if filters.query:
        clauses.append("(title LIKE ? OR detail LIKE ? OR rule_key LIKE ?)")
        like = f"%{filters.query}%"
        params.extend([like, like, like])
    return " AND ".join(clauses), tuple(params)


class ScoreRepo:
    """CRUD for per-run score summaries."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def upsert(self, summary: ScoreSummary) -> dict:
        await self._db.execute(
            "INSERT INTO score_summary "
            "(scan_run_id, project_id, total_score, accessibility_score, "
            "scorm_score, reliability_score, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(scan_run_id) DO UPDATE SET "
            "project_id = excluded.project_id, "
            "total_score = excluded.total_score, "
            "accessibility_score = excluded.accessibility_score, "
            "scorm_score = excluded.scorm_score, "
            "reliability_score = excluded.reliability_score, "
            "updated_at = excluded.updated_at",
            (
                summary.scan_run_id,
                summary.project_id,
                summary.total_score,
                summary.accessibility_score,
                summary.scorm_score,
                summary.reliability_score,
                summary.created_at,
                summary.updated_at,
            ),
        )
        await self._db.commit()
        return await self.get(summary.scan_run_id)

    async def get(self, scan_run_id: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM score_summary WHERE scan_run_id = ?", (scan_run_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None


class SqliteStore(QAStore):
    """QAStore backed by a single aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        super().__init__()
        self._db = db
        self.projects = ProjectRepo(db)
        self.assets = AssetRepo(db)
        self.scan_runs = ScanRunRepo(db)
        self.issues = IssueRepo(db)
        self.scores = ScoreRepo(db)

    @classmethod
    async def open(cls, db_path: str | Path) -> SqliteStore:
        store = cls(await get_db(db_path))
        await store.ensure_schema()
        return store

    async def _create_schema(self) -> None:
        await migrate(self._db)

    async def close(self) -> None:
        await self._db.close()

    async def create_project(self, project: Project) -> None:
        await self.projects.create(project)

    async def get_project(self, project_id: str) -> dict | None:
        return await self.projects.get(project_id)

    async def add_asset(self, asset: Asset) -> None:
        await self.assets.create(asset)

    async def get_asset(self, asset_id: str) -> dict | None:
        return await self.assets.get(asset_id)

    async def list_assets(self, project_id: str) -> list[dict]:
        return await self.assets.list_by_project(project_id)

    async def create_scan_run(self, run: ScanRun) -> None:
        await self.scan_runs.create(run)

    async def update_scan_run_status(
        self,
        scan_run_id: str,
        status: ScanStatus,
        error_text: str | None = None,
    ) -> None:
        await self.scan_runs.update_status(scan_run_id, status, error_text)

    async def get_scan_run(self, scan_run_id: str) -> dict | None:
        return await self.scan_runs.get(scan_run_id)

    async def get_latest_scan_run(self, project_id: str) -> dict | None:
        runs = await self.scan_runs.list_by_project(project_id, limit=1)
        return runs[0] if runs else None

    async def list_scan_runs(self, project_id: str) -> list[dict]:
        return await self.scan_runs.list_by_project(project_id)

    async def add_issue(self, issue: Issue) -> None:
        await self.issues.create(issue)

    async def clear_issues_for_run(self, scan_run_id: str) -> None:
        await self.issues.delete_by_run(scan_run_id)

    async def list_issues_for_run(self, scan_run_id: str) -> list[dict]:
        return await self.issues.list_by_run(scan_run_id)

    async def list_issues_filtered(
        self, filters: IssueFilter, limit: int = DEFAULT_ISSUE_PAGE, offset: int = 0
    ) -> list[dict]:
        return await self.issues.list_filtered(filters, limit, offset)

    async def count_issues_filtered(self, filters: IssueFilter) -> int:
        return await self.issues.count_filtered(filters)

    async def upsert_score_summary(self, summary: ScoreSummary) -> dict:
        return await self.scores.upsert(summary)

    async def get_score_summary(self, scan_run_id: str) -> dict | None:
        return await self.scores.get(scan_run_id)
