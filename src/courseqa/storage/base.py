"""Storage port: the only persistence interface the QA core depends on."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from courseqa.qa.models import Asset, Issue, Project, ScanRun, ScanStatus, ScoreSummary

MAX_ISSUE_PAGE = 200
DEFAULT_ISSUE_PAGE = 50


@dataclass(frozen=True)
class IssueFilter:
    """Filters for project-wide issue listing."""

    project_id: str
    scan_run_id: str | None = None
    category: str | None = None
    severity: str | None = None
    q: str | None = None

    @property
    def query(self) -> str:
        return (self.q or "").strip()


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Clamp ``limit`` to [1, 200] and ``offset`` to >= 0."""
    limit = DEFAULT_ISSUE_PAGE if limit is None else limit
    offset = 0 if offset is None else offset
    return max(1, min(MAX_ISSUE_PAGE, int(limit))), max(0, int(offset))


class QAStore(ABC):
    """Async persistence for projects, assets, scan runs, issues and scores.

    Records are returned as plain dicts with snake_case keys, matching the
    column names of the sqlite schema.
    """

    def __init__(self) -> None:
        self._schema_lock = asyncio.Lock()
        self._schema_ready = False

    async def ensure_schema(self) -> None:
        """Create or migrate the backing schema exactly once per store."""
        async with self._schema_lock:
            if self._schema_ready:
                return
            await self._create_schema()
            self._schema_ready = True

    @abstractmethod
    async def _create_schema(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    # Projects and assets

    @abstractmethod
    async def create_project(self, project: Project) -> None: ...

    @abstractmethod
    async def get_project(self, project_id: str) -> dict | None: ...

    @abstractmethod
    async def add_asset(self, asset: Asset) -> None: ...

    @abstractmethod
    async def get_asset(self, asset_id: str) -> dict | None: ...

    @abstractmethod
    async def list_assets(self, project_id: str) -> list[dict]:
        """Assets of a project ordered by ``sort_order`` then creation time."""

    # Scan runs

    @abstractmethod
    async def create_scan_run(self, run: ScanRun) -> None: ...

    @abstractmethod
    async def update_scan_run_status(
        self,
        scan_run_id: str,
        status: ScanStatus,
        error_text: str | None = None,
    ) -> None:
        """Set ``status``. ``started_at`` is recorded only once, on the first
        transition to running; ``finished_at`` on terminal states."""

    @abstractmethod
    async def get_scan_run(self, scan_run_id: str) -> dict | None: ...

    @abstractmethod
    async def get_latest_scan_run(self, project_id: str) -> dict | None: ...

    @abstractmethod
    async def list_scan_runs(self, project_id: str) -> list[dict]:
        """Runs of a project, newest first."""

    # Issues

    @abstractmethod
    async def add_issue(self, issue: Issue) -> None: ...

    @abstractmethod
    async def clear_issues_for_run(self, scan_run_id: str) -> None: ...

    @abstractmethod
    async def list_issues_for_run(self, scan_run_id: str) -> list[dict]:
        """Issues of one run, most severe first, then oldest first."""

    @abstractmethod
    async def list_issues_filtered(
        self, filters: IssueFilter, limit: int = DEFAULT_ISSUE_PAGE, offset: int = 0
    ) -> list[dict]:
        """Matching issues, most severe first, then newest first."""

    @abstractmethod
    async def count_issues_filtered(self, filters: IssueFilter) -> int: ...

    # Scores

    @abstractmethod
    async def upsert_score_summary(self, summary: ScoreSummary) -> dict: ...

    @abstractmethod
    async def get_score_summary(self, scan_run_id: str) -> dict | None: ...
