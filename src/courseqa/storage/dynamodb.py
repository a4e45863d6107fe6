"""QAStore backed by DynamoDB tables.

Tables are provisioned outside this package; ``ensure_schema`` only checks
that they exist. Expected layout, for a table prefix ``P``:

    P-projects        hash key ``id``
    P-assets          hash key ``id``; GSI ``project-index`` (project_id)
    P-scan-runs       hash key ``id``; GSI ``project-createdAt-index``
                      (project_id, created_at)
    P-issues          hash key ``scan_run_id``, range key ``id``;
                      GSI ``project-createdAt-index`` (project_id, created_at)
    P-score-summary   hash key ``scan_run_id``
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key

from courseqa.qa.models import Asset, Issue, Project, ScanRun, ScanStatus, ScoreSummary
from courseqa.storage.base import DEFAULT_ISSUE_PAGE, IssueFilter, QAStore, clamp_page

logger = logging.getLogger(__name__)

PROJECT_INDEX = "project-index"
PROJECT_CREATED_INDEX = "project-createdAt-index"

_TABLE_SUFFIXES = {
    "projects": "projects",
    "assets": "assets",
    "scan_runs": "scan-runs",
    "issues": "issues",
    "scores": "score-summary",
}

# Batch writes accept at most 25 requests.
_BATCH_SIZE = 25


def _to_item(record: dict) -> dict:
    """Drop None values and convert floats to Decimal for DynamoDB."""
    item = {}
    for key, value in record.items():
        if value is None:
            continue
        if isinstance(value, float):
            value = Decimal(str(value))
        item[key] = value
    return item


def _from_item(item: dict, fields: tuple[str, ...]) -> dict:
    """Normalize a DynamoDB item into a record dict with every field present."""
    record: dict[str, Any] = {}
    for name in fields:
        value = item.get(name)
        if isinstance(value, Decimal):
            # Timestamps stay floats; counters and scores come back as ints.
            if name.endswith("_at") or value != value.to_integral_value():
                value = float(value)
            else:
                value = int(value)
        record[name] = value
    return record


_PROJECT_FIELDS = ("id", "title", "created_at")
_ASSET_FIELDS = ("id", "project_id", "kind", "locator", "mime_type", "sort_order", "created_at")
_RUN_FIELDS = ("id", "project_id", "status", "started_at", "finished_at", "error_text", "created_at")
_ISSUE_FIELDS = (
    "id",
    "scan_run_id",
    "project_id",
    "category",
    "severity",
    "rule_key",
    "title",
    "detail",
    "evidence",
    "file_path",
    "line_no",
    "selector",
    "fix_suggestion",
    "created_at",
)
_SCORE_FIELDS = (
    "scan_run_id",
    "project_id",
    "total_score",
    "accessibility_score",
    "scorm_score",
    "reliability_score",
    "created_at",
    "updated_at",
)

_SEVERITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}


def _matches(issue: dict, filters: IssueFilter) -> bool:
    if issue["project_id"] != filters.project_id:
        return False
    if filters.scan_run_id and issue["scan_run_id"] != filters.scan_run_id:
        return False
    if filters.category and issue["category"] != filters.category:
        return False
    if filters.severity and issue["severity"] != filters.severity:
        return False
    q = filters.query.lower()
    if q:
        hay = f"{issue['title']} {issue['detail']} {issue['rule_key']}".lower()
        if q not in hay:
            return False
    return True


class DynamoStore(QAStore):
    """QAStore over boto3 DynamoDB table resources."""

    def __init__(self, table_prefix: str, region: str | None = None, resource: Any = None) -> None:
        super().__init__()
        if not table_prefix:
            raise ValueError("A DynamoDB table prefix is required")
        self._resource = resource or boto3.resource("dynamodb", region_name=region or None)
        self._tables = {
            name: self._resource.Table(f"{table_prefix}-{suffix}")
            for name, suffix in _TABLE_SUFFIXES.items()
        }

    def _table(self, name: str) -> Any:
        return self._tables[name]

    async def _call(self, func, /, **kwargs) -> Any:
        return await asyncio.to_thread(func, **kwargs)

    async def _query_all(self, table: str, **kwargs) -> list[dict]:
        items: list[dict] = []
        start_key = None
        while True:
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key
            response = await self._call(self._table(table).query, **kwargs)
            items.extend(response.get("Items", []))
            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                return items

    async def _create_schema(self) -> None:
        for name, table in self._tables.items():
            await asyncio.to_thread(table.load)
            logger.info("DynamoDB table for %s is available: %s", name, table.name)

    async def close(self) -> None:
        """boto3 resources hold no connection that needs closing."""

    # Projects and assets

    async def create_project(self, project: Project) -> None:
        await self._call(
            self._table("projects").put_item,
            Item=_to_item({"id": project.id, "title": project.title, "created_at": project.created_at}),
        )

    async def get_project(self, project_id: str) -> dict | None:
        response = await self._call(self._table("projects").get_item, Key={"id": project_id})
        item = response.get("Item")
        return _from_item(item, _PROJECT_FIELDS) if item else None

    async def add_asset(self, asset: Asset) -> None:
        await self._call(
            self._table("assets").put_item,
            Item=_to_item(
                {
                    "id": asset.id,
                    "project_id": asset.project_id,
                    "kind": asset.kind.value,
                    "locator": asset.locator,
                    "mime_type": asset.mime_type,
                    "sort_order": asset.sort_order,
                    "created_at": asset.created_at,
                }
            ),
        )

    async def get_asset(self, asset_id: str) -> dict | None:
        response = await self._call(self._table("assets").get_item, Key={"id": asset_id})
        item = response.get("Item")
        return _from_item(item, _ASSET_FIELDS) if item else None

    async def list_assets(self, project_id: str) -> list[dict]:
        items = await self._query_all(
            "assets",
            IndexName=PROJECT_INDEX,
            KeyConditionExpression=Key("project_id").eq(project_id),
        )
        assets = [_from_item(item, _ASSET_FIELDS) for item in items]
        return sorted(assets, key=lambda a: (a["sort_order"] or 0, a["created_at"] or 0))

    # Scan runs

    async def create_scan_run(self, run: ScanRun) -> None:
        await self._call(
            self._table("scan_runs").put_item,
            Item=_to_item(
                {
                    "id": run.id,
                    "project_id": run.project_id,
                    "status": run.status.value,
                    "started_at": run.started_at,
                    "finished_at": run.finished_at,
                    "error_text": run.error_text,
                    "created_at": run.created_at,
                }
            ),
        )

    async def update_scan_run_status(
        self,
        scan_run_id: str,
        status: ScanStatus,
        error_text: str | None = None,
    ) -> None:
        now = Decimal(str(time.time()))
        sets = ["#status = :status"]
        removes: list[str] = []
        values: dict[str, Any] = {":status": status.value}
        if status == ScanStatus.RUNNING:
            sets.append("started_at = if_not_exists(started_at, :now)")
            values[":now"] = now
        if status.is_terminal:
            sets.append("finished_at = :now")
            values[":now"] = now
        if error_text is None:
            removes.append("error_text")
        else:
            sets.append("error_text = :error")
            values[":error"] = error_text

        expression = "SET " + ", ".join(sets)
        if removes:
            expression += " REMOVE " + ", ".join(removes)
        await self._call(
            self._table("scan_runs").update_item,
            Key={"id": scan_run_id},
            UpdateExpression=expression,
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues=values,
        )

    async def get_scan_run(self, scan_run_id: str) -> dict | None:
        response = await self._call(self._table("scan_runs").get_item, Key={"id": scan_run_id})
        item = response.get("Item")
        return _from_item(item, _RUN_FIELDS) if item else None

    async def get_latest_scan_run(self, project_id: str) -> dict | None:
        runs = await self.list_scan_runs(project_id)
        return runs[0] if runs else None

    async def list_scan_runs(self, project_id: str) -> list[dict]:
        items = await self._query_all(
            "scan_runs",
            IndexName=PROJECT_CREATED_INDEX,
            KeyConditionExpression=Key("project_id").eq(project_id),
            ScanIndexForward=False,
        )
        runs = [_from_item(item, _RUN_FIELDS) for item in items]
        return sorted(runs, key=lambda r: r["created_at"] or 0, reverse=True)

    # Issues

    async def add_issue(self, issue: Issue) -> None:
        await self._call(self._table("issues").put_item, Item=_to_item(issue.to_dict()))

    async def clear_issues_for_run(self, scan_run_id: str) -> None:
        items = await self._query_all(
            "issues", KeyConditionExpression=Key("scan_run_id").eq(scan_run_id)
        )
        table = self._table("issues")
        for i in range(0, len(items), _BATCH_SIZE):
            chunk = items[i : i + _BATCH_SIZE]
            await self._call(
                self._resource.batch_write_item,
                RequestItems={
                    table.name: [
                        {"DeleteRequest": {"Key": {"scan_run_id": scan_run_id, "id": item["id"]}}}
                        for item in chunk
                    ]
                },
            )

    async def list_issues_for_run(self, scan_run_id: str) -> list[dict]:
        items = await self._query_all(
            "issues", KeyConditionExpression=Key("scan_run_id").eq(scan_run_id)
        )
        issues = [_from_item(item, _ISSUE_FIELDS) for item in items]
        issues.sort(key=lambda i: i["created_at"] or 0)
        issues.sort(key=lambda i: _SEVERITY_RANK.get(i["severity"], 0), reverse=True)
        return issues

    async def _project_issues(self, filters: IssueFilter) -> list[dict]:
        items = await self._query_all(
            "issues",
            IndexName=PROJECT_CREATED_INDEX,
            KeyConditionExpression=Key("project_id").eq(filters.project_id),
            ScanIndexForward=False,
        )
        issues = [_from_item(item, _ISSUE_FIELDS) for item in items]
        return [i for i in issues if _matches(i, filters)]

    async def list_issues_filtered(
        self, filters: IssueFilter, limit: int = DEFAULT_ISSUE_PAGE, offset: int = 0
    ) -> list[dict]:
        limit, offset = clamp_page(limit, offset)
        issues = await self._project_issues(filters)
        issues.sort(key=lambda i: i["created_at"] or 0, reverse=True)
        issues.sort(key=lambda i: _SEVERITY_RANK.get(i["severity"], 0), reverse=True)
        return issues[offset : offset + limit]

    async def count_issues_filtered(self, filters: IssueFilter) -> int:
        return len(await self._project_issues(filters))

    # Scores

    async def upsert_score_summary(self, summary: ScoreSummary) -> dict:
        existing = await self.get_score_summary(summary.scan_run_id)
        record = {name: getattr(summary, name) for name in _SCORE_FIELDS}
        if existing:
            record["created_at"] = existing["created_at"]
        await self._call(self._table("scores").put_item, Item=_to_item(record))
        return await self.get_score_summary(summary.scan_run_id)

    async def get_score_summary(self, scan_run_id: str) -> dict | None:
        response = await self._call(
            self._table("scores").get_item, Key={"scan_run_id": scan_run_id}
        )
        item = response.get("Item")
        return _from_item(item, _SCORE_FIELDS) if item else None
