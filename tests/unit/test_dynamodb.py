"""Tests for the DynamoDB storage backend (boto3 resource faked)."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from courseqa.qa.models import (
    Asset,
    AssetKind,
    Category,
    Issue,
    Project,
    ScanRun,
    ScanStatus,
    ScoreSummary,
    Severity,
)
from courseqa.storage.base import IssueFilter
from courseqa.storage.dynamodb import DynamoStore, _from_item, _to_item


class FakeTable:
    """In-memory stand-in for a boto3 Table resource."""

    def __init__(self, name: str, key_names: tuple[str, ...]) -> None:
        self.name = name
        self.key_names = key_names
        self.items: list[dict] = []
        self.updates: list[dict] = []
        self.loaded = False

    def load(self) -> None:
        self.loaded = True

    def _key_of(self, item: dict) -> tuple:
        return tuple(item[k] for k in self.key_names)

    def put_item(self, Item: dict) -> dict:
        self.items = [i for i in self.items if self._key_of(i) != self._key_of(Item)]
        self.items.append(dict(Item))
        return {}

    def get_item(self, Key: dict) -> dict:
        for item in self.items:
            if all(item.get(k) == v for k, v in Key.items()):
                return {"Item": dict(item)}
        return {}

    def query(self, KeyConditionExpression, **kwargs) -> dict:
        key, value = KeyConditionExpression.get_expression()["values"]
        return {"Items": [dict(i) for i in self.items if i.get(key.name) == value]}

    def update_item(self, **kwargs) -> dict:
        self.updates.append(kwargs)
        return {}

    def delete(self, key: dict) -> None:
        self.items = [
            i for i in self.items if not all(i.get(k) == v for k, v in key.items())
        ]


class FakeResource:
    def __init__(self) -> None:
        self.tables: dict[str, FakeTable] = {}

    def Table(self, name: str) -> FakeTable:  # noqa: N802
        keys = ("scan_run_id", "id") if name.endswith("-issues") else ("id",)
        if name.endswith("-score-summary"):
            keys = ("scan_run_id",)
        return self.tables.setdefault(name, FakeTable(name, keys))

    def batch_write_item(self, RequestItems: dict) -> dict:
        for table_name, requests in RequestItems.items():
            assert len(requests) <= 25
            for request in requests:
                self.tables[table_name].delete(request["DeleteRequest"]["Key"])
        return {}


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def resource() -> FakeResource:
    return FakeResource()


@pytest.fixture
def store(resource: FakeResource) -> DynamoStore:
    return DynamoStore("qa", resource=resource)


def _issue(run: ScanRun, severity: Severity, title: str, created_at: float) -> Issue:
    return Issue(
        category=Category.ACCESSIBILITY,
        severity=severity,
        rule_key="axe.test",
        title=title,
        detail="detail",
        scan_run_id=run.id,
        project_id=run.project_id,
        created_at=created_at,
    )


def test_item_conversion():
    item = _to_item({"a": 1.5, "b": None, "c": "x", "d": 3})
    assert item == {"a": Decimal("1.5"), "c": "x", "d": 3}

    record = _from_item(
        {"created_at": Decimal("10"), "total_score": Decimal("92"), "title": "t"},
        ("created_at", "total_score", "title", "missing"),
    )
    assert record == {"created_at": 10.0, "total_score": 92, "title": "t", "missing": None}
    assert isinstance(record["created_at"], float)
    assert isinstance(record["total_score"], int)


def test_requires_table_prefix(resource):
    with pytest.raises(ValueError):
        DynamoStore("", resource=resource)


def test_ensure_schema_loads_every_table(store, resource):
    run_async(store.ensure_schema())
    assert sorted(resource.tables) == [
        "qa-assets",
        "qa-issues",
        "qa-projects",
        "qa-scan-runs",
        "qa-score-summary",
    ]
    assert all(t.loaded for t in resource.tables.values())


def test_projects_and_assets(store):
    project = Project(title="Course")
    newer = Asset(project.id, AssetKind.ZIP, "b.zip", "application/zip", sort_order=2)
    older = Asset(project.id, AssetKind.ZIP, "a.zip", "application/zip", sort_order=1)

    async def scenario():
        await store.create_project(project)
        await store.add_asset(newer)
        await store.add_asset(older)
        return (
            await store.get_project(project.id),
            await store.list_assets(project.id),
            await store.get_asset(newer.id),
        )

    found, assets, fetched = run_async(scenario())
    assert found["title"] == "Course"
    assert [a["locator"] for a in assets] == ["a.zip", "b.zip"]
    assert fetched["kind"] == "zip"
    assert fetched["sort_order"] == 2


def test_status_update_expressions(store, resource):
    run_async(store.update_scan_run_status("r1", ScanStatus.RUNNING))
    run_async(store.update_scan_run_status("r1", ScanStatus.FAILED, "boom"))

    running, failed = resource.tables["qa-scan-runs"].updates
    assert "started_at = if_not_exists(started_at, :now)" in running["UpdateExpression"]
    assert "REMOVE error_text" in running["UpdateExpression"]
    assert running["ExpressionAttributeValues"][":status"] == "running"
    assert "finished_at = :now" in failed["UpdateExpression"]
    assert "started_at" not in failed["UpdateExpression"]
    assert failed["ExpressionAttributeValues"][":error"] == "boom"


def test_runs_newest_first(store):
    runs = [ScanRun(project_id="p1", created_at=float(i)) for i in range(3)]

    async def scenario():
        for run in runs:
            await store.create_scan_run(run)
        return await store.list_scan_runs("p1"), await store.get_latest_scan_run("p1")

    listed, latest = run_async(scenario())
    assert [r["id"] for r in listed] == [runs[2].id, runs[1].id, runs[0].id]
    assert latest["id"] == runs[2].id
    assert listed[0]["status"] == "queued"


def test_issue_ordering_filtering_and_clearing(store):
    run = ScanRun(project_id="p1")
    other = ScanRun(project_id="p1")

    async def scenario():
        await store.add_issue(_issue(run, Severity.LOW, "low", 1.0))
        await store.add_issue(_issue(run, Severity.CRITICAL, "critical", 2.0))
        await store.add_issue(_issue(run, Severity.MEDIUM, "medium alt", 3.0))
        for n in range(30):
            await store.add_issue(_issue(other, Severity.HIGH, f"other {n}", 10.0 + n))

        ordered = await store.list_issues_for_run(run.id)
        matching = await store.list_issues_filtered(IssueFilter("p1", q="ALT"))
        page = await store.list_issues_filtered(IssueFilter("p1"), limit=2, offset=0)
        count = await store.count_issues_filtered(IssueFilter("p1", severity="high"))
        await store.clear_issues_for_run(other.id)
        remaining = await store.count_issues_filtered(IssueFilter("p1"))
        return ordered, matching, page, count, remaining

    ordered, matching, page, count, remaining = run_async(scenario())
    assert [i["title"] for i in ordered] == ["critical", "medium alt", "low"]
    assert [i["title"] for i in matching] == ["medium alt"]
    assert [i["title"] for i in page] == ["critical", "other 29"]
    assert count == 30
    assert remaining == 3


def test_score_upsert_preserves_created_at(store):
    async def scenario():
        first = await store.upsert_score_summary(
            ScoreSummary("r1", "p1", 90, 80, 100, 95, created_at=100.0, updated_at=100.0)
        )
        second = await store.upsert_score_summary(
            ScoreSummary("r1", "p1", 70, 60, 80, 75, created_at=200.0, updated_at=200.0)
        )
        return first, second

    first, second = run_async(scenario())
    assert first["total_score"] == 90
    assert second["total_score"] == 70
    assert second["created_at"] == 100.0
    assert second["updated_at"] == 200.0
