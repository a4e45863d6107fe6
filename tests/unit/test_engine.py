"""Tests for the scan engine and the scan run state machine."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from courseqa.errors import PackageError
from courseqa.qa.accessibility import AccessibilityAnalyzer
from courseqa.qa.engine import ScanEngine, ScanRunner, build_scan_runner
from courseqa.qa.models import Category, Project
from courseqa.qa.package import store_package
from courseqa.qa.reliability import ReliabilityScanner
from courseqa.storage.objects import LocalObjectStore
from courseqa.storage.repos import SqliteStore


def _keys(issues) -> list[str]:
    return sorted(i["rule_key"] for i in issues)


async def _setup(tmp_path: Path, package: bytes | None = None):
    store = await SqliteStore.open(tmp_path / "qa.db")
    objects = LocalObjectStore(tmp_path / "objects")
    project = Project(title="Course")
    await store.create_project(project)
    if package is not None:
        await store_package(store, objects, project.id, package)
    return store, objects, project


def _offline_runner(store, objects) -> ScanRunner:
    engine = ScanEngine(store, objects, AccessibilityAnalyzer(None), ReliabilityScanner(None))
    return ScanRunner(store, engine)


class TestScanRunner:
    def test_completed_run_persists_issues_and_score(self, tmp_path, course_zip):
        async def scenario():
            store, objects, project = await _setup(tmp_path, course_zip)
            try:
                outcome = await _offline_runner(store, objects).execute(project.id)
                latest = await store.get_latest_scan_run(project.id)
                return outcome, latest
            finally:
                await store.close()

        outcome, latest = asyncio.run(scenario())

        assert outcome.scan_run["status"] == "completed"
        assert outcome.scan_run["started_at"] is not None
        assert outcome.scan_run["finished_at"] is not None
        assert latest["id"] == outcome.scan_run["id"]
        assert _keys(outcome.issues) == [
            "a11y.scan.engine_source_missing",
            "reliability.scan.skipped_no_api_key",
        ]
        assert all(i["scan_run_id"] == outcome.scan_run["id"] for i in outcome.issues)
        # accessibility 94, scorm 100, reliability 97
        assert outcome.score["accessibility_score"] == 94
        assert outcome.score["reliability_score"] == 97
        assert outcome.score["total_score"] == 97
        assert {s["category"] for s in outcome.score_meta["category_stats"]} == {
            c.value for c in Category
        }

    def test_project_without_package(self, tmp_path):
        async def scenario():
            store, objects, project = await _setup(tmp_path)
            try:
                return await _offline_runner(store, objects).execute(project.id)
            finally:
                await store.close()

        outcome = asyncio.run(scenario())
        assert _keys(outcome.issues) == [
            "a11y.html.missing",
            "reliability.scan.skipped_no_api_key",
            "scorm.package.missing",
        ]
        assert outcome.scan_run["status"] == "completed"

    def test_structural_findings(self, tmp_path, make_zip):
        package = make_zip({"lesson.html": "<p>Hi</p>"})

        async def scenario():
            store, objects, project = await _setup(tmp_path, package)
            try:
                return await _offline_runner(store, objects).execute(project.id)
            finally:
                await store.close()

        outcome = asyncio.run(scenario())
        assert "scorm.manifest.missing" in _keys(outcome.issues)
        assert "scorm.launch.index_missing" in _keys(outcome.issues)
        assert outcome.score["scorm_score"] == 60

    def test_stage_failures_become_issues(self, tmp_path, course_zip):
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(side_effect=RuntimeError("browser crashed"))
        reliability = MagicMock()
        reliability.scan = AsyncMock(side_effect=TimeoutError("auditor timed out"))

        async def scenario():
            store, objects, project = await _setup(tmp_path, course_zip)
            try:
                runner = ScanRunner(store, ScanEngine(store, objects, analyzer, reliability))
                return await runner.execute(project.id)
            finally:
                await store.close()

        outcome = asyncio.run(scenario())
        by_key = {i["rule_key"]: i for i in outcome.issues}
        assert set(by_key) == {"a11y.scan.engine_failed", "reliability.scan.failed"}
        assert by_key["a11y.scan.engine_failed"]["severity"] == "medium"
        assert by_key["a11y.scan.engine_failed"]["detail"] == "browser crashed"
        assert by_key["reliability.scan.failed"]["detail"] == "auditor timed out"
        assert outcome.scan_run["status"] == "completed"

    def test_corrupt_package_fails_run(self, tmp_path, monkeypatch):
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path / "scratch"))
        (tmp_path / "scratch").mkdir()

        async def scenario():
            store, objects, project = await _setup(tmp_path, b"this is not a zip")
            try:
                with pytest.raises(PackageError) as excinfo:
                    await _offline_runner(store, objects).execute(project.id)
                return excinfo.value, await store.list_scan_runs(project.id)
            finally:
                await store.close()

        error, runs = asyncio.run(scenario())
        assert len(runs) == 1
        assert runs[0]["status"] == "failed"
        assert runs[0]["error_text"] == str(error)
        assert runs[0]["finished_at"] is not None
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_scratch_dir_removed_after_success(self, tmp_path, monkeypatch, course_zip):
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path / "scratch"))
        (tmp_path / "scratch").mkdir()

        async def scenario():
            store, objects, project = await _setup(tmp_path, course_zip)
            try:
                await _offline_runner(store, objects).execute(project.id)
            finally:
                await store.close()

        asyncio.run(scenario())
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_runs_are_isolated(self, tmp_path, course_zip):
        async def scenario():
            store, objects, project = await _setup(tmp_path, course_zip)
            try:
                runner = _offline_runner(store, objects)
                first = await runner.execute(project.id)
                second = await runner.execute(project.id)
                return (
                    first,
                    second,
                    await store.list_issues_for_run(first.scan_run["id"]),
                )
            finally:
                await store.close()

        first, second, first_again = asyncio.run(scenario())
        assert first.scan_run["id"] != second.scan_run["id"]
        assert len(first_again) == len(first.issues)
        assert {i["id"] for i in first.issues}.isdisjoint({i["id"] for i in second.issues})

    def test_storage_failure_before_scan_fails_run(self, tmp_path, course_zip):
        async def scenario():
            store, objects, project = await _setup(tmp_path, course_zip)
            store.clear_issues_for_run = AsyncMock(
                side_effect=RuntimeError("database is locked")
            )
            try:
                with pytest.raises(RuntimeError, match="database is locked"):
                    await _offline_runner(store, objects).execute(project.id)
                return await store.list_scan_runs(project.id)
            finally:
                await store.close()

        runs = asyncio.run(scenario())
        assert [(r["status"], r["error_text"]) for r in runs] == [
            ("failed", "database is locked")
        ]
        assert runs[0]["finished_at"] is not None

    def test_failed_state_not_overwritten_when_terminal(self):
        store = AsyncMock()
        store.get_scan_run.return_value = {"id": "r1", "status": "completed"}
        engine = MagicMock()
        engine.scan = AsyncMock(side_effect=RuntimeError("late failure"))

        with pytest.raises(RuntimeError):
            asyncio.run(ScanRunner(store, engine).execute("p1"))

        statuses = [c.args[1].value for c in store.update_scan_run_status.await_args_list]
        assert statuses == ["running"]


class TestScanEngine:
    def test_uses_newest_zip_asset(self, tmp_path, make_zip, course_files):
        old = make_zip({"lesson.html": "<p>old</p>"})
        new = make_zip(course_files)
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(return_value=[])

        async def scenario():
            store, objects, project = await _setup(tmp_path, old)
            await asyncio.sleep(0.01)
            await store_package(store, objects, project.id, new)
            try:
                engine = ScanEngine(store, objects, analyzer, ReliabilityScanner(None))
                return await engine.scan(project.id)
            finally:
                await store.close()

        result = asyncio.run(scenario())
        keys = [i.rule_key for i in result.issues]
        assert "scorm.manifest.missing" not in keys
        markup_files, base_dir = analyzer.analyze.await_args.args
        assert [p.name for p in markup_files] == ["index.html"]
        assert result.score.scores.scorm_score == 100


def test_build_scan_runner_is_offline_by_default(config):
    store = MagicMock()
    objects = MagicMock()
    runner = build_scan_runner(config, store, objects)
    assert isinstance(runner, ScanRunner)
    engine = runner._engine
    assert engine._analyzer._axe_source is None
    assert engine._reliability._auditor is None

