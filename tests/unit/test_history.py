"""Tests for scan run history and comparison."""

from __future__ import annotations

import asyncio

from courseqa.qa.history import compare_runs, list_history
from courseqa.qa.models import Project, ScanRun, ScoreSummary
from courseqa.storage.repos import SqliteStore


def _score(total: int, a11y: int = 90, scorm: int = 100, rel: int = 100) -> dict:
    return {
        "total_score": total,
        "accessibility_score": a11y,
        "scorm_score": scorm,
        "reliability_score": rel,
    }


def _run(run_id: str, score: dict | None) -> dict:
    return {"id": run_id, "status": "completed", "score": score}


def test_empty_history():
    assert compare_runs([]) is None


def test_single_scored_run_has_no_comparison():
    assert compare_runs([_run("r1", _score(90))]) is None


def test_active_run_without_score():
    history = [_run("r3", None), _run("r2", _score(80)), _run("r1", _score(70))]
    assert compare_runs(history) is None


def test_delta_against_newest_other_scored_run():
    history = [
        _run("r4", _score(92, a11y=88, scorm=100, rel=90)),
        _run("r3", None),
        _run("r2", _score(80, a11y=70, scorm=95, rel=90)),
        _run("r1", _score(10)),
    ]

    comparison = compare_runs(history)

    assert comparison.current_run_id == "r4"
    assert comparison.previous_run_id == "r2"
    assert comparison.delta.to_dict() == {
        "total": 12,
        "accessibility": 18,
        "scorm": 5,
        "reliability": 0,
    }
    assert comparison.to_dict()["previous"]["total_score"] == 80


def test_explicit_active_run():
    history = [_run("r3", _score(95)), _run("r2", _score(80)), _run("r1", _score(60))]

    comparison = compare_runs(history, active_run_id="r2")

    assert comparison.current_run_id == "r2"
    assert comparison.previous_run_id == "r3"
    assert comparison.delta.total == -15


def test_unknown_active_run():
    assert compare_runs([_run("r1", _score(90))], active_run_id="missing") is None


def test_list_history_attaches_scores(tmp_path):
    project = Project(title="Course")
    older = ScanRun(project_id=project.id, created_at=1.0)
    newer = ScanRun(project_id=project.id, created_at=2.0)

    async def scenario():
        store = await SqliteStore.open(tmp_path / "qa.db")
        try:
            await store.create_project(project)
            await store.create_scan_run(older)
            await store.create_scan_run(newer)
            await store.upsert_score_summary(ScoreSummary(older.id, project.id, 75, 70, 80, 75))
            return await list_history(store, project.id)
        finally:
            await store.close()

    history = asyncio.run(scenario())
    assert [run["id"] for run in history] == [newer.id, older.id]
    assert history[0]["score"] is None
    assert history[1]["score"]["total_score"] == 75
