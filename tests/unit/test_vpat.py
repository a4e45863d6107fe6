"""Tests for VPAT draft generation."""

from __future__ import annotations

import asyncio

import pytest

from courseqa.errors import DomainError, ProjectNotFoundError
from courseqa.qa.models import Category, Issue, Project, ScanRun, ScoreSummary, Severity
from courseqa.qa.vpat import (
    DOES_NOT_SUPPORT,
    PARTIALLY_SUPPORTS,
    SUPPORTS,
    SeverityCounts,
    build_vpat_markdown,
    determine_conformance,
    generate_vpat_draft,
    read_vpat_draft,
)
from courseqa.storage.objects import LocalObjectStore
from courseqa.storage.repos import SqliteStore

PROJECT = {"id": "p1", "title": "Fire Safety"}
SCORE = {"total_score": 81, "accessibility_score": 70, "scorm_score": 100, "reliability_score": 75}


@pytest.mark.parametrize(
    ("counts", "expected"),
    [
        (SeverityCounts(), SUPPORTS),
        (SeverityCounts(low=1), PARTIALLY_SUPPORTS),
        (SeverityCounts(high=2, medium=4), PARTIALLY_SUPPORTS),
        (SeverityCounts(high=3), DOES_NOT_SUPPORT),
        (SeverityCounts(critical=1), DOES_NOT_SUPPORT),
    ],
)
def test_determine_conformance(counts, expected):
    assert determine_conformance(counts) == expected


def test_severity_counts_of():
    counts = SeverityCounts.of(
        [{"severity": "high"}, {"severity": "low"}, {"severity": "low"}]
    )
    assert counts == SeverityCounts(high=1, low=2)


def _conformance_rows(markdown: str) -> dict[str, str]:
    rows = {}
    for line in markdown.splitlines():
        if line.startswith(("| WCAG", "| Section")):
            cells = [c.strip() for c in line.strip("|").split("|")]
            rows[cells[0]] = cells[1]
    return rows


def test_level_mappings_drop_low_findings():
    markdown = build_vpat_markdown(
        PROJECT, "r1", SCORE, SeverityCounts(low=2), [], "2026-01-01T00:00:00.000+00:00"
    )
    rows = _conformance_rows(markdown)
    assert rows["WCAG 2.1 Level A"] == PARTIALLY_SUPPORTS
    assert rows["WCAG 2.1 Level AA"] == SUPPORTS
    assert rows["Section 508 (Chapter 5, draft mapping)"] == SUPPORTS
    assert "- No accessibility findings detected in latest scan." in markdown


def test_section_508_halves_medium_findings():
    markdown = build_vpat_markdown(
        PROJECT, "r1", SCORE, SeverityCounts(high=2, medium=1), [], "now"
    )
    rows = _conformance_rows(markdown)
    assert rows["WCAG 2.1 Level AA"] == PARTIALLY_SUPPORTS
    assert rows["Section 508 (Chapter 5, draft mapping)"] == PARTIALLY_SUPPORTS

    markdown = build_vpat_markdown(PROJECT, "r1", SCORE, SeverityCounts(high=3), [], "now")
    assert set(_conformance_rows(markdown).values()) == {DOES_NOT_SUPPORT}


def test_markdown_sections_and_findings():
    finding = {
        "severity": "high",
        "title": "Images must have alternate text",
        "detail": "img element without alt",
        "file_path": "index.html",
        "fix_suggestion": None,
    }
    markdown = build_vpat_markdown(
        PROJECT, "r9", SCORE, SeverityCounts(high=1), [finding], "2026-01-01T00:00:00.000+00:00"
    )

    assert markdown.startswith("# VPAT Draft (Auto-generated)\n")
    for heading in (
        "## Product Information",
        "## Scan Score Snapshot",
        "## Accessibility Issue Counts (Latest Scan)",
        "## Conformance Summary (Draft)",
        "## Top Accessibility Findings",
        "## Assumptions and Limitations",
    ):
        assert heading in markdown
    assert "- Product: Fire Safety" in markdown
    assert "- Source Scan Run ID: r9" in markdown
    assert "- Total score: 81" in markdown
    assert "1. [high] Images must have alternate text" in markdown
    assert "   - File: index.html" in markdown
    assert "   - Suggested remediation: Review manually" in markdown


async def _with_store(tmp_path, scenario):
    store = await SqliteStore.open(tmp_path / "qa.db")
    objects = LocalObjectStore(tmp_path / "objects")
    try:
        return await scenario(store, objects)
    finally:
        await store.close()


def test_generate_and_read_draft(tmp_path):
    project = Project(title="Fire Safety")
    run = ScanRun(project_id=project.id)

    def issue(category, severity, n):
        return Issue(
            category=category,
            severity=severity,
            rule_key="axe.image-alt",
            title=f"finding {n}",
            detail="detail",
            scan_run_id=run.id,
            project_id=project.id,
        )

    async def scenario(store, objects):
        await store.create_project(project)
        await store.create_scan_run(run)
        for n in range(10):
            await store.add_issue(issue(Category.ACCESSIBILITY, Severity.MEDIUM, n))
        await store.add_issue(issue(Category.SCORM, Severity.CRITICAL, "scorm"))
        await store.upsert_score_summary(ScoreSummary(run.id, project.id, 80, 40, 80, 100))
        file_name = await generate_vpat_draft(store, objects, project.id)
        return file_name, await read_vpat_draft(objects, project.id, file_name)

    file_name, (name, data) = asyncio.run(_with_store(tmp_path, scenario))
    markdown = data.decode("utf-8")

    assert file_name.startswith(f"vpat-{project.id}-")
    assert file_name.endswith(".md")
    assert name == file_name
    assert "- Medium: 10" in markdown
    assert "- Critical: 0" in markdown
    assert "8. [medium]" in markdown
    assert "9. [medium]" not in markdown
    assert "finding scorm" not in markdown


def test_generate_requires_project(tmp_path):
    async def scenario(store, objects):
        await generate_vpat_draft(store, objects, "missing")

    with pytest.raises(ProjectNotFoundError):
        asyncio.run(_with_store(tmp_path, scenario))


def test_generate_requires_scan_run(tmp_path):
    project = Project(title="Course")

    async def scenario(store, objects):
        await store.create_project(project)
        await generate_vpat_draft(store, objects, project.id)

    with pytest.raises(DomainError, match="No scan run found"):
        asyncio.run(_with_store(tmp_path, scenario))


def test_generate_requires_score(tmp_path):
    project = Project(title="Course")

    async def scenario(store, objects):
        await store.create_project(project)
        await store.create_scan_run(ScanRun(project_id=project.id))
        await generate_vpat_draft(store, objects, project.id)

    with pytest.raises(DomainError, match="No score summary found"):
        asyncio.run(_with_store(tmp_path, scenario))


@pytest.mark.parametrize("file_name", ["vpat-p2-1.md", "vpat-p1-1.txt", "qa-fix-p1-1.zip"])
def test_read_rejects_invalid_names(tmp_path, file_name):
    objects = LocalObjectStore(tmp_path)
    with pytest.raises(DomainError, match="Invalid VPAT filename"):
        asyncio.run(read_vpat_draft(objects, "p1", file_name))
