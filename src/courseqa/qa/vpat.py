"""VPAT draft generation from the latest scan run of a project."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath

from courseqa.errors import DomainError, ProjectNotFoundError
from courseqa.qa.models import Category
from courseqa.storage.base import QAStore
from courseqa.storage.objects import ObjectStore

logger = logging.getLogger(__name__)

VPAT_CONTENT_TYPE = "text/markdown; charset=utf-8"
TOP_FINDINGS = 8

SUPPORTS = "Supports"
PARTIALLY_SUPPORTS = "Partially Supports"
DOES_NOT_SUPPORT = "Does Not Support"


@dataclass(frozen=True)
class SeverityCounts:
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def of(cls, issues: list[dict]) -> SeverityCounts:
        severities = [issue["severity"] for issue in issues]
        return cls(
            critical=severities.count("critical"),
            high=severities.count("high"),
            medium=severities.count("medium"),
            low=severities.count("low"),
        )


def determine_conformance(counts: SeverityCounts) -> str:
    if counts.critical > 0 or counts.high >= 3:
        return DOES_NOT_SUPPORT
    if counts.high or counts.medium or counts.low:
        return PARTIALLY_SUPPORTS
    return SUPPORTS


def _format_finding(index: int, issue: dict) -> str:
    return (
        f"{index}. [{issue['severity']}] {issue['title']}\n"
        f"   - File: {issue.get('file_path') or '-'}\n"
        f"   - Detail: {issue['detail']}\n"
        f"   - Suggested remediation: {issue.get('fix_suggestion') or 'Review manually'}"
    )


def build_vpat_markdown(
    project: dict,
    scan_run_id: str,
    score: dict,
    counts: SeverityCounts,
    findings: list[dict],
    generated_at: str,
) -> str:
    level_a = determine_conformance(counts)
    level_aa = determine_conformance(
        SeverityCounts(critical=counts.critical, high=counts.high, medium=counts.medium)
    )
    section_508 = determine_conformance(
        SeverityCounts(
            critical=counts.critical,
            high=counts.high,
            medium=math.ceil(counts.medium / 2),
        )
    )

    if findings:
        finding_text = "\n".join(
            _format_finding(i, issue) for i, issue in enumerate(findings, start=1)
        )
    else:
        finding_text = "- No accessibility findings detected in latest scan."

    return (
        "# VPAT Draft (Auto-generated)\n\n"
        "> Draft notice: This is an automatically generated draft based on static "
        "QA scan results. Human review is required before external sharing.\n\n"
        "## Product Information\n"
        f"- Product: {project['title']}\n"
        f"- Project ID: {project['id']}\n"
        f"- Source Scan Run ID: {scan_run_id}\n"
        f"- Generated At (UTC): {generated_at}\n"
        "- Applicable Standards: WCAG 2.1 A/AA, Section 508 (draft mapping)\n\n"
        "## Scan Score Snapshot\n"
        f"- Total score: {score['total_score']}\n"
        f"- Accessibility score: {score['accessibility_score']}\n"
        f"- SCORM score: {score['scorm_score']}\n"
        f"- Reliability score: {score['reliability_score']}\n\n"
        "## Accessibility Issue Counts (Latest Scan)\n"
        f"- Critical: {counts.critical}\n"
        f"- High: {counts.high}\n"
        f"- Medium: {counts.medium}\n"
        f"- Low: {counts.low}\n\n"
        "## Conformance Summary (Draft)\n"
        "| Criteria | Conformance | Remarks |\n"
        "|---|---|---|\n"
        f"| WCAG 2.1 Level A | {level_a} | Derived from automated accessibility "
        "findings; verify manually for final report. |\n"
        f"| WCAG 2.1 Level AA | {level_aa} | Medium/High/Critical findings "
        "influence this draft status. |\n"
        f"| Section 508 (Chapter 5, draft mapping) | {section_508} | Initial mapping "
        "from WCAG-oriented scan; legal review recommended. |\n\n"
        "## Top Accessibility Findings\n"
        f"{finding_text}\n\n"
        "## Assumptions and Limitations\n"
        "- This draft relies on automated HTML scanning and heuristic scoring.\n"
        "- It does not replace full manual audit, assistive technology testing, "
        "or legal review.\n"
        "- Dynamic runtime behavior and context-specific accessibility "
        "requirements may not be fully covered.\n"
    )


def vpat_prefix(project_id: str) -> str:
    return f"vpat-{project_id}-"


async def generate_vpat_draft(store: QAStore, objects: ObjectStore, project_id: str) -> str:
    """Render and store a draft for the latest run; returns its file name."""
    project = await store.get_project(project_id)
    if not project:
        raise ProjectNotFoundError(project_id)
    scan_run = await store.get_latest_scan_run(project_id)
    if not scan_run:
        raise DomainError("No scan run found. Run QA scan first.")
    score = await store.get_score_summary(scan_run["id"])
    if not score:
        raise DomainError("No score summary found for latest scan.")

    issues = await store.list_issues_for_run(scan_run["id"])
    accessibility = [i for i in issues if i["category"] == Category.ACCESSIBILITY.value]
    content = build_vpat_markdown(
        project,
        scan_run["id"],
        score,
        SeverityCounts.of(accessibility),
        accessibility[:TOP_FINDINGS],
        datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
    )

    file_name = f"{vpat_prefix(project_id)}{int(time.time() * 1000)}.md"
    await objects.write("vpat", project_id, file_name, content, VPAT_CONTENT_TYPE)
    logger.info("Wrote VPAT draft %s for scan run %s", file_name, scan_run["id"])
    return file_name


async def read_vpat_draft(objects: ObjectStore, project_id: str, file_name: str) -> tuple[str, bytes]:
    """Load a stored draft by its download name."""
    name = PurePosixPath(file_name.replace("\\", "/")).name
    if not name.startswith(vpat_prefix(project_id)) or not name.endswith(".md"):
        raise DomainError("Invalid VPAT filename")
    data = await objects.read(objects.locator_for("vpat", project_id, name))
    return name, data
