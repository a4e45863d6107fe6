"""Scan engine: sequences the package, accessibility and reliability scanners."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from courseqa.auditor import build_auditor
from courseqa.config import CourseQAConfig
from courseqa.qa.accessibility import AccessibilityAnalyzer, load_axe_source
from courseqa.qa.manifest import validate_package
from courseqa.qa.models import (
    AssetKind,
    Category,
    Issue,
    ScanRun,
    ScanStatus,
    ScoreSummary,
    Severity,
)
from courseqa.qa.package import MANIFEST_NAME, open_package
from courseqa.qa.reliability import ReliabilityScanner
from courseqa.qa.scoring import ScoreComputation, score_issues
from courseqa.storage.base import QAStore
from courseqa.storage.objects import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Issues found for one project package plus their score."""

    project_id: str
    issues: list[Issue] = field(default_factory=list)
    score: ScoreComputation | None = None
    source_locator: str | None = None


@dataclass
class ScanOutcome:
    """What a completed scan run hands back to callers."""

    scan_run: dict
    issues: list[dict]
    score: dict
    score_meta: dict

    def to_dict(self) -> dict:
        return {
            "scan_run": self.scan_run,
            "issues": self.issues,
            "score": self.score,
            "score_meta": self.score_meta,
        }


async def latest_zip_asset(store: QAStore, project_id: str) -> dict | None:
    """Most recently created archive asset of a project."""
    assets = [a for a in await store.list_assets(project_id) if a["kind"] == AssetKind.ZIP.value]
    if not assets:
        return None
    return max(assets, key=lambda a: a["created_at"])


class ScanEngine:
    """Runs every scanner against a project's newest package."""

    def __init__(
        self,
        store: QAStore,
        objects: ObjectStore,
        analyzer: AccessibilityAnalyzer,
        reliability: ReliabilityScanner,
    ) -> None:
        self._store = store
        self._objects = objects
        self._analyzer = analyzer
        self._reliability = reliability

    async def scan(self, project_id: str) -> ScanResult:
        """Scan the project's newest zip asset.

        Extraction and manifest errors propagate. Failures inside the
        accessibility or reliability stage become one medium issue each.
        """
        asset = await latest_zip_asset(self._store, project_id)
        result = ScanResult(project_id=project_id)

        if asset is None:
            logger.info("Project %s has no package; scanning without one", project_id)
            result.issues.extend(validate_package(None))
            await self._run_content_stages(result, [], None)
        else:
            result.source_locator = asset["locator"]
            data = await self._objects.read(asset["locator"])
            with open_package(data) as package:
                result.issues.extend(
                    validate_package(
                        package.entry_names,
                        lambda: package.read_text(MANIFEST_NAME),
                    )
                )
                await self._run_content_stages(result, package.markup_files, package.root)

        result.score = score_issues(result.issues)
        return result

    async def _run_content_stages(self, result: ScanResult, markup_files, base_dir) -> None:
        try:
            result.issues.extend(await self._analyzer.analyze(markup_files, base_dir))
        except Exception as e:
            logger.warning("Accessibility stage failed: %s", e, exc_info=True)
            result.issues.append(
                Issue(
                    category=Category.ACCESSIBILITY,
                    severity=Severity.MEDIUM,
                    rule_key="a11y.scan.engine_failed",
                    title="Accessibility scan engine failed",
                    detail=str(e) or "Unknown accessibility scan error.",
                )
            )

        try:
            result.issues.extend(
                await self._reliability.scan(result.project_id, markup_files, base_dir)
            )
        except Exception as e:
            logger.warning("Reliability stage failed: %s", e, exc_info=True)
            result.issues.append(
                Issue(
                    category=Category.RELIABILITY,
                    severity=Severity.MEDIUM,
                    rule_key="reliability.scan.failed",
                    title="Reliability scan failed",
                    detail=str(e) or "Unknown reliability scan error.",
                )
            )


class ScanRunner:
    """Drives one scan run through queued, running, then completed or failed."""

    def __init__(self, store: QAStore, engine: ScanEngine) -> None:
        self._store = store
        self._engine = engine

    async def execute(self, project_id: str) -> ScanOutcome:
        run = ScanRun(project_id=project_id)
        await self._store.create_scan_run(run)

        try:
            await self._store.update_scan_run_status(run.id, ScanStatus.RUNNING)
            await self._store.clear_issues_for_run(run.id)
            logger.info("Scan run %s started for project %s", run.id, project_id)

            result = await self._engine.scan(project_id)
            for issue in result.issues:
                issue.scan_run_id = run.id
                issue.project_id = project_id
                await self._store.add_issue(issue)

            score = await self._store.upsert_score_summary(
                ScoreSummary.from_scores(run.id, project_id, result.score.scores)
            )
            await self._store.update_scan_run_status(run.id, ScanStatus.COMPLETED)
        except Exception as e:
            await self._mark_failed(run.id, str(e) or type(e).__name__)
            raise

        logger.info(
            "Scan run %s completed: %d issue(s), total score %d",
            run.id,
            len(result.issues),
            score["total_score"],
        )
        return ScanOutcome(
            scan_run=await self._store.get_scan_run(run.id),
            issues=await self._store.list_issues_for_run(run.id),
            score=score,
            score_meta=result.score.meta(),
        )

    async def _mark_failed(self, scan_run_id: str, message: str) -> None:
        current = await self._store.get_scan_run(scan_run_id)
        if current and current["status"] in (
            ScanStatus.QUEUED.value,
            ScanStatus.RUNNING.value,
        ):
            await self._store.update_scan_run_status(
                scan_run_id, ScanStatus.FAILED, message
            )
        logger.error("Scan run %s failed: %s", scan_run_id, message)


def build_scan_runner(
    config: CourseQAConfig, store: QAStore, objects: ObjectStore
) -> ScanRunner:
    """Wire the scanners from configuration."""
    analyzer = AccessibilityAnalyzer(
        load_axe_source(config.axe_source_path),
        max_files=config.max_markup_files,
        max_violations=config.max_violations_per_file,
    )
    reliability = ReliabilityScanner(
        build_auditor(config),
        max_files=config.max_markup_files,
        max_chars=config.max_snippet_chars,
    )
    return ScanRunner(store, ScanEngine(store, objects, analyzer, reliability))
