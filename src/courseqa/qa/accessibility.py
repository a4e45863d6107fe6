"""Accessibility analysis: axe-core driven through a headless Chromium."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from pathlib import Path
from typing import Any

from courseqa.qa.models import Category, Issue, Severity

logger = logging.getLogger(__name__)

AXE_TAGS = ("wcag2a", "wcag2aa")

_IMPACT_SEVERITY = {
    "critical": Severity.CRITICAL,
    "serious": Severity.HIGH,
    "moderate": Severity.MEDIUM,
}

_RUN_AXE_JS = """
async (tags) => {
    if (!window.axe) { return null; }
    return await window.axe.run(document, {
        runOnly: { type: "tag", values: tags }
    });
}
"""

BrowserFactory = Callable[[], AbstractAsyncContextManager[Any]]


@asynccontextmanager
async def chromium_browser() -> AsyncIterator[Any]:
    """Launch one headless Chromium and close it on every exit path."""
    from playwright.async_api import async_playwright

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=True)
        try:
            yield browser
        finally:
            await browser.close()


def load_axe_source(path: Path | None) -> str | None:
    """Read axe.min.js; None when it is not configured or unreadable."""
    if path is None:
        return None
    try:
        source = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("axe-core source unavailable at %s: %s", path, e)
        return None
    return source or None


def impact_to_severity(impact: str | None) -> Severity:
    return _IMPACT_SEVERITY.get(impact or "", Severity.LOW)


def _a11y_issue(severity: Severity, rule_key: str, title: str, detail: str, **kw) -> Issue:
    return Issue(
        category=Category.ACCESSIBILITY,
        severity=severity,
        rule_key=rule_key,
        title=title,
        detail=detail,
        **kw,
    )


def violation_to_issue(violation: dict, file_path: str) -> Issue:
    """Normalize one axe violation into an Issue."""
    nodes = violation.get("nodes") or []
    node = nodes[0] if isinstance(nodes, list) and nodes else {}
    target = node.get("target") if isinstance(node, dict) else None
    selector = str(target[0]) if isinstance(target, list) and target else None
    rule_id = violation.get("id") or "unknown"

    return _a11y_issue(
        impact_to_severity(violation.get("impact")),
        f"axe.{rule_id}",
        violation.get("help") or violation.get("id") or "Axe violation",
        violation.get("description") or "Accessibility issue detected by axe-core.",
        evidence=node.get("failureSummary") if isinstance(node, dict) else None,
        file_path=file_path,
        selector=selector,
        fix_suggestion=violation.get("helpUrl"),
    )


class AccessibilityAnalyzer:
    """Runs axe-core against a bounded number of markup files."""

    def __init__(
        self,
        axe_source: str | None,
        max_files: int = 3,
        max_violations: int = 10,
        browser_factory: BrowserFactory = chromium_browser,
    ) -> None:
        self._axe_source = axe_source
        self._max_files = max_files
        self._max_violations = max_violations
        self._browser_factory = browser_factory

    async def analyze(
        self,
        markup_files: list[Path],
        base_dir: Path | None = None,
    ) -> list[Issue]:
        if not markup_files:
            return [
                _a11y_issue(
                    Severity.MEDIUM,
                    "a11y.html.missing",
                    "No HTML files to evaluate",
                    "Accessibility scan skipped because no HTML files were "
                    "found in package.",
                )
            ]

        if not self._axe_source:
            return [
                _a11y_issue(
                    Severity.MEDIUM,
                    "a11y.scan.engine_source_missing",
                    "Accessibility engine source unavailable",
                    "axe-core source could not be loaded in runtime, so no "
                    "HTML file was evaluated.",
                )
            ]

        issues: list[Issue] = []
        async with self._browser_factory() as browser:
            for path in markup_files[: self._max_files]:
                display = _display_path(path, base_dir)
                issues.extend(await self._scan_file(browser, path, display))
        return issues

    async def _scan_file(self, browser: Any, path: Path, display: str) -> list[Issue]:
        page = None
        try:
            page = await browser.new_page()
            await page.goto(path.resolve().as_uri(), wait_until="domcontentloaded")
            await page.add_script_tag(content=self._axe_source)
            result = await page.evaluate(_RUN_AXE_JS, list(AXE_TAGS))
        except Exception as e:
            logger.warning("Accessibility scan failed for %s: %s", display, e)
            return [
                _a11y_issue(
                    Severity.MEDIUM,
                    "a11y.scan.file_failed",
                    "Failed to scan HTML file",
                    f"Accessibility scan failed for one HTML file: {e}",
                    file_path=display,
                )
            ]
        finally:
            if page is not None:
                await _close_page(page, display)

        violations = result.get("violations") if isinstance(result, dict) else None
        if not isinstance(violations, list):
            violations = []
        return [
            violation_to_issue(v, display)
            for v in violations[: self._max_violations]
            if isinstance(v, dict)
        ]


async def _close_page(page: Any, display: str) -> None:
    try:
        await page.close()
    except Exception as e:
        logger.warning("Failed to close page for %s: %s", display, e)


def _display_path(path: Path, base_dir: Path | None) -> str:
    if base_dir is not None:
        try:
            return path.relative_to(base_dir).as_posix()
        except ValueError:
            pass
    return path.name
