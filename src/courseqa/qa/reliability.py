"""Content reliability scan: plain-text snippets sent to an external auditor."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Literal

from bs4 import BeautifulSoup
from pydantic import BaseModel, ValidationError

from courseqa.auditor import ReliabilityAuditor
from courseqa.qa.models import Category, Issue, Severity

logger = logging.getLogger(__name__)

FLAG_RULE_KEY = "reliability.flag"

_WHITESPACE_RE = re.compile(r"\s+")


class ReliabilityFlag(BaseModel):
    severity: Literal["critical", "high", "medium", "low"]
    title: str
    detail: str
    evidence: str = ""
    file: str = ""
    fix_suggestion: str = ""


class ReliabilityReport(BaseModel):
    summary: str = ""
    flags: list[ReliabilityFlag]


def strip_markup(html: str) -> str:
    """Visible text of a document with script/style removed and whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()


def _reliability_issue(severity: Severity, rule_key: str, title: str, detail: str, **kw) -> Issue:
    return Issue(
        category=Category.RELIABILITY,
        severity=severity,
        rule_key=rule_key,
        title=title,
        detail=detail,
        **kw,
    )


class ReliabilityScanner:
    """Submits markup text to a ReliabilityAuditor and normalizes its flags."""

    def __init__(
        self,
        auditor: ReliabilityAuditor | None,
        max_files: int = 3,
        max_chars: int = 3500,
    ) -> None:
        self._auditor = auditor
        self._max_files = max_files
        self._max_chars = max_chars

    def collect_snippets(
        self, markup_files: list[Path], base_dir: Path | None = None
    ) -> list[dict[str, str]]:
        snippets: list[dict[str, str]] = []
        for path in markup_files[: self._max_files]:
            try:
                raw = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("Skipping %s for reliability scan: %s", path, e)
                continue
            text = strip_markup(raw)[: self._max_chars]
            if text:
                name = path.relative_to(base_dir).as_posix() if base_dir else path.name
                snippets.append({"file": name, "text": text})
        return snippets

    async def scan(
        self,
        project_id: str,
        markup_files: list[Path],
        base_dir: Path | None = None,
    ) -> list[Issue]:
        if self._auditor is None:
            return [
                _reliability_issue(
                    Severity.LOW,
                    "reliability.scan.skipped_no_api_key",
                    "Reliability scan skipped",
                    "OPENAI_API_KEY is missing, so reliability scan was not executed.",
                )
            ]

        snippets = self.collect_snippets(markup_files, base_dir)
        if not snippets:
            return [
                _reliability_issue(
                    Severity.LOW,
                    "reliability.scan.no_content",
                    "No textual content found",
                    "No readable content was found for reliability validation.",
                )
            ]

        output = await self._auditor.audit(project_id, snippets)
        if not output:
            return [_empty_output("Auditor returned no output.")]

        try:
            report = ReliabilityReport.model_validate_json(output)
        except ValidationError as e:
            logger.warning("Unparseable reliability report: %s", e)
            return [
                _empty_output(
                    f"Auditor output did not match the report schema "
                    f"({e.error_count()} error(s))."
                )
            ]

        logger.info(
            "Reliability audit for %s: %d flag(s)", project_id, len(report.flags)
        )
        return [
            _reliability_issue(
                Severity(flag.severity),
                FLAG_RULE_KEY,
                flag.title,
                flag.detail,
                evidence=flag.evidence or None,
                file_path=flag.file or None,
                fix_suggestion=flag.fix_suggestion or None,
            )
            for flag in report.flags
        ]


def _empty_output(detail: str) -> Issue:
    return _reliability_issue(
        Severity.LOW,
        "reliability.scan.empty_output",
        "Reliability scan returned empty output",
        detail,
    )
