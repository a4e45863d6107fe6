"""QA data models: scan runs, issues, scores, and fix results."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import asdict, dataclass, field


def _new_id() -> str:
    return uuid.uuid4().hex


class ScanStatus(enum.Enum):
    """Lifecycle state of a scan run."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


class Category(enum.Enum):
    """Issue category, one score per category."""

    ACCESSIBILITY = "accessibility"
    SCORM = "scorm"
    RELIABILITY = "reliability"


class Severity(enum.Enum):
    """Issue severity level."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class AssetKind(enum.Enum):
    IMAGE = "image"
    AUDIO = "audio"
    ZIP = "zip"


@dataclass
class Project:
    title: str
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)


@dataclass
class Asset:
    """A stored file belonging to a project (screenshot, audio, package)."""

    project_id: str
    kind: AssetKind
    locator: str
    mime_type: str
    sort_order: int = 0
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)


@dataclass
class ScanRun:
    """One execution of the QA pipeline against a project's package."""

    project_id: str
    status: ScanStatus = ScanStatus.QUEUED
    started_at: float | None = None
    finished_at: float | None = None
    error_text: str | None = None
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)


@dataclass
class Issue:
    """A single detected defect.

    ``scan_run_id`` and ``project_id`` are empty while the issue is only a
    scanner result; the orchestrator stamps them when persisting.
    """

    category: Category
    severity: Severity
    rule_key: str
    title: str
    detail: str
    evidence: str | None = None
    file_path: str | None = None
    line_no: int | None = None
    selector: str | None = None
    fix_suggestion: str | None = None
    scan_run_id: str = ""
    project_id: str = ""
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["category"] = self.category.value
        data["severity"] = self.severity.value
        return data


@dataclass(frozen=True)
class Scores:
    total_score: int
    accessibility_score: int
    scorm_score: int
    reliability_score: int


@dataclass
class ScoreSummary:
    """Derived 0 to 100 quality scores for one scan run."""

    scan_run_id: str
    project_id: str
    total_score: int
    accessibility_score: int
    scorm_score: int
    reliability_score: int
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def from_scores(
        cls, scan_run_id: str, project_id: str, scores: Scores
    ) -> ScoreSummary:
        return cls(
            scan_run_id=scan_run_id,
            project_id=project_id,
            total_score=scores.total_score,
            accessibility_score=scores.accessibility_score,
            scorm_score=scores.scorm_score,
            reliability_score=scores.reliability_score,
        )


@dataclass
class FixCounts:
    """Per-rule counts of auto-fix edits."""

    img_alt_added: int = 0
    button_aria_label_added: int = 0
    input_aria_label_added: int = 0
    heading_adjusted: int = 0

    def __add__(self, other: FixCounts) -> FixCounts:
        return FixCounts(
            img_alt_added=self.img_alt_added + other.img_alt_added,
            button_aria_label_added=self.button_aria_label_added
            + other.button_aria_label_added,
            input_aria_label_added=self.input_aria_label_added
            + other.input_aria_label_added,
            heading_adjusted=self.heading_adjusted + other.heading_adjusted,
        )

    @property
    def total(self) -> int:
        return (
            self.img_alt_added
            + self.button_aria_label_added
            + self.input_aria_label_added
            + self.heading_adjusted
        )

    def to_dict(self) -> dict[str, int]:
        """Counts keyed by the rule names used in diff summaries and the API."""
        return {
            "imgAltAdded": self.img_alt_added,
            "buttonAriaLabelAdded": self.button_aria_label_added,
            "inputAriaLabelAdded": self.input_aria_label_added,
            "headingAdjusted": self.heading_adjusted,
        }


@dataclass
class FixRunResult:
    """Outcome of one auto-fix invocation. Never persisted."""

    zip_asset_id: str
    zip_locator: str
    diff_locator: str
    fixed_zip_name: str
    diff_name: str
    changed_files: int
    total_fixes: FixCounts
