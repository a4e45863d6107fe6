"""Structural checks for SCORM package prerequisites."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from courseqa.qa.models import Category, Issue, Severity
from courseqa.qa.package import LAUNCH_FILE, MANIFEST_NAME

logger = logging.getLogger(__name__)

_SCORMTYPE_RE = re.compile(r"adlcp:scormtype", re.IGNORECASE)
_LAUNCH_HREF_RE = re.compile(
    r"href\s*=\s*[\"']" + re.escape(LAUNCH_FILE) + r"[\"']", re.IGNORECASE
)


def _scorm_issue(severity: Severity, rule_key: str, title: str, detail: str, **kw) -> Issue:
    return Issue(
        category=Category.SCORM,
        severity=severity,
        rule_key=rule_key,
        title=title,
        detail=detail,
        **kw,
    )


def validate_package(
    entry_names: Iterable[str] | None,
    load_manifest: Callable[[], str] | None = None,
) -> list[Issue]:
    """Check manifest presence, its SCO marker and launch target, and the launch file.

    ``entry_names`` is None when no package has been produced yet. The
    manifest loader is only called when the manifest entry exists; any
    exception it raises is reported as an unparsable manifest. Never raises.
    """
    if entry_names is None:
        return [
            _scorm_issue(
                Severity.HIGH,
                "scorm.package.missing",
                "SCORM zip package not found",
                "No zip asset found in this project. Upload a SCORM/HTML zip "
                "package for compliance scan.",
                fix_suggestion="Upload a course package zip and rerun scan.",
            )
        ]

    names = {name.lower() for name in entry_names}
    issues: list[Issue] = []

    if MANIFEST_NAME not in names:
        issues.append(
            _scorm_issue(
                Severity.CRITICAL,
                "scorm.manifest.missing",
                f"{MANIFEST_NAME} is missing",
                f"SCORM package does not include {MANIFEST_NAME}.",
                file_path=MANIFEST_NAME,
                fix_suggestion="Regenerate package with a valid SCORM manifest.",
            )
        )
    else:
        issues.extend(_check_manifest(load_manifest))

    if LAUNCH_FILE not in names:
        issues.append(
            _scorm_issue(
                Severity.CRITICAL,
                "scorm.launch.index_missing",
                f"{LAUNCH_FILE} launch file is missing",
                f"SCORM package does not include {LAUNCH_FILE}.",
                file_path=LAUNCH_FILE,
                fix_suggestion=f"Include a launchable {LAUNCH_FILE} in package root.",
            )
        )

    return issues


def _check_manifest(load_manifest: Callable[[], str] | None) -> list[Issue]:
    try:
        if load_manifest is None:
            raise FileNotFoundError(MANIFEST_NAME)
        manifest = load_manifest()
    except Exception as e:  # any loader failure is a manifest defect
        logger.warning("Could not read %s: %s", MANIFEST_NAME, e)
        return [
            _scorm_issue(
                Severity.HIGH,
                "scorm.manifest.parse_failed",
                "Failed to parse manifest",
                f"{MANIFEST_NAME} exists but could not be parsed as text ({e}).",
                file_path=MANIFEST_NAME,
            )
        ]

    issues: list[Issue] = []
    if not _SCORMTYPE_RE.search(manifest):
        issues.append(
            _scorm_issue(
                Severity.HIGH,
                "scorm.manifest.scormtype_missing",
                "adlcp:scormtype attribute is missing",
                "Manifest does not explicitly mark resource as SCO asset.",
                file_path=MANIFEST_NAME,
                fix_suggestion="Add adlcp:scormtype='sco' to launch resource.",
            )
        )
    if not _LAUNCH_HREF_RE.search(manifest):
        issues.append(
            _scorm_issue(
                Severity.HIGH,
                "scorm.manifest.launch_missing",
                f"Launch href is not {LAUNCH_FILE}",
                f"Manifest launch target could not be validated as {LAUNCH_FILE}.",
                file_path=MANIFEST_NAME,
                fix_suggestion=f"Ensure launch resource href points to {LAUNCH_FILE}.",
            )
        )
    return issues
