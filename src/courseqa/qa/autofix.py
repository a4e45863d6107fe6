"""Automatic remediation of common markup accessibility defects.

Rewrites every markup file of a project's newest archive, repackages the
result as a new archive asset and stores a unified diff of the edits.
"""

from __future__ import annotations

import difflib
import io
import logging
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from courseqa.errors import DomainError, NothingToFixError, ProjectNotFoundError
from courseqa.qa.engine import latest_zip_asset
from courseqa.qa.models import Asset, AssetKind, FixCounts, FixRunResult
from courseqa.qa.package import ZIP_CONTENT_TYPE, list_markup_files, open_package
from courseqa.storage.base import QAStore
from courseqa.storage.objects import ObjectStore

logger = logging.getLogger(__name__)

IMAGE_ALT_PLACEHOLDER = "Image"
BUTTON_LABEL_PLACEHOLDER = "Action button"
INPUT_LABEL_PLACEHOLDER = "Input field"

DIFF_CONTENT_TYPE = "text/plain; charset=utf-8"

_SKIPPED_INPUT_TYPES = ("hidden", "submit", "button")
_HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


class _SourceOrderFormatter(HTMLFormatter):
    """Minimal entity escaping that keeps attributes in source order."""

    def attributes(self, tag):
        return list(tag.attrs.items())


_FORMATTER = _SourceOrderFormatter(entity_substitution=EntitySubstitution.substitute_xml)


def _blank(value) -> bool:
    if isinstance(value, list):
        value = " ".join(value)
    return value is None or not str(value).strip()


def _fix_images(soup: BeautifulSoup) -> int:
    count = 0
    for img in soup.find_all("img"):
        if _blank(img.get("alt")):
            img["alt"] = IMAGE_ALT_PLACEHOLDER
            count += 1
    return count


def _fix_buttons(soup: BeautifulSoup) -> int:
    count = 0
    for button in soup.find_all("button"):
        if (
            _blank(button.get_text())
            and _blank(button.get("aria-label"))
            and _blank(button.get("title"))
        ):
            button["aria-label"] = BUTTON_LABEL_PLACEHOLDER
            count += 1
    return count


def _fix_form_controls(soup: BeautifulSoup) -> int:
    count = 0
    for control in soup.find_all(["input", "select", "textarea"]):
        if control.name == "input":
            input_type = (control.get("type") or "").lower()
            if input_type in _SKIPPED_INPUT_TYPES:
                continue
        if not _blank(control.get("aria-label")):
            continue
        control_id = control.get("id")
        if control_id and soup.find("label", attrs={"for": control_id}):
            continue

        placeholder = (control.get("placeholder") or "").strip()
        name = (control.get("name") or "").strip()
        control["aria-label"] = placeholder or name or INPUT_LABEL_PLACEHOLDER
        count += 1
    return count


def _fix_headings(soup: BeautifulSoup) -> int:
    """First heading becomes h1, later h1s become h2, no level skips."""
    count = 0
    seen_h1 = False
    prev_level = 0
    for heading in soup.find_all(_HEADINGS):
        level = int(heading.name[1])
        target = level
        if not seen_h1:
            target = 1
            seen_h1 = True
        else:
            if target == 1:
                target = 2
            if prev_level > 0 and target > prev_level + 1:
                target = prev_level + 1

        if target != level:
            heading.name = f"h{target}"
            count += 1
        prev_level = target
    return count


def apply_html_fixes(html: str) -> tuple[str, FixCounts]:
    """Apply every remediation rule to one document, in rule order."""
    soup = BeautifulSoup(html, "html.parser")
    counts = FixCounts(
        img_alt_added=_fix_images(soup),
        button_aria_label_added=_fix_buttons(soup),
        input_aria_label_added=_fix_form_controls(soup),
        heading_adjusted=_fix_headings(soup),
    )
    return soup.decode(formatter=_FORMATTER), counts


@dataclass
class FileChange:
    rel_path: str
    before: str
    after: str
    counts: FixCounts


def build_diff_text(changes: list[FileChange], summary: FixCounts) -> str:
    """Summary header followed by one unified diff per changed file."""
    header = (
        "# Auto Fix Summary\n"
        f"- img alt added: {summary.img_alt_added}\n"
        f"- button aria-label added: {summary.button_aria_label_added}\n"
        f"- input/select/textarea aria-label added: {summary.input_aria_label_added}\n"
        f"- heading adjusted: {summary.heading_adjusted}\n\n"
    )
    patches = []
    for change in changes:
        lines = difflib.unified_diff(
            change.before.splitlines(keepends=True),
            change.after.splitlines(keepends=True),
            fromfile=change.rel_path,
            tofile=change.rel_path,
            fromfiledate="before",
            tofiledate="after",
            n=2,
        )
        patches.append("".join(line if line.endswith("\n") else line + "\n" for line in lines))
    return header + "\n\n".join(patches)


def zip_directory(root: Path) -> bytes:
    """Pack every file under ``root`` into an in-memory zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(root.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(root).as_posix())
    return buffer.getvalue()


def artifact_prefix(project_id: str) -> str:
    return f"qa-fix-{project_id}-"


class AutoFixer:
    """Remediates a project's newest archive and records the result."""

    def __init__(self, store: QAStore, objects: ObjectStore) -> None:
        self._store = store
        self._objects = objects

    async def run(self, project_id: str) -> FixRunResult:
        if not await self._store.get_project(project_id):
            raise ProjectNotFoundError(project_id)

        source = await latest_zip_asset(self._store, project_id)
        if source is None:
            raise NothingToFixError("No zip asset found to fix")

        data = await self._objects.read(source["locator"])
        with open_package(data, prefix="courseqa-fix-") as package:
            markup_files = list_markup_files(package.root)
            if not markup_files:
                raise NothingToFixError("No HTML files in zip. Nothing to auto-fix.")

            changes: list[FileChange] = []
            for path in markup_files:
                before = path.read_bytes().decode("utf-8", errors="replace")
                after, counts = apply_html_fixes(before)
                if after != before:
                    path.write_bytes(after.encode("utf-8"))
                    changes.append(FileChange(package.relative(path), before, after, counts))

            fixed_zip = zip_directory(package.root)

        total = FixCounts()
        for change in changes:
            total = total + change.counts

        stamp = int(time.time() * 1000)
        zip_name = f"{artifact_prefix(project_id)}{stamp}.zip"
        diff_name = f"{artifact_prefix(project_id)}{stamp}.diff.txt"

        zip_locator = await self._objects.write(
            "qa", project_id, zip_name, fixed_zip, ZIP_CONTENT_TYPE
        )
        diff_locator = await self._objects.write(
            "qa", project_id, diff_name, build_diff_text(changes, total), DIFF_CONTENT_TYPE
        )
        asset = Asset(
            project_id=project_id,
            kind=AssetKind.ZIP,
            locator=zip_locator,
            mime_type=ZIP_CONTENT_TYPE,
            sort_order=stamp,
        )
        await self._store.add_asset(asset)

        logger.info(
            "Auto-fix for project %s changed %d file(s) with %d edit(s)",
            project_id,
            len(changes),
            total.total,
        )
        return FixRunResult(
            zip_asset_id=asset.id,
            zip_locator=zip_locator,
            diff_locator=diff_locator,
            fixed_zip_name=zip_name,
            diff_name=diff_name,
            changed_files=len(changes),
            total_fixes=total,
        )


def resolve_fix_artifact(
    objects: ObjectStore, project_id: str, file_name: str
) -> tuple[str, str, str]:
    """Validate a fix artifact download name.

    Returns ``(locator, content_type, file_name)``. Only basenames carrying
    the project's fix prefix are accepted.
    """
    name = PurePosixPath(file_name.replace("\\", "/")).name
    if not name.startswith(artifact_prefix(project_id)):
        raise DomainError("Invalid artifact filename")
    content_type = ZIP_CONTENT_TYPE if name.endswith(".zip") else DIFF_CONTENT_TYPE
    return objects.locator_for("qa", project_id, name), content_type, name
