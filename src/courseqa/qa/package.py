"""Course archive storage and extraction into a scratch directory."""

from __future__ import annotations

import io
import logging
import shutil
import tempfile
import time
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from courseqa.errors import PackageError
from courseqa.qa.models import Asset, AssetKind

logger = logging.getLogger(__name__)

MARKUP_EXTENSIONS = (".html", ".htm")
MANIFEST_NAME = "imsmanifest.xml"
LAUNCH_FILE = "index.html"
ZIP_CONTENT_TYPE = "application/zip"


@dataclass
class ExtractedPackage:
    """A materialized archive. Only valid inside ``open_package``."""

    root: Path
    entries: list[str] = field(default_factory=list)

    @property
    def entry_names(self) -> set[str]:
        """Lower-cased names of every file entry."""
        return {name.lower() for name in self.entries}

    @property
    def markup_files(self) -> list[Path]:
        """Absolute paths of markup entries, in archive order."""
        return [
            self.root / name
            for name in self.entries
            if name.lower().endswith(MARKUP_EXTENSIONS)
        ]

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def read_text(self, name: str) -> str:
        """Read an entry as UTF-8, matching the name case-insensitively."""
        wanted = name.lower()
        for entry in self.entries:
            if entry.lower() == wanted:
                return (self.root / entry).read_bytes().decode("utf-8")
        raise FileNotFoundError(name)


def _check_entry_name(name: str) -> None:
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts or "\\" in name:
        raise PackageError(f"Unsafe archive entry: {name!r}")


def extract_archive(data: bytes, dest: Path) -> list[str]:
    """Extract ``data`` into ``dest`` and return the file entry names.

    Raises PackageError for corrupt archives or entries escaping ``dest``.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise PackageError(f"Course archive is not a valid zip file: {e}") from e

    entries: list[str] = []
    with archive:
        for info in archive.infolist():
            _check_entry_name(info.filename)
            if info.is_dir():
                continue
            entries.append(info.filename)
        try:
            archive.extractall(dest)
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise PackageError(f"Course archive is corrupt: {e}") from e

    logger.debug("Extracted %d entries into %s", len(entries), dest)
    return entries


@contextmanager
def open_package(data: bytes, prefix: str = "courseqa-scan-") -> Iterator[ExtractedPackage]:
    """Extract an archive to a temp dir that is removed on every exit path."""
    root = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        entries = extract_archive(data, root)
        yield ExtractedPackage(root=root, entries=entries)
    finally:
        shutil.rmtree(root, ignore_errors=True)
        logger.debug("Removed scratch directory %s", root)


def list_markup_files(root: Path) -> list[Path]:
    """Every markup file under ``root``, recursively, in sorted order."""
    return sorted(
        path
        for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in MARKUP_EXTENSIONS
    )


async def store_package(store, objects, project_id: str, data: bytes) -> Asset:
    """Persist archive bytes and register them as the project's newest package."""
    stamp = int(time.time() * 1000)
    locator = await objects.write(
        "assets", project_id, f"package-{stamp}.zip", data, ZIP_CONTENT_TYPE
    )
    asset = Asset(
        project_id=project_id,
        kind=AssetKind.ZIP,
        locator=locator,
        mime_type=ZIP_CONTENT_TYPE,
        sort_order=stamp,
    )
    await store.add_asset(asset)
    logger.info("Stored %d byte package for project %s", len(data), project_id)
    return asset
