"""Shared test fixtures."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from courseqa.config import CourseQAConfig

MANIFEST = """<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="course" xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_rootv1p2">
  <resources>
    <resource identifier="r1" type="webcontent" adlcp:scormtype="sco" href="index.html">
      <file href="index.html"/>
    </resource>
  </resources>
</manifest>
"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head><title>Lesson 1</title></head>
<body>
<h2>Welcome</h2>
<img src="logo.png">
<button></button>
<input type="text" name="email">
<p>Click Next to continue.</p>
</body>
</html>
"""


def build_zip(files: dict[str, str | bytes]) -> bytes:
    """Build an in-memory zip archive from a name -> content mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip() -> Callable[[dict[str, str | bytes]], bytes]:
    return build_zip


@pytest.fixture
def course_files() -> dict[str, str]:
    return {"imsmanifest.xml": MANIFEST, "index.html": INDEX_HTML}


@pytest.fixture
def course_zip(course_files: dict[str, str]) -> bytes:
    return build_zip(course_files)


@pytest.fixture
def config(tmp_path: Path) -> CourseQAConfig:
    """Offline config: sqlite + local objects, no axe source, no API key."""
    return CourseQAConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
    )
