"""SQLite database connection management and schema migrations."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS assets (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    locator TEXT NOT NULL,
    mime_type TEXT NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at REAL NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id)
);

CREATE TABLE IF NOT EXISTS scan_runs (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at REAL,
    finished_at REAL,
    error_text TEXT,
    created_at REAL NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id)
);

CREATE TABLE IF NOT EXISTS issues (
    id TEXT PRIMARY KEY,
    scan_run_id TEXT NOT NULL,
    project_id TEXT NOT NULL,
    category TEXT NOT NULL,
    severity TEXT NOT NULL,
    rule_key TEXT NOT NULL,
    title TEXT NOT NULL,
    detail TEXT NOT NULL,
    evidence TEXT,
    file_path TEXT,
    line_no INTEGER,
    selector TEXT,
    fix_suggestion TEXT,
    created_at REAL NOT NULL,
    FOREIGN KEY (scan_run_id) REFERENCES scan_runs(id),
    FOREIGN KEY (project_id) REFERENCES projects(id)
);

CREATE TABLE IF NOT EXISTS score_summary (
    scan_run_id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    total_score INTEGER NOT NULL,
    accessibility_score INTEGER NOT NULL,
    scorm_score INTEGER NOT NULL,
    reliability_score INTEGER NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    FOREIGN KEY (scan_run_id) REFERENCES scan_runs(id)
);

CREATE INDEX IF NOT EXISTS idx_assets_project
    ON assets(project_id, created_at);
CREATE INDEX IF NOT EXISTS idx_scan_runs_project_created
    ON scan_runs(project_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_issues_run
    ON issues(scan_run_id);
CREATE INDEX IF NOT EXISTS idx_issues_project_category_severity
    ON issues(project_id, category, severity);
"""


async def get_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open (or create) the database. Call ``migrate`` before use."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    return db


async def migrate(db: aiosqlite.Connection) -> None:
    """Run schema migrations if needed. Safe to call repeatedly."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    row = await cursor.fetchone()

    if row is None:
        # Fresh database: create everything
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        await db.commit()
        logger.info("Database initialized at schema version %d", SCHEMA_VERSION)
        return

    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    current = row[0] if row else 0

    if current < SCHEMA_VERSION:
        logger.info(
            "Migrating database from version %d to %d",
            current,
            SCHEMA_VERSION,
        )
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "UPDATE schema_version SET version = ?",
            (SCHEMA_VERSION,),
        )
        await db.commit()
