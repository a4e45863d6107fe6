"""Global configuration: XDG paths, env vars, optional YAML overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_QA_MODEL = "gpt-4.1-mini"


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "courseqa"
    return Path.home() / ".local" / "share" / "courseqa"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "courseqa"
    return Path.home() / ".config" / "courseqa"


def _clean_env(name: str) -> str:
    """Read an env var, trimming whitespace and one layer of quotes."""
    value = os.environ.get(name, "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1].strip()
    return value


@dataclass
class CourseQAConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)

    # Storage port selection
    db_backend: str = "sqlite"  # sqlite | dynamodb
    ddb_table_prefix: str = ""
    aws_region: str = ""
    storage_backend: str = "local"  # local | s3
    s3_bucket: str = ""
    s3_prefix: str = ""

    # External capabilities
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    qa_model: str = DEFAULT_QA_MODEL
    auditor_timeout: float = 60.0
    auditor_retries: int = 2
    axe_source_path: Path | None = None

    # Scan bounds
    max_markup_files: int = 3
    max_violations_per_file: int = 10
    max_snippet_chars: int = 3500

    web_host: str = "127.0.0.1"
    web_port: int = 8480
    verbose: bool = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / "courseqa.db"

    @property
    def objects_dir(self) -> Path:
        return self.data_dir / "objects"

    @classmethod
    def load(cls) -> CourseQAConfig:
        """Load config from environment variables, then config.yaml overrides."""
        config = cls()

        backend = _clean_env("COURSEQA_DB_BACKEND").lower()
        config.ddb_table_prefix = _clean_env("COURSEQA_DDB_TABLE_PREFIX")
        if backend in ("sqlite", "dynamodb"):
            config.db_backend = backend
        elif config.ddb_table_prefix:
            config.db_backend = "dynamodb"

        config.aws_region = _clean_env("COURSEQA_AWS_REGION") or _clean_env(
            "AWS_REGION"
        )
        config.s3_bucket = _clean_env("COURSEQA_S3_BUCKET")
        config.s3_prefix = _clean_env("COURSEQA_S3_PREFIX").strip("/")
        storage = _clean_env("COURSEQA_STORAGE_BACKEND").lower()
        if storage in ("local", "s3"):
            config.storage_backend = storage
        elif config.s3_bucket:
            config.storage_backend = "s3"

        config.openai_api_key = _clean_env("OPENAI_API_KEY")
        base_url = _clean_env("OPENAI_BASE_URL")
        if base_url:
            config.openai_base_url = base_url.rstrip("/")
        config.qa_model = (
            _clean_env("OPENAI_MODEL_QA")
            or _clean_env("OPENAI_MODEL")
            or DEFAULT_QA_MODEL
        )

        axe_source = _clean_env("COURSEQA_AXE_SOURCE")
        if axe_source:
            config.axe_source_path = Path(axe_source)

        for env_name, attr in (
            ("COURSEQA_MAX_MARKUP_FILES", "max_markup_files"),
            ("COURSEQA_MAX_VIOLATIONS", "max_violations_per_file"),
            ("COURSEQA_MAX_SNIPPET_CHARS", "max_snippet_chars"),
            ("COURSEQA_WEB_PORT", "web_port"),
        ):
            value = _clean_env(env_name)
            if value:
                setattr(config, attr, int(value))

        config_file = config.config_dir / "config.yaml"
        if config_file.is_file():
            config.apply_yaml(config_file)

        return config

    def apply_yaml(self, path: Path) -> None:
        """Overlay keys from a YAML mapping onto this config."""
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must be a mapping")

        known = {f.name: f for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r in %s", key, path)
                continue
            if key in ("data_dir", "config_dir", "axe_source_path"):
                value = Path(value) if value else None
            setattr(self, key, value)
