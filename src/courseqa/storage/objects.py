"""Object storage for package archives and QA artifacts (local disk or S3)."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any

import boto3

logger = logging.getLogger(__name__)

CATEGORIES = ("assets", "exports", "qa", "vpat")


def _clean_name(file_name: str) -> str:
    name = PurePosixPath(file_name.replace("\\", "/")).name
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid object file name: {file_name!r}")
    return name


def _check_category(category: str) -> None:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown storage category: {category!r}")


class ObjectStore(ABC):
    """Byte storage addressed by opaque locators."""

    @abstractmethod
    def locator_for(self, category: str, project_id: str, file_name: str) -> str:
        """Locator an object written with these arguments would have."""

    @abstractmethod
    async def read(self, locator: str) -> bytes: ...

    @abstractmethod
    async def write(
        self,
        category: str,
        project_id: str,
        file_name: str,
        body: bytes | str,
        content_type: str | None = None,
    ) -> str:
        """Store ``body`` and return its locator."""


class LocalObjectStore(ObjectStore):
    """Objects under ``<root>/<category>/<project_id>/<file_name>``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def locator_for(self, category: str, project_id: str, file_name: str) -> str:
        _check_category(category)
        return str(self.root / category / _clean_name(project_id) / _clean_name(file_name))

    async def read(self, locator: str) -> bytes:
        return Path(locator).read_bytes()

    async def write(
        self,
        category: str,
        project_id: str,
        file_name: str,
        body: bytes | str,
        content_type: str | None = None,
    ) -> str:
        locator = self.locator_for(category, project_id, file_name)
        path = Path(locator)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = body.encode("utf-8") if isinstance(body, str) else body
        path.write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return locator


class S3ObjectStore(ObjectStore):
    """Objects in one S3 bucket under ``[prefix/]<category>/<project_id>/<file_name>``."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: str | None = None,
        client: Any = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3 storage is enabled but no bucket is configured")
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._region = region
        self._client = client

    @property
    def client(self) -> Any:
        """Lazy-loaded boto3 S3 client."""
        if self._client is None:
            self._client = boto3.client("s3", region_name=self._region or None)
        return self._client

    def locator_for(self, category: str, project_id: str, file_name: str) -> str:
        _check_category(category)
        parts = [self.prefix, category, _clean_name(project_id), _clean_name(file_name)]
        return "/".join(p for p in parts if p)

    async def read(self, locator: str) -> bytes:
        response = await asyncio.to_thread(
            self.client.get_object, Bucket=self.bucket, Key=locator
        )
        return await asyncio.to_thread(response["Body"].read)

    async def write(
        self,
        category: str,
        project_id: str,
        file_name: str,
        body: bytes | str,
        content_type: str | None = None,
    ) -> str:
        key = self.locator_for(category, project_id, file_name)
        data = body.encode("utf-8") if isinstance(body, str) else body
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        await asyncio.to_thread(self.client.put_object, **kwargs)
        return key
