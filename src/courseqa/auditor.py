"""Text reliability auditor: OpenAI-compatible structured-output client."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from courseqa.config import CourseQAConfig

logger = logging.getLogger(__name__)

AUDITOR_INSTRUCTIONS = (
    "You are a content reliability auditor for eLearning QA. Return output "
    "strictly as JSON by provided schema. Flag potentially unsupported claims, "
    "numeric statements without evidence, and risky compliance wording. "
    "If no notable issues exist, return empty flags array."
)

RELIABILITY_REPORT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "flags": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "severity": {
                        "type": "string",
                        "enum": ["critical", "high", "medium", "low"],
                    },
                    "title": {"type": "string"},
                    "detail": {"type": "string"},
                    "evidence": {"type": "string"},
                    "file": {"type": "string"},
                    "fix_suggestion": {"type": "string"},
                },
                "required": [
                    "severity",
                    "title",
                    "detail",
                    "evidence",
                    "file",
                    "fix_suggestion",
                ],
                "additionalProperties": False,
            },
        },
    },
    "required": ["summary", "flags"],
    "additionalProperties": False,
}


def build_audit_prompt(project_id: str, snippets: list[dict[str, str]]) -> str:
    body = "\n\n---\n\n".join(f"FILE:{s['file']}\n{s['text']}" for s in snippets)
    return f"project_id={project_id}\n{body}"


class ReliabilityAuditor(ABC):
    """A capability that audits text snippets and returns raw JSON output."""

    @abstractmethod
    async def audit(self, project_id: str, snippets: list[dict[str, str]]) -> str | None:
        """Return the auditor's JSON text, or None/"" when it produced nothing."""


class OpenAIReliabilityAuditor(ReliabilityAuditor):
    """Chat-completions client with a strict ``json_schema`` response format."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("An API key is required for the reliability auditor")
        self.model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout
        self._retries = retries
        self._transport = transport

    async def audit(self, project_id: str, snippets: list[dict[str, str]]) -> str | None:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": AUDITOR_INSTRUCTIONS},
                {"role": "user", "content": build_audit_prompt(project_id, snippets)},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "reliability_report",
                    "strict": True,
                    "schema": RELIABILITY_REPORT_SCHEMA,
                },
            },
        }
        logger.debug("Reliability audit request to %s (%d snippets)", self.model, len(snippets))

        # The client closes its transport on exit, so build one per request.
        transport = self._transport or httpx.AsyncHTTPTransport(retries=self._retries)
        async with httpx.AsyncClient(transport=transport, timeout=self._timeout) as client:
            response = await client.post(self._url, headers=self._headers, json=payload)
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content")


def build_auditor(config: CourseQAConfig) -> ReliabilityAuditor | None:
    """Return a configured auditor, or None when no credential is set."""
    if not config.openai_api_key:
        return None
    return OpenAIReliabilityAuditor(
        api_key=config.openai_api_key,
        model=config.qa_model,
        base_url=config.openai_base_url,
        timeout=config.auditor_timeout,
        retries=config.auditor_retries,
    )

