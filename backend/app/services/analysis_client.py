"""HTTP client for the external analysis tool server.

Classes:
    AnalysisResult: Analysis text plus the usage metadata reported by the tool.
    AnalysisToolClient: Invokes the `analyze_data` tool with a timeout and connect-level retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from app.core.config import Settings, get_settings
from app.core.errors import AnalysisError

_LOGGER = logging.getLogger(__name__)

# The request never reached the server, so resending cannot duplicate work.
_RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


@dataclass(slots=True)
class AnalysisResult:
    result_text: str
    usage_metadata: dict[str, Any] = field(default_factory=dict)


class AnalysisToolClient:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        settings: Optional[Settings] = None,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.analysis_tool_url,
            timeout=self._settings.analysis_tool_timeout_seconds,
            headers={"Content-Type": "application/json"},
        )
        self._wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=5)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def is_healthy(self) -> bool:
        try:
            response = await self._client.get("/health")
            response.raise_for_status()
            return response.json().get("status") == "healthy"
        except (httpx.HTTPError, ValueError):
            _LOGGER.warning("Analysis tool health check failed", exc_info=True)
            return False

    async def list_tools(self) -> list[dict[str, Any]]:
        try:
            response = await self._client.get("/tools")
            response.raise_for_status()
            return list(response.json().get("tools") or [])
        except (httpx.HTTPError, ValueError) as exc:
            raise AnalysisError(f"Unable to retrieve analysis tools: {exc}", operation="list_tools") from exc

    async def analyze_data(
        self,
        data: str,
        analysis_type: str,
        *,
        user_role: Optional[str] = None,
        urgency: Optional[str] = None,
        confidentiality_level: Optional[str] = None,
    ) -> AnalysisResult:
        body = {
            "arguments": {
                "data": data,
                "analysisType": analysis_type,
                "userRole": user_role or self._settings.analysis_user_role,
                "urgency": urgency or self._settings.analysis_urgency,
                "confidentialityLevel": confidentiality_level or self._settings.analysis_confidentiality_level,
            }
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._settings.analysis_tool_max_attempts)),
            wait=self._wait,
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.post("/tools/analyze_data", json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            raise AnalysisError(f"Tool execution failed: {detail}", operation=analysis_type) from exc
        except httpx.HTTPError as exc:
            raise AnalysisError(f"Tool execution failed: {exc}", operation=analysis_type) from exc
        except ValueError as exc:
            raise AnalysisError("Analysis tool returned invalid JSON", operation=analysis_type) from exc

        data_section = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data_section, dict):
            raise AnalysisError("Analysis returned no content", operation=analysis_type)

        analysis = data_section.get("analysis")
        if not isinstance(analysis, str) or not analysis.strip():
            raise AnalysisError("Analysis returned empty content", operation=analysis_type)

        metadata = data_section.get("metadata")
        return AnalysisResult(result_text=analysis, usage_metadata=metadata if isinstance(metadata, dict) else {})


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        if body.get("error"):
            return str(body["error"])
    return f"HTTP {response.status_code}"
