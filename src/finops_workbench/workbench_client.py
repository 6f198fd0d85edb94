"""
Workbench API Client - talks to the FinOps backend that executes queries and
generates SQL from natural language.

The workbench core never calls this directly. The MCP server uses it to obtain
a QueryResult (or an AI-generated query string) and then hands the result to
the pure engine.
"""

import logging
import os
import time
from typing import Any

import httpx

from .results import QueryResult, normalize_result

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://127.0.0.1:8000"
API_PREFIX = "/api/v1"
MASKED_HEADERS = {"authorization"}


class RequestLogger:
    """
    httpx event-hook middleware that logs every request/response pair and keeps
    replayable curl commands for debugging.

    Injected into the client through `event_hooks`; nothing global is patched.
    """

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger
        self._recent_curls: list[str] = []

    async def on_request(self, request: httpx.Request) -> None:
        request.extensions["workbench_started"] = time.perf_counter()
        self._recent_curls.append(self.request_to_curl(request))
        self.log.debug("→ %s %s", request.method, request.url)

    async def on_response(self, response: httpx.Response) -> None:
        request = response.request
        started = request.extensions.get("workbench_started")
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        self.log.log(
            level,
            "%s %s → %s in %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )

    def event_hooks(self) -> dict[str, list[Any]]:
        return {"request": [self.on_request], "response": [self.on_response]}

    @staticmethod
    def request_to_curl(request: httpx.Request) -> str:
        """Convert an httpx Request to a replayable curl command."""
        parts = [f"curl -X {request.method}"]
        for key, value in request.headers.items():
            if key.lower() in MASKED_HEADERS:
                value = "***"
            parts.append(f"  -H '{key}: {value}'")
        body = request.content
        if body:
            try:
                body_str = body.decode("utf-8")
            except UnicodeDecodeError:
                body_str = "<binary>"
            parts.append(f"  -d '{body_str}'")
        parts.append(f"  '{request.url}'")
        return " \\\n".join(parts)

    def collect_curls(self) -> list[str]:
        """Return and clear captured curl commands."""
        curls = self._recent_curls.copy()
        self._recent_curls.clear()
        return curls


class WorkbenchClient:
    """
    Client for the FinOps backend query and AI endpoints.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the backend client.

        Args:
            base_url: Backend base URL (or from BACKEND_API_URL env var)
            api_key: Bearer token for the backend (or from FINOPS_API_KEY env var)
            timeout: Request timeout in seconds (or from WORKBENCH_API_TIMEOUT env var)
            transport: Optional httpx transport, mainly for tests
        """
        self.base_url = (base_url or os.getenv("BACKEND_API_URL") or DEFAULT_BACKEND_URL).rstrip(
            "/"
        )
        self.api_key = api_key or os.getenv("FINOPS_API_KEY")
        self.timeout = timeout or float(os.getenv("WORKBENCH_API_TIMEOUT", "30"))

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.request_logger = RequestLogger()
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            event_hooks=self.request_logger.event_hooks(),
            transport=transport,
        )

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def collect_curls(self) -> list[str]:
        return self.request_logger.collect_curls()

    async def _post(self, path: str, payload: dict[str, Any], action: str) -> Any:
        try:
            response = await self.client.post(f"{API_PREFIX}{path}", json=payload)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (400, 422):
                try:
                    error_body = e.response.json()
                    error_msg = (
                        error_body.get("detail")
                        or error_body.get("error")
                        or error_body.get("message")
                        or str(error_body)
                    )
                except Exception:
                    error_msg = e.response.text or "Invalid request"
                raise ValueError(f"{action} rejected by backend ({status}): {error_msg}") from e
            elif status == 401:
                raise ValueError("Authentication failed. Check FINOPS_API_KEY.") from e
            elif status == 403:
                raise ValueError(
                    "Access denied. Verify your API key may use the FinOps query API."
                ) from e
            elif status == 404:
                raise ValueError(
                    f"Backend endpoint {path} not found. Verify BACKEND_API_URL is correct."
                ) from e
            else:
                raise

        except httpx.TimeoutException as e:
            raise ValueError(
                f"{action} timed out after {self.timeout:.0f} seconds. "
                "The backend may be slow or unavailable."
            ) from e

    async def execute_query(self, sql: str, query_name: str | None = None) -> QueryResult:
        """
        Execute a query on the backend and normalize the response.

        Args:
            sql: Raw query text, sent as typed
            query_name: Optional label carried on the result

        Returns:
            Canonical QueryResult

        Raises:
            ValueError: Empty query, backend rejection, timeout, or an
                unrecognized response shape
        """
        if not sql or not sql.strip():
            raise ValueError("Query cannot be empty")

        started = time.perf_counter()
        data = await self._post("/finops/query", {"query": sql}, "Query")
        elapsed_ms = (time.perf_counter() - started) * 1000

        if isinstance(data, dict) and data.get("success") is False:
            raise ValueError(f"Query failed: {data.get('error') or 'unknown error'}")

        reported_ms = None
        payload = data
        if isinstance(data, dict) and "headers" not in data and "data" in data:
            payload = data["data"]
            reported = data.get("executionTime")
            if isinstance(reported, int | float) and not isinstance(reported, bool):
                reported_ms = float(reported)

        result = normalize_result(payload, execution_time=reported_ms, query_name=query_name)
        if not result.execution_time:
            result = QueryResult(
                headers=result.headers,
                rows=result.rows,
                execution_time=elapsed_ms,
                executed_at=result.executed_at,
                query_name=result.query_name,
            )
        logger.info("Query returned %d rows in %.0fms", result.row_count, result.execution_time)
        return result

    async def generate_query(self, prompt: str, context: str = "cost-analysis") -> str:
        """
        Ask the backend's AI service to write a query for a natural-language request.

        Args:
            prompt: What the user wants to know
            context: Analysis context (e.g. cost-analysis, optimization)

        Returns:
            Generated query text
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")

        data = await self._post(
            "/finops/bedrock/generate-query",
            {"prompt": prompt, "context": context},
            "Query generation",
        )

        if isinstance(data, str):
            return data
        if isinstance(data, dict):
            for key in ("query", "sql", "generated_query"):
                if isinstance(data.get(key), str):
                    return data[key]
            nested = data.get("data")
            if isinstance(nested, dict):
                for key in ("query", "sql"):
                    if isinstance(nested.get(key), str):
                        return nested[key]
        raise ValueError("Query generation returned no query text")
