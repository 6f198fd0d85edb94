"""
Tests for WorkbenchClient - backend query execution and AI query generation.
"""

import json
import logging

import httpx
import pytest

from finops_workbench.workbench_client import RequestLogger, WorkbenchClient


def _client(handler, **kwargs) -> WorkbenchClient:
    return WorkbenchClient(
        base_url="http://backend.test",
        api_key=kwargs.pop("api_key", "secret-token"),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestExecuteQuery:
    """Tests for execute_query"""

    @pytest.mark.asyncio
    async def test_posts_query_and_normalizes_response(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {"headers": ["service", "cost"], "rows": [["ec2", 1.5]]},
                    "executionTime": 120,
                },
            )

        async with _client(handler) as client:
            result = await client.execute_query("SELECT 1", query_name="daily-costs")

        assert seen["path"] == "/api/v1/finops/query"
        assert seen["auth"] == "Bearer secret-token"
        assert seen["body"] == {"query": "SELECT 1"}
        assert result.headers == ("service", "cost")
        assert result.rows == (("ec2", 1.5),)
        assert result.query_name == "daily-costs"
        assert result.execution_time == 120.0

    @pytest.mark.asyncio
    async def test_row_object_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"a": 1}, {"a": 2}])

        async with _client(handler) as client:
            result = await client.execute_query("SELECT a FROM cur")

        assert result.headers == ("a",)
        assert result.row_count == 2

    @pytest.mark.asyncio
    async def test_empty_query_rejected_without_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _client(handler) as client:
            with pytest.raises(ValueError, match="cannot be empty"):
                await client.execute_query("  ")

    @pytest.mark.asyncio
    async def test_unsuccessful_response_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "syntax error"})

        async with _client(handler) as client:
            with pytest.raises(ValueError, match="syntax error"):
                await client.execute_query("SELEC 1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,body,match",
        [
            (400, {"detail": "bad column"}, "bad column"),
            (401, {}, "Authentication failed"),
            (403, {}, "Access denied"),
            (404, {}, "not found"),
        ],
    )
    async def test_http_errors_become_value_errors(self, status, body, match):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=body)

        async with _client(handler) as client:
            with pytest.raises(ValueError, match=match):
                await client.execute_query("SELECT 1")

    @pytest.mark.asyncio
    async def test_server_error_is_not_masked(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        async with _client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.execute_query("SELECT 1")

    @pytest.mark.asyncio
    async def test_timeout_becomes_value_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler, timeout=2) as client:
            with pytest.raises(ValueError, match="timed out after 2 seconds"):
                await client.execute_query("SELECT 1")


class TestGenerateQuery:
    """Tests for generate_query"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"query": "SELECT a FROM cur"},
            {"success": True, "data": {"query": "SELECT a FROM cur"}},
        ],
    )
    async def test_extracts_generated_query(self, payload):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=payload)

        async with _client(handler) as client:
            query = await client.generate_query("monthly ec2 spend")

        assert query == "SELECT a FROM cur"
        assert seen["path"] == "/api/v1/finops/bedrock/generate-query"
        assert seen["body"] == {"prompt": "monthly ec2 spend", "context": "cost-analysis"}

    @pytest.mark.asyncio
    async def test_missing_query_text_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": True})

        async with _client(handler) as client:
            with pytest.raises(ValueError, match="no query text"):
                await client.generate_query("anything")


class TestRequestLogger:
    """Tests for the logging middleware"""

    @pytest.mark.asyncio
    async def test_logs_and_captures_masked_curl(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"headers": [], "rows": []})

        caplog.set_level(logging.INFO, logger="finops_workbench.workbench_client")
        async with _client(handler) as client:
            await client.execute_query("SELECT 1")
            curls = client.collect_curls()

        assert len(curls) == 1
        assert "curl -X POST" in curls[0]
        assert "authorization: ***" in curls[0].lower()
        assert "secret-token" not in curls[0]
        assert client.collect_curls() == []
        assert any("/api/v1/finops/query" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_error_responses_log_warning(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={})

        caplog.set_level(logging.INFO, logger="finops_workbench.workbench_client")
        async with _client(handler) as client:
            with pytest.raises(ValueError):
                await client.execute_query("SELECT 1")

        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_event_hooks_shape(self):
        hooks = RequestLogger().event_hooks()
        assert set(hooks) == {"request", "response"}


def test_client_reads_env(monkeypatch):
    monkeypatch.setenv("BACKEND_API_URL", "http://env.backend/")
    monkeypatch.setenv("FINOPS_API_KEY", "env-key")
    monkeypatch.setenv("WORKBENCH_API_TIMEOUT", "7")

    client = WorkbenchClient()
    assert client.base_url == "http://env.backend"
    assert client.api_key == "env-key"
    assert client.timeout == 7.0
