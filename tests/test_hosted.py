import importlib

import pytest
from starlette.testclient import TestClient


def test_hosted_app_routes_exposed():
    module = importlib.import_module("finops_workbench.hosted")
    paths = {getattr(route, "path", "") for route in module.app.routes}

    assert "/health" in paths
    assert "/mcp" in paths
    assert "/mcp/" in paths


def test_hosted_main_uses_env_host_port(monkeypatch):
    module = importlib.import_module("finops_workbench.hosted")

    captured: dict[str, object] = {}

    def fake_run(app: str, host: str, port: int, lifespan: str):
        captured["app"] = app
        captured["host"] = host
        captured["port"] = port
        captured["lifespan"] = lifespan

    monkeypatch.setenv("MCP_HOST", "127.0.0.1")
    monkeypatch.setenv("MCP_PORT", "19090")
    monkeypatch.setattr("uvicorn.run", fake_run)

    module.main()

    assert captured["app"] == "finops_workbench.hosted:app"
    assert captured["host"] == "127.0.0.1"
    assert captured["port"] == 19090
    assert captured["lifespan"] == "on"


def test_extract_backend_auth_defaults_backend_url():
    module = importlib.import_module("finops_workbench.hosted")
    scope = {"headers": [(b"x-finops-api-key", b"key-1")]}
    api_key, backend_url = module._extract_backend_auth_from_scope(scope)
    assert api_key == "key-1"
    assert backend_url == "http://127.0.0.1:8000"


def test_extract_backend_auth_reads_backend_url_header():
    module = importlib.import_module("finops_workbench.hosted")
    scope = {
        "headers": [
            (b"X-FinOps-Api-Key", b"key-1"),
            (b"x-finops-backend-url", b"https://finops.example.com"),
        ]
    }
    assert module._extract_backend_auth_from_scope(scope) == (
        "key-1",
        "https://finops.example.com",
    )


def test_extract_backend_auth_requires_key():
    module = importlib.import_module("finops_workbench.hosted")
    with pytest.raises(ValueError, match="Missing credentials"):
        module._extract_backend_auth_from_scope({"headers": []})


def test_health_reports_connected_mode():
    module = importlib.import_module("finops_workbench.hosted")
    with TestClient(module.app) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["mode"] == "connected"


def test_mcp_post_requires_api_key():
    module = importlib.import_module("finops_workbench.hosted")
    with TestClient(module.app) as client:
        response = client.post(
            "/mcp",
            json={"jsonrpc": "2.0", "id": 1, "method": "ping", "params": {}},
        )
        assert response.status_code == 401


def test_mcp_post_with_api_key_passes_auth_gate_and_builds_client():
    module = importlib.import_module("finops_workbench.hosted")
    server_module = importlib.import_module("finops_workbench.server")
    with TestClient(module.app) as client:
        response = client.post(
            "/mcp",
            headers={
                "x-finops-api-key": "key-1",
                "x-finops-backend-url": "http://backend.test",
            },
            json={"jsonrpc": "2.0", "id": 1, "method": "ping", "params": {}},
        )
        assert response.status_code != 401
        assert server_module.workbench_client is not None
        assert server_module.workbench_client.base_url == "http://backend.test"
        assert server_module.runtime_mode == "connected"


def test_package_attribute_is_server_module():
    package = importlib.import_module("finops_workbench")
    server_module = importlib.import_module("finops_workbench.server")
    importlib.import_module("finops_workbench.hosted")

    assert package.server is server_module
    assert server_module.server.name == "finops-workbench-mcp"


def _ping(client: TestClient, api_key: str, backend_url: str):
    return client.post(
        "/mcp",
        headers={"x-finops-api-key": api_key, "x-finops-backend-url": backend_url},
        json={"jsonrpc": "2.0", "id": 1, "method": "ping", "params": {}},
    )


def test_credential_change_rebuilds_client_and_drops_result():
    module = importlib.import_module("finops_workbench.hosted")
    server_module = importlib.import_module("finops_workbench.server")
    with TestClient(module.app) as client:
        _ping(client, "key-1", "http://backend.test")
        first = server_module.workbench_client

        _ping(client, "key-1", "http://backend.test")
        assert server_module.workbench_client is first

        server_module.load_result_impl({"headers": ["a"], "rows": [[1]]})
        assert server_module.current_explorer is not None

        _ping(client, "key-2", "http://backend.test")
        assert server_module.workbench_client is not first
        assert module.app.state.session.credentials == ("key-2", "http://backend.test")
        assert server_module.current_explorer is None


def test_connected_mode_lists_backend_tools():
    module = importlib.import_module("finops_workbench.hosted")
    server_module = importlib.import_module("finops_workbench.server")
    with TestClient(module.app) as client:
        _ping(client, "key-1", "http://backend.test")
        assert server_module._allowed_tools_for_runtime() == server_module.CONNECTED_TOOLS
