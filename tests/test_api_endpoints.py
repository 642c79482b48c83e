import json

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.config import get_settings
from backend.database import set_db_path, init_db
from backend.dependencies import get_upstream_client
from backend.routers import health, proxy, state


class _Upstream:
    """Stands in for the generation server behind the proxy."""

    def __init__(self, handler=None):
        self.requests = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._handler is not None:
            return self._handler(request)
        body = b"".join(
            json.dumps(frame).encode() + b"\n"
            for frame in ({"response": "Hel"}, {"response": "lo"}, {"done": True})
        )
        return httpx.Response(200, headers={"content-type": "application/x-ndjson"}, content=body)


def _create_test_app(upstream: _Upstream) -> FastAPI:
    """Create a minimal FastAPI app without the full lifespan."""
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(state.router)
    app.include_router(proxy.router)
    app.dependency_overrides[get_upstream_client] = lambda: httpx.AsyncClient(
        transport=httpx.MockTransport(upstream)
    )
    return app


@pytest.fixture
def upstream():
    return _Upstream()


@pytest_asyncio.fixture
async def client(tmp_path, upstream):
    """Each test gets a fresh database."""
    db_path = str(tmp_path / "test.db")
    set_db_path(db_path)
    await init_db()

    app = _create_test_app(upstream)
    with TestClient(app) as c:
        yield c


class TestHealthEndpoint:
    def test_health_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_response_structure(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["default_server"] == get_settings().ollama_default_server
        assert data["stored_states"] == 0
        assert "version" in data

    def test_client_config(self, client):
        data = client.get("/config").json()
        assert data["default_server"] == get_settings().ollama_default_server
        assert data["locale"] in ("en", "de")
        assert data["generation_defaults"]["top_k"] == 40
        assert data["generation_defaults"]["show_thinking"] is True


class TestStateEndpoint:
    def test_empty_state(self, client):
        response = client.get("/state")
        assert response.status_code == 200
        assert response.json() == {"state": None}

    def test_save_and_load(self, client):
        snapshot = {"default_model": "llama3", "chats": [{"id": "c1", "messages": []}]}
        response = client.put("/state", json={"state": snapshot})
        assert response.status_code == 200
        assert client.get("/state").json() == {"state": snapshot}
        assert client.get("/health").json()["stored_states"] == 1

    def test_null_state_clears(self, client):
        client.put("/state", json={"state": {"a": 1}})
        client.put("/state", json={"state": None})
        assert client.get("/state").json() == {"state": None}

    def test_invalid_body(self, client):
        response = client.put("/state", json={"state": "not an object"})
        assert response.status_code == 422


class TestProxyEndpoint:
    def test_streams_from_header_selected_server(self, client, upstream):
        response = client.post(
            "/ollama/api/chat",
            json={"model": "llama3", "messages": [], "stream": True},
            headers={"X-Ollama-Server": "http://gpu-box:11434/"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        assert response.headers["cache-control"] == "no-store"
        lines = [json.loads(line) for line in response.text.splitlines() if line]
        assert lines[-1] == {"done": True}

        forwarded = upstream.requests[0]
        assert str(forwarded.url) == "http://gpu-box:11434/api/chat"
        assert forwarded.method == "POST"
        assert json.loads(forwarded.content)["model"] == "llama3"
        assert "x-ollama-server" not in forwarded.headers

    def test_default_server_and_query_string(self, client, upstream):
        response = client.get("/ollama/api/tags?verbose=1")
        assert response.status_code == 200
        forwarded = upstream.requests[0]
        default = get_settings().ollama_default_server.rstrip("/")
        assert str(forwarded.url) == f"{default}/api/tags?verbose=1"

    def test_upstream_status_is_passed_through(self, tmp_path):
        upstream = _Upstream(lambda request: httpx.Response(404, json={"error": "model not found"}))
        with TestClient(_create_test_app(upstream)) as c:
            response = c.post("/ollama/api/chat", json={"model": "missing"})
        assert response.status_code == 404
        assert response.json() == {"error": "model not found"}

    def test_chunked_upstream_body_is_relayed(self):
        async def _chunks():
            yield b'{"message": {"role": "assistant", "content": "Hel'
            yield b'lo"}}\n{"done": true}\n'

        upstream = _Upstream(lambda request: httpx.Response(
            200, headers={"content-type": "application/x-ndjson"}, content=_chunks()
        ))
        with TestClient(_create_test_app(upstream)) as c:
            response = c.post("/ollama/api/chat", json={"model": "llama3"})
        assert response.status_code == 200
        lines = [json.loads(line) for line in response.text.splitlines()]
        assert lines == [{"message": {"role": "assistant", "content": "Hello"}}, {"done": True}]

    def test_unreachable_upstream_is_502(self):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with TestClient(_create_test_app(_Upstream(_refuse))) as c:
            response = c.get("/ollama/api/tags")
        assert response.status_code == 502
        assert "unreachable" in response.json()["detail"]

    def test_invalid_server_header_is_400(self, client, upstream):
        response = client.get("/ollama/api/tags", headers={"X-Ollama-Server": "ftp://files"})
        assert response.status_code == 400
        assert upstream.requests == []


class TestCorsOrigins:
    def test_extra_origins_are_appended(self, test_settings):
        from backend.main import cors_origins

        test_settings.allowed_origins = "https://chat.example.com, ,http://lan:8501"
        assert cors_origins(test_settings) == [
            "http://localhost:8501",
            "http://127.0.0.1:8501",
            "https://chat.example.com",
            "http://lan:8501",
        ]
