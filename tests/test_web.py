# tests/test_web.py
#
# Tests for HTTP mode, using FastAPI's TestClient (no real server).

import pytest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from mcp_servers.context import ServerContext
from web.app import create_app


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, 'APP_DIR_OVERRIDE', str(tmp_path))
    ctx = ServerContext.create(MagicMock(), authenticated=True)
    return TestClient(create_app(ctx, 9090))


class TestHttpMode:

    def test_info_page(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Running in HTTP mode on port 9090" in response.text
        assert '"url": "http://localhost:9090"' in response.text
        for tool in ("search_threads", "create_draft", "fetch_email_bodies",
                     "extract_attachment_by_filename", "get_personal_email_style_guide"):
            assert f"<li>{tool} - " in response.text

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["server"] == "Gmail MCP Server"
        assert data["version"] == "1.0.0"
        assert data["gmail_authenticated"] is True
        assert "T" in data["timestamp"]

    def test_health_before_authentication(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, 'APP_DIR_OVERRIDE', str(tmp_path))
        app = create_app(ServerContext.create(MagicMock()), 8080)
        assert TestClient(app).get("/health").json()["gmail_authenticated"] is False

    @pytest.mark.parametrize("method", ["get", "post"])
    def test_mcp_endpoint(self, client, method):
        response = getattr(client, method)("/mcp")
        data = response.json()
        assert data["jsonrpc"] == "2.0"
        assert "stdio mode" in data["result"]["note"]

    def test_cors_open(self, client):
        response = client.get("/health", headers={"Origin": "https://example.org"})
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_preflight(self, client):
        response = client.options("/mcp", headers={
            "Origin": "https://example.org",
            "Access-Control-Request-Method": "POST",
        })
        assert response.status_code == 200
