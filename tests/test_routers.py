"""
Tests for the HTTP API.
"""
import json

import pytest
from fastapi.testclient import TestClient

from m3u_proxy import routers
from m3u_proxy.config import settings
from m3u_proxy.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def proxy_config(tmp_path, monkeypatch):
    export = tmp_path / "export"
    export.mkdir()
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "importFolder": str(tmp_path / "import"),
        "exportFolder": str(export),
        "sources": [{
            "name": "demo",
            "m3u": "http://provider.test/demo.m3u",
            "epg": "http://provider.test/demo.xml",
            "models": [{"name": ""}, {"name": "-sports"}],
        }],
    }), encoding="utf-8")
    monkeypatch.setattr(settings, "config_path", str(path))
    return export


class TestServiceEndpoints:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "m3u-proxy"
        assert "refresh" in body["endpoints"]

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["refresh_in_progress"] is False


class TestExports:

    def test_serves_generated_playlist(self, client, proxy_config):
        (proxy_config / "demo-sports.m3u").write_text("#EXTM3U\n", encoding="utf-8")

        response = client.get("/exports/demo-sports.m3u")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("audio/x-mpegurl")
        assert response.text == "#EXTM3U\n"

    def test_serves_guide(self, client, proxy_config):
        (proxy_config / "demo.xml").write_text("<tv></tv>", encoding="utf-8")

        response = client.get("/exports/demo.xml")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")

    def test_unknown_name(self, client, proxy_config):
        (proxy_config / "other.m3u").write_text("#EXTM3U\n", encoding="utf-8")
        assert client.get("/exports/other.m3u").status_code == 404

    def test_not_generated_yet(self, client, proxy_config):
        response = client.get("/exports/demo.m3u")
        assert response.status_code == 404
        assert "not been generated" in response.json()["detail"]

    def test_missing_config(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "config_path", str(tmp_path / "missing.json"))
        assert client.get("/exports/demo.m3u").status_code == 500


class TestRefresh:

    def test_returns_run_summary(self, client, monkeypatch):
        async def _refresh(**_kwargs):
            return {"status": "success", "sources_processed": 1}

        monkeypatch.setattr(routers, "refresh_and_process", _refresh)

        response = client.post("/refresh")

        assert response.status_code == 200
        assert response.json()["sources_processed"] == 1

    def test_skipped_when_busy(self, client, monkeypatch):
        async def _refresh(**_kwargs):
            return {"status": "skipped", "message": "Refresh already in progress"}

        monkeypatch.setattr(routers, "refresh_and_process", _refresh)

        assert client.post("/refresh").json()["status"] == "skipped"

    def test_error_is_reported(self, client, monkeypatch):
        async def _refresh(**_kwargs):
            return {"error": "No sources configured"}

        monkeypatch.setattr(routers, "refresh_and_process", _refresh)

        response = client.post("/refresh")

        assert response.status_code == 500
        assert response.json()["detail"] == "No sources configured"
