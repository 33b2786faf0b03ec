"""Tests for the health endpoints and app wiring."""
import os


class TestHealthEndpoints:
    def test_healthz(self, client):
        r = client.get("/api/healthz")
        assert r.status_code == 200
        assert r.json() == {"ok": True}

    def test_readyz_after_startup(self, client):
        r = client.get("/api/readyz")
        assert r.status_code == 200
        assert r.json()["models"] == "ready"

    def test_info(self, client):
        data = client.get("/api/info").json()
        assert data["api"]["match_threshold"] == 0.6
        assert data["model"]["state"] == "ready"
        assert data["extraction"]["capacity"] == 2

    def test_request_id_header(self, client):
        r = client.get("/api/healthz", headers={"X-Request-ID": "abc"})
        assert r.headers["X-Request-ID"] == "abc"
        assert "X-Process-Time" in r.headers


def test_unknown_route_uses_message_shape(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert "message" in r.json()


def test_upload_dir_created_on_startup(client, settings):
    assert os.path.isdir(os.path.join(settings.upload_dir, ".incoming"))
