"""Integration tests for promptchain.api.main — FastAPI REST API endpoints.

All tests use the FastAPI TestClient with a temporary SQLite database and a
fake provider behind an httpx mock transport, so nothing leaves the process.
Tests cover every endpoint:

- ``/api/chains`` — listing, creation, metadata updates, deletion.
- ``/api/chains/{id}/versions`` — version history and appends.
- ``/api/chains/{id}/generate`` — generation from a stored version.
- ``/api/artists`` and ``/api/inspirations`` — reference records.
- ``POST /api/generate`` — provider proxy.
- ``POST /api/verify-key`` — master key check.
- Error envelope, authorization and CORS behaviour.
"""

from __future__ import annotations

import base64
import json

import pytest
from fastapi.testclient import TestClient

from promptchain.api.main import app
from promptchain.core.chain_store import ChainStore

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-image-data"


def _create_chain(test_client, name: str = "Foo", description: str = "bar") -> str:
    resp = test_client.post("/api/chains", json={"name": name, "description": description})
    assert resp.status_code == 200
    return resp.json()["id"]


# ---------------------------------------------------------------------------
# Chain endpoint tests.
# ---------------------------------------------------------------------------


class TestChains:
    """Test /api/chains — chain CRUD."""

    def test_list_on_fresh_database(self, test_client):
        resp = test_client.get("/api/chains")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_create_then_list(self, test_client):
        chain_id = _create_chain(test_client)

        chains = test_client.get("/api/chains").json()
        assert len(chains) == 1
        assert chains[0]["id"] == chain_id
        assert chains[0]["name"] == "Foo"
        assert chains[0]["latestVersion"]["version"] == 1
        assert chains[0]["latestVersion"]["params"]["width"] == 832

    def test_create_requires_name(self, test_client):
        resp = test_client.post("/api/chains", json={"description": "nameless"})
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_create_rejects_malformed_json(self, test_client):
        resp = test_client.post(
            "/api/chains",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_update_with_key(self, test_client, auth_headers):
        chain_id = _create_chain(test_client)

        resp = test_client.put(
            f"/api/chains/{chain_id}", json={"name": "X"}, headers=auth_headers
        )

        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        chain = test_client.get("/api/chains").json()[0]
        assert chain["name"] == "X"
        assert chain["description"] == "bar"

    def test_update_without_key_is_rejected(self, test_client):
        chain_id = _create_chain(test_client)

        resp = test_client.put(f"/api/chains/{chain_id}", json={"name": "X"})

        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert test_client.get("/api/chains").json()[0]["name"] == "Foo"

    def test_update_with_wrong_key_is_rejected(self, test_client):
        chain_id = _create_chain(test_client)
        resp = test_client.put(
            f"/api/chains/{chain_id}", json={"name": "X"}, headers={"X-Master-Key": "nope"}
        )
        assert resp.status_code == 401

    def test_delete_with_key(self, test_client, auth_headers):
        chain_id = _create_chain(test_client)
        test_client.post(f"/api/chains/{chain_id}/versions", json={"basePrompt": "v2"})

        resp = test_client.delete(f"/api/chains/{chain_id}", headers=auth_headers)

        assert resp.status_code == 200
        assert test_client.get("/api/chains").json() == []
        assert test_client.get(f"/api/chains/{chain_id}/versions").json() == []

    def test_delete_without_key_keeps_chain(self, test_client):
        chain_id = _create_chain(test_client)
        resp = test_client.delete(f"/api/chains/{chain_id}")
        assert resp.status_code == 401
        assert len(test_client.get("/api/chains").json()) == 1


# ---------------------------------------------------------------------------
# Version endpoint tests.
# ---------------------------------------------------------------------------


class TestVersions:
    """Test /api/chains/{id}/versions — version history."""

    def test_append_returns_next_number(self, test_client):
        chain_id = _create_chain(test_client)

        resp = test_client.post(
            f"/api/chains/{chain_id}/versions",
            json={
                "basePrompt": "masterpiece, {character}",
                "negativePrompt": "lowres",
                "modules": [{"id": "m1", "name": "Style", "content": "ink"}],
                "params": {"width": 1024, "seed": 11},
            },
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["version"] == 2
        assert body["id"]

    def test_appended_version_is_latest(self, test_client):
        chain_id = _create_chain(test_client)
        test_client.post(
            f"/api/chains/{chain_id}/versions",
            json={"basePrompt": "second", "params": {"steps": 40}},
        )

        latest = test_client.get("/api/chains").json()[0]["latestVersion"]
        assert latest["version"] == 2
        assert latest["basePrompt"] == "second"
        assert latest["params"] == {"steps": 40}

    def test_list_versions_oldest_first(self, test_client):
        chain_id = _create_chain(test_client)
        test_client.post(f"/api/chains/{chain_id}/versions", json={"basePrompt": "two"})

        versions = test_client.get(f"/api/chains/{chain_id}/versions").json()
        assert [v["version"] for v in versions] == [1, 2]

    def test_unknown_chain_is_not_found(self, test_client):
        test_client.get("/api/chains")
        resp = test_client.post("/api/chains/nope/versions", json={"basePrompt": "x"})
        assert resp.status_code == 404
        assert "error" in resp.json()


# ---------------------------------------------------------------------------
# Chain generation tests.
# ---------------------------------------------------------------------------


class TestChainGenerate:
    """Test POST /api/chains/{id}/generate — generation from a stored version."""

    def test_generates_from_latest_version(self, test_client, fake_provider):
        chain_id = _create_chain(test_client)

        resp = test_client.post(
            f"/api/chains/{chain_id}/generate", json={"subject": "1girl, silver hair"}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["version"] == 1
        assert body["seed"] == 0
        assert body["image"] == "data:image/png;base64," + base64.b64encode(FAKE_PNG).decode()

        payload = fake_provider.last_payload
        assert payload["input"].startswith(
            "masterpiece, best quality, 1girl, silver hair, cinematic lighting"
        )
        assert "seed" not in payload["parameters"]

    def test_param_overrides_and_specific_version(self, test_client, fake_provider):
        chain_id = _create_chain(test_client)
        test_client.post(
            f"/api/chains/{chain_id}/versions",
            json={"basePrompt": "later", "params": {"width": 640}},
        )

        resp = test_client.post(
            f"/api/chains/{chain_id}/generate",
            json={"version": 1, "params": {"seed": 77, "qualityToggle": False}},
        )

        assert resp.status_code == 200
        assert resp.json()["version"] == 1
        assert resp.json()["seed"] == 77
        parameters = fake_provider.last_payload["parameters"]
        assert parameters["seed"] == 77
        assert parameters["width"] == 832
        assert fake_provider.last_payload["input"] == "masterpiece, best quality, cinematic lighting"

    def test_missing_version_is_not_found(self, test_client, fake_provider):
        chain_id = _create_chain(test_client)
        resp = test_client.post(f"/api/chains/{chain_id}/generate", json={"version": 9})
        assert resp.status_code == 404
        assert fake_provider.requests == []

    def test_caller_bearer_token_forwarded(self, test_client, fake_provider):
        chain_id = _create_chain(test_client)
        test_client.post(
            f"/api/chains/{chain_id}/generate",
            json={},
            headers={"Authorization": "Bearer caller-token"},
        )
        assert fake_provider.requests[0].headers["Authorization"] == "Bearer caller-token"


# ---------------------------------------------------------------------------
# Reference record tests.
# ---------------------------------------------------------------------------


class TestArtists:
    """Test /api/artists — artist records."""

    def test_upsert_list_delete(self, test_client, auth_headers):
        resp = test_client.post(
            "/api/artists",
            json={"id": "a1", "name": "Mucha", "imageUrl": "https://img.test/m.png"},
            headers=auth_headers,
        )
        assert resp.json() == {"success": True, "id": "a1"}

        assert test_client.get("/api/artists").json() == [
            {"id": "a1", "name": "Mucha", "imageUrl": "https://img.test/m.png"}
        ]

        test_client.delete("/api/artists/a1", headers=auth_headers)
        assert test_client.get("/api/artists").json() == []

    def test_upsert_requires_key(self, test_client):
        resp = test_client.post("/api/artists", json={"name": "Mucha"})
        assert resp.status_code == 401
        assert test_client.get("/api/artists").json() == []


class TestInspirations:
    """Test /api/inspirations — inspiration records."""

    def test_upsert_and_list(self, test_client, auth_headers):
        resp = test_client.post(
            "/api/inspirations",
            json={"title": "Dusk", "prompt": "sunset", "createdAt": 5},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        new_id = resp.json()["id"]

        items = test_client.get("/api/inspirations").json()
        assert items == [
            {"id": new_id, "title": "Dusk", "imageUrl": None, "prompt": "sunset", "createdAt": 5}
        ]

    def test_delete_requires_key(self, test_client):
        assert test_client.delete("/api/inspirations/i1").status_code == 401


# ---------------------------------------------------------------------------
# Generation proxy tests.
# ---------------------------------------------------------------------------


class TestGenerateProxy:
    """Test POST /api/generate — provider proxy."""

    def test_raw_payload_forwarded_unchanged(self, test_client, fake_provider):
        raw = {"input": "cat", "model": "m", "action": "generate", "parameters": {"seed": 3}}

        resp = test_client.post("/api/generate", json=raw)

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/zip"
        assert resp.content == fake_provider.body
        assert fake_provider.last_payload == raw

    def test_structured_request_is_compiled(self, test_client, fake_provider):
        resp = test_client.post(
            "/api/generate",
            json={"prompt": "cat", "negativePrompt": "dog", "params": {"seed": -1, "ucPreset": 4}},
        )

        assert resp.status_code == 200
        payload = fake_provider.last_payload
        assert payload["action"] == "generate"
        assert payload["parameters"]["negative_prompt"] == "dog"
        assert "seed" not in payload["parameters"]

    def test_provider_error_passed_through(self, test_client, fake_provider):
        fake_provider.status_code = 402
        fake_provider.body = b"Insufficient Anlas"

        resp = test_client.post("/api/generate", json={"prompt": "cat"})

        assert resp.status_code == 402
        assert resp.json() == {"error": "Provider API Error: Insufficient Anlas"}

    def test_invalid_structured_body(self, test_client, fake_provider):
        resp = test_client.post("/api/generate", json={"negativePrompt": "only"})
        assert resp.status_code == 400
        assert fake_provider.requests == []


# ---------------------------------------------------------------------------
# Key verification, envelope and CORS tests.
# ---------------------------------------------------------------------------


class TestVerifyKey:
    def test_correct_key(self, test_client, auth_headers):
        resp = test_client.post("/api/verify-key", json={"key": auth_headers["X-Master-Key"]})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    def test_wrong_key(self, test_client):
        resp = test_client.post("/api/verify-key", json={"key": "nope"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid Key"}


class TestEnvelope:
    def test_unknown_route(self, test_client):
        resp = test_client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not Found"}

    def test_cors_headers_on_success(self, test_client):
        resp = test_client.get("/api/chains", headers={"Origin": "https://ui.test"})
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_cors_headers_on_error(self, test_client):
        resp = test_client.delete("/api/chains/x", headers={"Origin": "https://ui.test"})
        assert resp.status_code == 401
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_preflight(self, test_client):
        resp = test_client.options(
            "/api/chains/x",
            headers={
                "Origin": "https://ui.test",
                "Access-Control-Request-Method": "PUT",
                "Access-Control-Request-Headers": "X-Master-Key",
            },
        )
        assert resp.status_code == 200
        assert "PUT" in resp.headers["access-control-allow-methods"]


def test_unset_master_key_denies_guarded_routes(test_client, test_config):
    test_config.master_key = None
    resp = test_client.delete("/api/chains/x", headers={"X-Master-Key": "anything"})
    assert resp.status_code == 401
    assert json.loads(resp.content) == {"error": "Unauthorized"}


# ---------------------------------------------------------------------------
# Unexpected failure tests.
# ---------------------------------------------------------------------------


@pytest.fixture
def lenient_client(test_client) -> TestClient:
    """A client that returns 500 responses instead of re-raising server errors."""
    return TestClient(app, raise_server_exceptions=False)


class TestUnexpectedErrors:
    """Errors outside the PromptChainError hierarchy still use the envelope."""

    def test_unhandled_exception_is_json_with_cors(self, lenient_client, monkeypatch):
        def explode(self):
            raise RuntimeError("boom")

        monkeypatch.setattr(ChainStore, "list_chains", explode)

        resp = lenient_client.get("/api/chains", headers={"Origin": "https://ui.test"})

        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {"error": "boom"}
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_empty_message_falls_back(self, lenient_client, monkeypatch):
        def explode(self):
            raise RuntimeError()

        monkeypatch.setattr(ChainStore, "list_artists", explode)

        resp = lenient_client.get("/api/artists")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal Server Error"}

    def test_non_finite_metadata_seed_does_not_fail_generation(
        self, lenient_client, fake_provider, archive_factory
    ):
        fake_provider.body = archive_factory(
            {"image_0.png": FAKE_PNG, "meta.json": '{"seed": NaN}'}
        )
        chain_id = _create_chain(lenient_client)

        resp = lenient_client.post(
            f"/api/chains/{chain_id}/generate",
            json={"params": {"seed": 12}},
            headers={"Origin": "https://ui.test"},
        )

        assert resp.status_code == 200
        assert resp.json()["seed"] == 12
        assert resp.headers["access-control-allow-origin"] == "*"
