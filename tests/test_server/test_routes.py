"""Tests for REST routes."""

import json

import pytest
from starlette.testclient import TestClient

from tokenkv.server.app import create_http_app
from tokenkv.server.routes import NDJSONResponse, format_ndjson
from tokenkv.store import KVStore

TOKEN = "abc123"
OTHER_TOKEN = "def456"


def auth(token: str = TOKEN) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(store: KVStore) -> TestClient:
    """Create a test client."""
    return TestClient(create_http_app(store))


@pytest.fixture
def broken_client(broken_store: KVStore) -> TestClient:
    """Test client whose backend is down."""
    return TestClient(create_http_app(broken_store))


def ndjson_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_returns_ok(self, client: TestClient) -> None:
        """Health endpoint needs no token and returns status ok."""
        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data

    def test_health_unhealthy(self, broken_client: TestClient) -> None:
        """Health endpoint returns 503 when the backend is down."""
        response = broken_client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


class TestKeyEndpoints:
    """Tests for get/set/delete."""

    def test_set_then_get(self, client: TestClient) -> None:
        """A stored value is read back."""
        response = client.post("/keys/user:1", json={"value": "Alice"}, headers=auth())
        assert response.status_code == 200
        assert response.json() == {"message": "OK"}

        response = client.get("/keys/user:1", headers=auth())
        assert response.status_code == 200
        assert response.json() == {"value": "Alice"}

    def test_put_is_alias_for_post(self, client: TestClient) -> None:
        """PUT stores a value like POST."""
        client.put("/keys/k", json={"value": "v"}, headers=auth())
        assert client.get("/keys/k", headers=auth()).json() == {"value": "v"}

    def test_key_with_slashes(self, client: TestClient) -> None:
        """Keys may contain slashes."""
        client.post("/keys/a/b/c", json={"value": "deep"}, headers=auth())
        assert client.get("/keys/a/b/c", headers=auth()).json() == {"value": "deep"}

    def test_get_missing(self, client: TestClient) -> None:
        """Missing keys return 404."""
        response = client.get("/keys/missing", headers=auth())

        assert response.status_code == 404
        assert response.json() == {"error": "Key not found", "status": 404}

    def test_delete(self, client: TestClient) -> None:
        """Deleted keys are gone; deleting again still succeeds."""
        client.post("/keys/k", json={"value": "v"}, headers=auth())

        assert client.delete("/keys/k", headers=auth()).json() == {"message": "OK"}
        assert client.get("/keys/k", headers=auth()).status_code == 404
        assert client.delete("/keys/k", headers=auth()).status_code == 200

    def test_isolation_between_tokens(self, client: TestClient) -> None:
        """Tokens never see each other's keys."""
        client.post("/keys/shared", json={"value": "mine"}, headers=auth(TOKEN))

        assert client.get("/keys/shared", headers=auth(OTHER_TOKEN)).status_code == 404

    def test_empty_key(self, client: TestClient) -> None:
        """The empty key is rejected."""
        assert client.get("/keys/", headers=auth()).status_code == 400


class TestSetValidation:
    """Tests for request body validation."""

    @pytest.mark.parametrize(
        "body",
        [{}, {"value": 42}, {"value": None}, ["value"], "text"],
    )
    def test_bad_body(self, client: TestClient, body) -> None:
        """Bodies without a string value are rejected."""
        response = client.post("/keys/k", json=body, headers=auth())

        assert response.status_code == 400
        assert response.json()["status"] == 400

    def test_invalid_json(self, client: TestClient) -> None:
        """Malformed JSON is rejected."""
        response = client.post(
            "/keys/k",
            content="not json",
            headers={**auth(), "Content-Type": "application/json"},
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("ttl", [0, -5, 1.5, "60"])
    def test_bad_ttl(self, client: TestClient, ttl) -> None:
        """Non-positive or non-integer TTLs are rejected."""
        response = client.post("/keys/k", json={"value": "v", "ttl_seconds": ttl}, headers=auth())

        assert response.status_code == 400
        assert client.get("/keys/k", headers=auth()).status_code == 404

    def test_ttl_accepted(self, client: TestClient) -> None:
        """A positive TTL is accepted."""
        response = client.post("/keys/k", json={"value": "v", "ttl_seconds": 60}, headers=auth())
        assert response.status_code == 200


class TestAuthorization:
    """Tests for token handling."""

    def test_missing_token(self, client: TestClient) -> None:
        """Requests without a token get 401 and a challenge."""
        response = client.get("/keys/k")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {"error": "Unauthorized", "status": 401}

    def test_unknown_token(self, client: TestClient, backend) -> None:
        """Unknown tokens get 401 without touching keys."""
        response = client.post("/keys/k", json={"value": "v"}, headers=auth("intruder"))

        assert response.status_code == 401
        assert backend.calls == []

    def test_wrong_scheme(self, client: TestClient) -> None:
        """Only the Bearer scheme is accepted."""
        response = client.get("/keys/k", headers={"Authorization": f"Basic {TOKEN}"})
        assert response.status_code == 401

    def test_scheme_is_case_insensitive(self, client: TestClient) -> None:
        """The scheme name is matched case-insensitively."""
        response = client.get("/keys/k", headers={"Authorization": f"bearer {TOKEN}"})
        assert response.status_code == 404

    def test_unauthorized_listing(self, client: TestClient) -> None:
        """Listing with an unknown token is a 401, not an empty stream."""
        assert client.get("/keys", headers=auth("intruder")).status_code == 401

    def test_non_ascii_token(self, client: TestClient, backend) -> None:
        """A UTF-8 token sent as header bytes names the same namespace as over RPC."""
        backend.add_member("tokens", "café")
        headers = {"Authorization": "Bearer café".encode("utf-8")}

        assert client.post("/keys/k", json={"value": "v"}, headers=headers).status_code == 200
        assert client.get("/keys/k", headers=headers).json()["value"] == "v"
        assert ("set", b"5:caf\xc3\xa9:k") in backend.calls

    def test_undecodable_token(self, client: TestClient, backend) -> None:
        """Header bytes that are not UTF-8 are rejected before the store."""
        response = client.get("/keys/k", headers={"Authorization": b"Bearer \xff"})

        assert response.status_code == 401
        assert backend.calls == []


class TestListEndpoint:
    """Tests for the NDJSON listing."""

    def test_list_all(self, client: TestClient) -> None:
        """All of the caller's keys are streamed."""
        for key in ("user:1", "user:2", "order:1"):
            client.post(f"/keys/{key}", json={"value": "v"}, headers=auth())
        client.post("/keys/user:9", json={"value": "v"}, headers=auth(OTHER_TOKEN))

        response = client.get("/keys", headers=auth())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        keys = sorted(item["key"] for item in ndjson_lines(response.text))
        assert keys == ["order:1", "user:1", "user:2"]

    def test_list_prefix(self, client: TestClient) -> None:
        """The prefix query parameter filters keys."""
        for key in ("user:1", "user:2", "order:1"):
            client.post(f"/keys/{key}", json={"value": "v"}, headers=auth())

        response = client.get("/keys", params={"prefix": "user:"}, headers=auth())

        keys = sorted(item["key"] for item in ndjson_lines(response.text))
        assert keys == ["user:1", "user:2"]

    def test_list_empty(self, client: TestClient) -> None:
        """An empty namespace yields an empty body."""
        response = client.get("/keys", headers=auth())

        assert response.status_code == 200
        assert ndjson_lines(response.text) == []

    def test_backend_failure_mid_stream(self, broken_client: TestClient) -> None:
        """A backend failure during streaming ends with an error line."""
        response = broken_client.get("/keys", headers=auth())

        assert response.status_code == 200
        assert ndjson_lines(response.text) == [{"error": "Backend unavailable"}]


class TestBackendFailures:
    """Tests for backend outage mapping."""

    def test_get_unavailable(self, broken_client: TestClient) -> None:
        """Backend outages map to 503 without leaking details."""
        response = broken_client.get("/keys/k", headers=auth())

        assert response.status_code == 503
        assert response.json() == {"error": "Backend unavailable", "status": 503}

    def test_set_unavailable(self, broken_client: TestClient) -> None:
        """Writes during an outage map to 503."""
        response = broken_client.post("/keys/k", json={"value": "v"}, headers=auth())
        assert response.status_code == 503


class TestNDJSONHelpers:
    """Tests for NDJSON helpers."""

    def test_format_ndjson(self) -> None:
        """Lines are compact JSON ending in a newline."""
        line = format_ndjson({"key": "user:1"})

        assert line.endswith("\n")
        assert json.loads(line) == {"key": "user:1"}

    def test_ndjson_response_headers(self) -> None:
        """NDJSON responses disable proxy buffering."""

        async def empty():
            return
            yield

        response = NDJSONResponse(empty())

        assert response.media_type == "application/x-ndjson"
        assert response.headers["x-accel-buffering"] == "no"
