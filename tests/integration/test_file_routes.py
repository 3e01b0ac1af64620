"""
File Route Integration Tests
In-process HTTP tests: authentication, visibility and response shapes
"""

import json

import pytest
from fastapi.testclient import TestClient

from shared.config import FileProxySettings
from shared.errors import ConfigurationError
from src.main import create_app

pytestmark = pytest.mark.integration

VALID_TOKEN = "valid-user-token"
GRANTED_TOKEN = "granted-user-token"

PUBLIC_DOC = b"# Public\n\nAnyone can read this.\n"
PRIVATE_DOC = b"# Private\n\nGranted users only.\n"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seeded(app_store):
    app_store.store("public-pkg", "1.0.0", "readme.md", PUBLIC_DOC, is_public=True)
    app_store.store("private-pkg", "1.0.0", "secret.md", PRIVATE_DOC, is_public=False)
    app_store.store("private-pkg", "1.0.0", "also-secret.md", PRIVATE_DOC, is_public=False)
    app_store.store("private-pkg", "1.0.0", "changelog.md", PUBLIC_DOC, is_public=True)
    return app_store


class TestGetFile:
    """GET /api/files/{package_id}/{version}/{filename}"""

    def test_public_without_token(self, client, seeded):
        response = client.get("/api/files/public-pkg/1.0.0/readme.md")

        assert response.status_code == 200
        assert response.content == PUBLIC_DOC
        assert response.headers["content-type"] == "text/markdown"
        assert response.headers["x-package-id"] == "public-pkg"
        assert response.headers["x-version"] == "1.0.0"

    def test_public_with_invalid_token(self, client, seeded):
        response = client.get("/api/files/public-pkg/1.0.0/readme.md", headers=bearer("garbage"))

        assert response.status_code == 200
        assert response.content == PUBLIC_DOC

    def test_private_without_token(self, client, seeded):
        response = client.get("/api/files/private-pkg/1.0.0/secret.md")

        assert response.status_code == 403
        assert response.json()["error_code"] == "AUTHORIZATION_FAILED"

    def test_private_with_token_without_grant(self, client, seeded):
        response = client.get("/api/files/private-pkg/1.0.0/secret.md", headers=bearer(VALID_TOKEN))

        assert response.status_code == 403

    def test_private_with_grant(self, client, seeded):
        response = client.get("/api/files/private-pkg/1.0.0/secret.md", headers=bearer(GRANTED_TOKEN))

        assert response.status_code == 200
        assert response.content == PRIVATE_DOC

    def test_non_bearer_authorization_is_anonymous(self, client, seeded):
        response = client.get(
            "/api/files/private-pkg/1.0.0/secret.md",
            headers={"Authorization": f"Basic {GRANTED_TOKEN}"},
        )

        assert response.status_code == 403

    def test_missing_file(self, client, seeded):
        response = client.get("/api/files/nonexistent/1.0.0/a.md")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "RESOURCE_NOT_FOUND"
        assert body["service"] == "file-proxy"

    def test_invalid_package_id(self, client):
        response = client.get("/api/files/%21%21/1.0.0/a.md")

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_INVALID_PATH"

    def test_overlong_filename_is_bad_request(self, client, seeded):
        response = client.get("/api/files/public-pkg/1.0.0/" + "a" * 300)

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_INVALID_PATH"

    def test_tampered_envelope_is_server_error(self, client, seeded):
        path = seeded.get_file_path("public-pkg", "1.0.0", "readme.md")
        envelope = json.loads(path.read_text())
        envelope["authTag"] = "ff" * 16
        path.write_text(json.dumps(envelope))

        response = client.get("/api/files/public-pkg/1.0.0/readme.md")

        assert response.status_code == 500
        assert response.json()["error_code"] == "STORAGE_INTEGRITY_ERROR"


class TestHeadFile:
    """HEAD /api/files/{package_id}/{version}/{filename}"""

    def test_public_headers(self, client, seeded):
        response = client.head("/api/files/public-pkg/1.0.0/readme.md")

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["content-length"] == str(len(PUBLIC_DOC))
        assert response.headers["content-type"] == "text/markdown"
        assert response.headers["x-package-id"] == "public-pkg"
        assert response.headers["x-version"] == "1.0.0"
        assert response.headers["x-created-at"].endswith("Z")

    def test_private_without_token(self, client, seeded):
        response = client.head("/api/files/private-pkg/1.0.0/secret.md")

        assert response.status_code == 403
        assert response.content == b""

    def test_private_with_grant(self, client, seeded):
        response = client.head("/api/files/private-pkg/1.0.0/secret.md", headers=bearer(GRANTED_TOKEN))

        assert response.status_code == 200
        assert response.headers["content-length"] == str(len(PRIVATE_DOC))

    def test_missing(self, client, seeded):
        response = client.head("/api/files/public-pkg/1.0.0/nope.md")

        assert response.status_code == 404


class TestListFiles:
    """GET /api/files/{package_id}/{version}"""

    def test_anonymous_sees_public_only(self, client, seeded):
        response = client.get("/api/files/private-pkg/1.0.0")

        assert response.status_code == 200
        files = response.json()["files"]
        assert [f["filename"] for f in files] == ["changelog.md"]
        assert files[0]["isPublic"] is True
        assert set(files[0]) == {"packageId", "version", "filename", "isPublic", "createdAt"}

    def test_token_without_grant_sees_public_only(self, client, seeded):
        response = client.get("/api/files/private-pkg/1.0.0", headers=bearer(VALID_TOKEN))

        assert [f["filename"] for f in response.json()["files"]] == ["changelog.md"]

    def test_granted_user_sees_all(self, client, seeded, access_backend):
        response = client.get("/api/files/private-pkg/1.0.0", headers=bearer(GRANTED_TOKEN))

        names = sorted(f["filename"] for f in response.json()["files"])
        assert names == ["also-secret.md", "changelog.md", "secret.md"]
        assert access_backend.grant_lookups == [("user-with-grant", "private-pkg")]

    def test_missing_version_is_empty(self, client):
        response = client.get("/api/files/public-pkg/9.9.9")

        assert response.status_code == 200
        assert response.json() == {"files": []}


class TestHealth:
    """Liveness and readiness"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["timestamp"].endswith("Z")

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert {c["name"] for c in body["components"]} == {"storage", "disk"}


class TestMiddleware:
    """Security headers, access logs, rate limiting"""

    def test_security_headers(self, client, seeded):
        response = client.get("/api/files/public-pkg/1.0.0/readme.md")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
        assert "default-src 'self'" in response.headers["content-security-policy"]
        assert response.headers["cache-control"] == "no-store"

    def test_access_log_recorded_for_file_requests(self, app, access_backend, seeded):
        with TestClient(app) as test_client:
            test_client.get("/api/files/private-pkg/1.0.0/secret.md", headers=bearer(GRANTED_TOKEN))
            test_client.get("/health")

        assert len(access_backend.access_logs) == 1
        entry = access_backend.access_logs[0]
        assert entry["method"] == "GET"
        assert entry["path"] == "/api/files/private-pkg/1.0.0/secret.md"
        assert entry["status_code"] == 200
        assert entry["user_id"] == "user-with-grant"
        assert access_backend.closed is True

    def test_rate_limit(self, storage_root, access_backend, encryption_config):
        settings = FileProxySettings(
            storage_path=str(storage_root),
            structured_logging=False,
            rate_limit_enabled=True,
            rate_limit_requests=2,
            rate_limit_window_sec=60,
            access_log_enabled=False,
        )
        app = create_app(settings, access=access_backend, encryption_config=encryption_config)

        with TestClient(app) as test_client:
            statuses = [test_client.get("/api/files/pkg/1.0.0").status_code for _ in range(3)]
            health = test_client.get("/health")

        assert statuses == [200, 200, 429]
        assert health.status_code == 200


class TestStartupConfiguration:
    """Misconfiguration refuses to build the app"""

    def test_missing_supabase_settings(self, proxy_settings, encryption_config):
        with pytest.raises(ConfigurationError, match="SUPABASE_URL"):
            create_app(proxy_settings, encryption_config=encryption_config)

    def test_missing_encryption_key(self, storage_root, access_backend, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        settings = FileProxySettings(storage_path=str(storage_root), encryption_key=None, structured_logging=False)

        with pytest.raises(ConfigurationError, match="ENCRYPTION_KEY"):
            create_app(settings, access=access_backend)
