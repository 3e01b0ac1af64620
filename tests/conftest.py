"""
File Proxy Test Fixtures
Shared fixtures for all test modules.
"""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from shared.config import FileProxySettings
from shared.storage.encryption import EncryptionConfig, FileEncryption
from shared.storage.file_store import EncryptedFileStore

TEST_KEY_HEX = "8f3a1c5e7b9d2f4a6c8e0b1d3f5a7c9e1b3d5f7a9c1e3b5d7f9a1c3e5b7d9f1a"
OTHER_KEY_HEX = "1f2e3d4c5b6a79880f1e2d3c4b5a69788796a5b4c3d2e1f00f1e2d3c4b5a6978"

VALID_TOKEN = "valid-user-token"
GRANTED_TOKEN = "granted-user-token"


class FakeAccessBackend:
    """In-memory stand-in for the Supabase identity and grant lookups."""

    def __init__(
        self,
        tokens: Optional[Dict[str, str]] = None,
        grants: Optional[Set[Tuple[str, str]]] = None,
    ):
        self.tokens = tokens or {}
        self.grants = grants or set()
        self.access_logs: List[Dict[str, Any]] = []
        self.grant_lookups: List[Tuple[str, str]] = []
        self.closed = False

    async def resolve_user(self, token: str) -> Optional[str]:
        return self.tokens.get(token)

    async def has_package_access(self, user_id: str, package_id: str) -> bool:
        self.grant_lookups.append((user_id, package_id))
        return (user_id, package_id) in self.grants

    async def record_access(self, entry: Dict[str, Any]) -> None:
        self.access_logs.append(entry)

    async def close(self) -> None:
        self.closed = True


# ============================================================
# Crypto and storage fixtures
# ============================================================

@pytest.fixture
def key_hex() -> str:
    return TEST_KEY_HEX


@pytest.fixture
def encryption_config() -> EncryptionConfig:
    return EncryptionConfig(key=bytes.fromhex(TEST_KEY_HEX))


@pytest.fixture
def encryption(encryption_config) -> FileEncryption:
    return FileEncryption(encryption_config)


@pytest.fixture
def other_encryption() -> FileEncryption:
    """Encryption under a different key."""
    return FileEncryption(EncryptionConfig(key=bytes.fromhex(OTHER_KEY_HEX)))


@pytest.fixture
def storage_root(tmp_path) -> Path:
    return tmp_path / "files"


@pytest.fixture
def store(storage_root, encryption) -> EncryptedFileStore:
    return EncryptedFileStore(storage_root, encryption)


# ============================================================
# HTTP app fixtures
# ============================================================

@pytest.fixture
def access_backend() -> FakeAccessBackend:
    return FakeAccessBackend(
        tokens={VALID_TOKEN: "user-no-grant", GRANTED_TOKEN: "user-with-grant"},
        grants={("user-with-grant", "private-pkg")},
    )


@pytest.fixture
def proxy_settings(storage_root) -> FileProxySettings:
    return FileProxySettings(
        storage_path=str(storage_root),
        encryption_key=TEST_KEY_HEX,
        structured_logging=False,
        rate_limit_enabled=False,
        supabase_url=None,
        supabase_service_key=None,
    )


@pytest.fixture
def app(proxy_settings, access_backend, encryption_config):
    from src.main import create_app

    return create_app(proxy_settings, access=access_backend, encryption_config=encryption_config)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_store(app) -> EncryptedFileStore:
    """Store instance used by the running app, for seeding envelopes."""
    return app.state.store


# ============================================================
# Markers for test categorization
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external deps)")
    config.addinivalue_line("markers", "integration: In-process HTTP tests against the app")
    config.addinivalue_line("markers", "security: Security property tests")
