"""Shared pytest fixtures for Prompt Chain tests."""

from __future__ import annotations

import io
import json
import shutil
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from promptchain.api.dependencies import get_provider, get_settings
from promptchain.api.main import app
from promptchain.core.chain_store import ChainStore
from promptchain.core.config import PromptChainConfig
from promptchain.core.provider_client import ProviderClient

MASTER_KEY = "test-master-key"
PROVIDER_KEY = "test-provider-key"
PROVIDER_URL = "https://provider.test/ai/generate-image"

# A tiny stand-in for PNG bytes; the decoder never inspects image content.
FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-image-data"


def build_archive(entries: dict[str, bytes | str]) -> bytes:
    """Build an in-memory zip archive from ``name -> content`` pairs, in order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class FakeProvider:
    """Programmable stand-in for the image provider.

    Attributes:
        status_code: Status returned for every request.
        body: Response body returned for every request.
        requests: Every request received, in order.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.body = build_archive({"image_0.png": FAKE_PNG})
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.body)

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> PromptChainConfig:
    """Create a test configuration backed by a temporary database.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        PromptChainConfig instance for testing
    """
    return PromptChainConfig(
        _env_file=None,
        db_path=str(temp_dir / "data" / "promptchain.db"),
        master_key=MASTER_KEY,
        provider_api_key=PROVIDER_KEY,
        provider_url=PROVIDER_URL,
    )


@pytest.fixture
def store(test_config: PromptChainConfig) -> ChainStore:
    """Create a store on a fresh database (no tables yet)."""
    return ChainStore.from_config(test_config)


@pytest.fixture
def archive_factory() -> Callable[[dict[str, bytes | str]], bytes]:
    """Return the zip archive builder."""
    return build_archive


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_client(fake_provider: FakeProvider) -> ProviderClient:
    """Create a provider client wired to :class:`FakeProvider`."""
    return ProviderClient(
        PROVIDER_URL,
        api_key=PROVIDER_KEY,
        transport=httpx.MockTransport(fake_provider.handler),
    )


@pytest.fixture
def test_client(
    test_config: PromptChainConfig,
    provider_client: ProviderClient,
) -> Generator[TestClient, None, None]:
    """Create a TestClient with test settings and the fake provider injected."""
    app.dependency_overrides[get_settings] = lambda: test_config
    app.dependency_overrides[get_provider] = lambda: provider_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers carrying the correct master key."""
    return {"X-Master-Key": MASTER_KEY}
