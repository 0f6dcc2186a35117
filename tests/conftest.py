"""Pytest fixtures for filecabinet_uploader tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from helpers import RESTLET_URL, CabinetEndpoint

from filecabinet_uploader import Credentials, FileCabinetClient, Settings
from filecabinet_uploader.cabinet import InMemoryFileCabinet, UpsertResolver


@pytest.fixture
def credentials() -> Credentials:
    """Complete set of test credentials."""
    return Credentials(
        account_id="1234567_SB1",
        consumer_key="consumer-key",
        consumer_secret="consumer-secret",
        token_id="token-id",
        token_secret="token-secret",
    )


@pytest.fixture
def settings(credentials: Credentials) -> Settings:
    """Settings with short timings for dispatcher tests."""
    return Settings(
        account_id=credentials.account_id,
        restlet_url=RESTLET_URL,
        consumer_key=credentials.consumer_key,
        consumer_secret=credentials.consumer_secret,
        token_id=credentials.token_id,
        token_secret=credentials.token_secret,
        debounce_delay=0.05,
        wait_for_build=0.0,
    )


@pytest.fixture
def cabinet() -> InMemoryFileCabinet:
    return InMemoryFileCabinet()


@pytest.fixture
def resolver(cabinet: InMemoryFileCabinet) -> UpsertResolver:
    return UpsertResolver(cabinet)


@pytest.fixture
def endpoint(resolver: UpsertResolver, credentials: Credentials) -> CabinetEndpoint:
    """Mock RESTlet backed by the in-memory cabinet."""
    return CabinetEndpoint(resolver, credentials)


@pytest.fixture
def client(settings: Settings, endpoint: CabinetEndpoint) -> FileCabinetClient:
    return FileCabinetClient.from_settings(settings, transport=endpoint.transport())


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Workspace with a source file and its build output."""
    src = tmp_path / "src" / "FileCabinet" / "SuiteScripts" / "app"
    dist = tmp_path / "dist" / "FileCabinet" / "SuiteScripts" / "app"
    src.mkdir(parents=True)
    dist.mkdir(parents=True)
    (src / "lib.ts").write_text("export const x = 1;\n")
    (src / "lib.js").write_text("// source\n")
    (dist / "lib.js").write_text("define([], () => ({ x: 1 }));\n")
    return tmp_path
