"""Tests for CLI functionality."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from helpers import RESTLET_URL, CabinetEndpoint

from filecabinet_uploader import Credentials, FileCabinetClient
from filecabinet_uploader.cabinet import InMemoryFileCabinet, UpsertResolver
from filecabinet_uploader.cli import main

SOURCE = "src/FileCabinet/SuiteScripts/app/lib.js"


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def configured(workspace: Path, credentials: Credentials) -> Path:
    """Workspace with a complete .env file."""
    (workspace / ".env").write_text(
        f"NS_ACCOUNT_ID={credentials.account_id}\n"
        f"NS_RESTLET_URL={RESTLET_URL}\n"
        f"NS_CONSUMER_KEY={credentials.consumer_key}\n"
        f"NS_CONSUMER_SECRET={credentials.consumer_secret}\n"
        f"NS_TOKEN_ID={credentials.token_id}\n"
        f"NS_TOKEN_SECRET={credentials.token_secret}\n"
        "NS_WAIT_FOR_BUILD=0\n"
    )
    return workspace


@pytest.fixture(autouse=True)
def mock_transport(endpoint: CabinetEndpoint) -> Iterator[None]:
    """Route every client the CLI builds to the mock endpoint."""
    original = FileCabinetClient.from_settings

    def from_settings(settings, *, transport=None):
        return original(settings, transport=endpoint.transport())

    with patch.object(FileCabinetClient, "from_settings", side_effect=from_settings):
        yield


class TestInitCommand:
    """Tests for the init command."""

    def test_creates_env_then_example(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["init", "-w", str(tmp_path)])

        assert result.exit_code == 0
        assert "Created .env." in result.output
        assert (tmp_path / ".env").exists()

        result = runner.invoke(main, ["init", "-w", str(tmp_path)])
        assert "Created .env.example." in result.output


class TestResolveCommand:
    """Tests for the resolve command."""

    def test_shows_mapping(self, runner: CliRunner, workspace: Path) -> None:
        """Resolving works without credentials."""
        result = runner.invoke(main, ["resolve", str(workspace / SOURCE), "-w", str(workspace)])

        assert result.exit_code == 0
        assert (
            "dist/FileCabinet/SuiteScripts/app/lib.js (mapped) -> /SuiteScripts/app/lib.js"
            in result.output
        )

    def test_outside_workspace(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(
            main, ["resolve", str(workspace.parent / "x.js"), "-w", str(workspace)]
        )

        assert result.exit_code == 1
        assert "not allowed" in result.output


class TestUploadCommand:
    """Tests for the upload command."""

    def test_upload_success(
        self, runner: CliRunner, configured: Path, cabinet: InMemoryFileCabinet
    ) -> None:
        result = runner.invoke(main, ["upload", str(configured / SOURCE), "-w", str(configured)])

        assert result.exit_code == 0
        assert "lib.js -> /SuiteScripts/app/lib.js (create)" in result.output
        assert "All 1 file(s) uploaded successfully!" in result.output
        assert len(cabinet.files) == 1

    def test_partial_failure(self, runner: CliRunner, configured: Path) -> None:
        """A source file without build output fails without stopping the others."""
        new_source = configured / "src/FileCabinet/SuiteScripts/app/new.js"
        new_source.write_text("// not built yet\n")

        result = runner.invoke(
            main,
            ["upload", str(configured / SOURCE), str(new_source), "-w", str(configured)],
        )

        assert result.exit_code == 1
        assert "1/2 file(s) uploaded." in result.output
        assert "File not found in 'dist' folder: new.js" in result.output

    def test_missing_configuration(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(main, ["upload", str(workspace / SOURCE), "-w", str(workspace)])

        assert result.exit_code == 1
        assert "Missing configuration: RESTLET_URL, ACCOUNT_ID" in result.output
        assert "filecabinet init" in result.output


class TestTestCommand:
    """Tests for the test command."""

    def test_connection_success(self, runner: CliRunner, configured: Path) -> None:
        result = runner.invoke(main, ["test", "-w", str(configured)])

        assert result.exit_code == 0
        assert "Connection successful! RESTlet v2.1.0" in result.output
        assert "User: Developer (id 1, role 3)" in result.output

    def test_connection_rejected(self, runner: CliRunner, configured: Path) -> None:
        env = configured / ".env"
        env.write_text(env.read_text().replace("token-secret", "wrong-secret"))

        result = runner.invoke(main, ["test", "-w", str(configured)])

        assert result.exit_code == 1
        assert "Connection failed: Invalid login attempt." in result.output


class TestDeleteCommand:
    """Tests for the delete command."""

    def test_delete_by_path(
        self,
        runner: CliRunner,
        configured: Path,
        resolver: UpsertResolver,
        cabinet: InMemoryFileCabinet,
    ) -> None:
        file_id, _ = resolver.upsert("/SuiteScripts/app/lib.js", "x")

        result = runner.invoke(
            main, ["delete", "/SuiteScripts/app/lib.js", "--yes", "-w", str(configured)]
        )

        assert result.exit_code == 0
        assert f"Deleted file {file_id}" in result.output
        assert not cabinet.files

    def test_delete_missing_file(self, runner: CliRunner, configured: Path) -> None:
        result = runner.invoke(
            main, ["delete", "--file-id", "999", "--yes", "-w", str(configured)]
        )

        assert result.exit_code == 1
        assert "Delete failed" in result.output

    def test_delete_requires_target(self, runner: CliRunner, configured: Path) -> None:
        result = runner.invoke(main, ["delete", "--yes", "-w", str(configured)])

        assert result.exit_code == 2
        assert "Give a remote PATH or --file-id" in result.output
