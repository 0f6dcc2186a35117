"""Tests for filesystem watching and save filtering."""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path

import httpx
import pytest
from helpers import CabinetEndpoint, ClosableTransport
from watchfiles import Change

from filecabinet_uploader import ConfigCache, FileCabinetClient, Settings, UploadDispatcher
from filecabinet_uploader.watcher import WorkspaceWatcher, should_upload

SOURCE = "src/FileCabinet/SuiteScripts/app/lib.js"


@pytest.fixture
def watcher(
    client: FileCabinetClient, settings: Settings, workspace: Path, endpoint: CabinetEndpoint
) -> WorkspaceWatcher:
    dispatcher = UploadDispatcher(client, settings, workspace)
    return WorkspaceWatcher(
        dispatcher,
        ConfigCache(environ={}),
        client_factory=lambda s: FileCabinetClient.from_settings(s, transport=endpoint.transport()),
    )


class TestShouldUpload:
    """Tests for should_upload()."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("src/a.js", True),
            ("src/FileCabinet/SuiteScripts/app/lib.js", True),
            ("dist/a.js", False),
            ("srcs/a.js", False),
            ("src/node_modules/pkg/index.js", False),
            ("src/app/lib.js.map", False),
        ],
    )
    def test_default_patterns(self, settings: Settings, path: str, expected: bool) -> None:
        assert should_upload(path, settings) is expected

    def test_watch_patterns_limit_uploads(self, settings: Settings) -> None:
        only_js = dataclasses.replace(settings, watch_patterns=("*.js",))

        assert should_upload("src/app/lib.js", only_js)
        assert not should_upload("src/app/readme.md", only_js)

    def test_patterns_match_workspace_relative_path(self, settings: Settings) -> None:
        custom = dataclasses.replace(
            settings, watch_folder="web", exclude_patterns=("web/vendor/*",)
        )

        assert should_upload("web/app.js", custom)
        assert not should_upload("web/vendor/lib.js", custom)


class TestHandleChanges:
    """Tests for WorkspaceWatcher.handle_changes()."""

    @pytest.mark.asyncio
    async def test_saves_are_dispatched(self, watcher: WorkspaceWatcher, workspace: Path) -> None:
        targets = await watcher.handle_changes(
            {
                (Change.modified, str(workspace / SOURCE)),
                (Change.added, str(workspace / "dist/FileCabinet/SuiteScripts/app/lib.js")),
                (Change.deleted, str(workspace / "src/FileCabinet/SuiteScripts/app/lib.ts")),
            }
        )
        await watcher.dispatcher.close()

        assert [t.logical_remote_path for t in targets] == ["/SuiteScripts/app/lib.js"]

    @pytest.mark.asyncio
    async def test_env_change_reloads_settings(
        self, watcher: WorkspaceWatcher, workspace: Path
    ) -> None:
        old_client = watcher.dispatcher.client
        (workspace / ".env").write_text("NS_UPLOAD_FROM=build\nNS_ACCOUNT_ID=1\n")

        targets = await watcher.handle_changes(
            [
                (Change.modified, str(workspace / ".env")),
                (Change.modified, str(workspace / SOURCE)),
            ]
        )
        await watcher.dispatcher.close()

        assert watcher.dispatcher.settings.upload_folder == "build"
        assert watcher.dispatcher.client is not old_client
        assert targets[0].physical_path == workspace / "build/FileCabinet/SuiteScripts/app/lib.js"

    @pytest.mark.asyncio
    async def test_nested_env_file_is_an_ordinary_file(
        self, watcher: WorkspaceWatcher, workspace: Path
    ) -> None:
        old_client = watcher.dispatcher.client

        await watcher.handle_changes([(Change.modified, str(workspace / "src/.env"))])
        await watcher.dispatcher.close()

        assert watcher.dispatcher.client is old_client

    @pytest.mark.asyncio
    async def test_env_change_lets_running_upload_finish(
        self, endpoint: CabinetEndpoint, settings: Settings, workspace: Path
    ) -> None:
        """The replaced client stays open until the upload using it is done."""

        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.2)
            return endpoint(request)

        transport = ClosableTransport(slow)
        client = FileCabinetClient.from_settings(settings, transport=transport)
        watcher = WorkspaceWatcher(
            UploadDispatcher(client, settings, workspace),
            ConfigCache(environ={}),
            client_factory=lambda s: FileCabinetClient.from_settings(s, transport=endpoint.transport()),
        )

        upload = asyncio.ensure_future(watcher.dispatcher.upload_now(workspace / SOURCE))
        await asyncio.sleep(0.05)
        (workspace / ".env").write_text("NS_ACCOUNT_ID=1\n")
        await watcher.handle_changes([(Change.modified, str(workspace / ".env"))])
        result = await upload
        await watcher.dispatcher.close()

        assert result.success, result.error
        assert watcher.dispatcher.client is not client
        assert transport.closed
        assert [u["path"] for u in endpoint.uploads] == ["/SuiteScripts/app/lib.js"]


class TestRun:
    """Tests for WorkspaceWatcher.run()."""

    @pytest.mark.asyncio
    async def test_run_uploads_watched_changes(
        self,
        watcher: WorkspaceWatcher,
        workspace: Path,
        endpoint: CabinetEndpoint,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = []

        async def fake_awatch(*paths, **kwargs):
            calls.append((paths, kwargs))
            yield {(Change.modified, str(workspace / SOURCE))}
            await asyncio.sleep(0.2)

        monkeypatch.setattr("filecabinet_uploader.watcher.awatch", fake_awatch)
        stop = asyncio.Event()

        await watcher.run(stop)

        assert calls[0][0] == (str(workspace),)
        assert calls[0][1]["stop_event"] is stop
        assert [u["path"] for u in endpoint.uploads] == ["/SuiteScripts/app/lib.js"]

    @pytest.mark.asyncio
    async def test_cancelled_run_cancels_armed_timers(
        self,
        client: FileCabinetClient,
        settings: Settings,
        workspace: Path,
        endpoint: CabinetEndpoint,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        slow_debounce = dataclasses.replace(settings, debounce_delay=1.0)
        watcher = WorkspaceWatcher(UploadDispatcher(client, slow_debounce, workspace), ConfigCache(environ={}))

        async def fake_awatch(*paths, **kwargs):
            yield {(Change.modified, str(workspace / SOURCE))}
            await asyncio.sleep(10)

        monkeypatch.setattr("filecabinet_uploader.watcher.awatch", fake_awatch)

        task = asyncio.ensure_future(watcher.run())
        await asyncio.sleep(0.05)
        assert watcher.dispatcher.pending

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not watcher.dispatcher.pending
        assert endpoint.requests == []
