"""Debounced, per-file upload dispatch.

Every physical path moves through::

    IDLE -> DEBOUNCING -> IN_FLIGHT -> SUCCEEDED | FAILED -> IDLE

A save event arms a debounce timer for the physical path; another save for
the same path before it fires cancels and re-arms it, so a burst of saves
produces one upload of whatever is on disk when the timer fires. Uploads of
one path never overlap: an upload started while an earlier one is still in
flight waits for it. Running uploads are never cancelled. Different paths
are independent.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from filecabinet_uploader.client import FileCabinetClient
from filecabinet_uploader.config import Settings
from filecabinet_uploader.exceptions import BuildOutputMissingError, FileCabinetError
from filecabinet_uploader.models import UploadRecord, UploadResult, UploadState, UploadTarget
from filecabinet_uploader.paths import check_relative_path, relative_to_workspace, resolve

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 50
SUCCESS_DISPLAY_SECONDS = 3.0
FAILURE_DISPLAY_SECONDS = 5.0

StatusCallback = Callable[[Path, UploadState, str | None], None]


class UploadDispatcher:
    """Turns save events into uploads for one workspace."""

    def __init__(
        self,
        client: FileCabinetClient,
        settings: Settings,
        workspace_root: str | os.PathLike[str],
        *,
        history_size: int = DEFAULT_HISTORY_SIZE,
        on_status: StatusCallback | None = None,
        success_display: float = SUCCESS_DISPLAY_SECONDS,
        failure_display: float = FAILURE_DISPLAY_SECONDS,
    ) -> None:
        self.client = client
        self.settings = settings
        self.workspace_root = Path(workspace_root)
        self.on_status = on_status
        self.success_display = success_display
        self.failure_display = failure_display
        self.history: deque[UploadRecord] = deque(maxlen=history_size)
        self._timers: dict[Path, asyncio.Task[None]] = {}
        self._uploads: dict[Path, asyncio.Task[UploadResult]] = {}
        self._resets: dict[Path, asyncio.TimerHandle] = {}
        self._states: dict[Path, UploadState] = {}
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> frozenset[Path]:
        """Physical paths with an armed debounce timer."""
        return frozenset(self._timers)

    @property
    def in_flight(self) -> frozenset[Path]:
        return frozenset(self._uploads)

    def status(self, physical_path: str | os.PathLike[str]) -> UploadState:
        return self._states.get(Path(physical_path), UploadState.IDLE)

    def resolve(self, saved_path: str | os.PathLike[str]) -> UploadTarget:
        """Resolve a saved file to its upload target.

        Raises:
            PathTraversalError: If the path contains ``..`` or lies outside the workspace
        """
        check_relative_path(saved_path)
        check_relative_path(relative_to_workspace(saved_path, self.workspace_root))
        return resolve(
            saved_path,
            self.workspace_root,
            watch_folder=self.settings.watch_folder,
            upload_folder=self.settings.upload_folder,
            root_remote_path=self.settings.root_path,
        )

    def on_save(self, saved_path: str | os.PathLike[str]) -> UploadTarget:
        """Schedule an upload for a saved file after the quiet period.

        Must be called from within the running event loop.
        """
        target = self.resolve(saved_path)
        key = target.physical_path

        pending = self._timers.pop(key, None)
        if pending is not None:
            pending.cancel()
            logger.debug(f"Restarting debounce for {key}")

        self._timers[key] = asyncio.ensure_future(self._debounce(target))
        self._set_state(key, UploadState.DEBOUNCING, target.file_name)
        return target

    async def _debounce(self, target: UploadTarget) -> None:
        await asyncio.sleep(self.settings.debounce_delay)
        # Nothing below awaits, so a later cancel cannot interrupt the hand-off
        self._timers.pop(target.physical_path, None)
        self._start(target)

    def _start(self, target: UploadTarget) -> asyncio.Task[UploadResult]:
        key = target.physical_path
        previous = self._uploads.get(key)
        task = asyncio.ensure_future(self._run_after(previous, target))
        self._uploads[key] = task
        task.add_done_callback(lambda t: self._forget(key, t))
        return task

    def _forget(self, key: Path, task: asyncio.Task[UploadResult]) -> None:
        if self._uploads.get(key) is task:
            del self._uploads[key]

    async def _run_after(
        self, previous: asyncio.Task[UploadResult] | None, target: UploadTarget
    ) -> UploadResult:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        return await self.upload(target)

    async def upload_now(self, saved_path: str | os.PathLike[str]) -> UploadResult:
        """Resolve and upload a file immediately, skipping the debounce."""
        target = self.resolve(saved_path)
        pending = self._timers.pop(target.physical_path, None)
        if pending is not None:
            pending.cancel()
        return await self._start(target)

    def replace_client(self, client: FileCabinetClient) -> None:
        """Send later uploads through *client*.

        The previous client is closed once the uploads running now have
        finished with it.
        """
        old = self.client
        self.client = client
        task = asyncio.ensure_future(self._close_when_done(old, list(self._uploads.values())))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_when_done(
        self, client: FileCabinetClient, running: list[asyncio.Task[UploadResult]]
    ) -> None:
        if running:
            await asyncio.wait(running)
        await client.aclose()
        logger.debug("Closed superseded client")

    async def retry(self, result: UploadResult) -> UploadResult:
        """Upload the identical target of an earlier result again."""
        return await self._start(result.target)

    async def upload(self, target: UploadTarget) -> UploadResult:
        """Run one upload attempt to a terminal state.

        Never raises for upload failures; they are returned as a failed
        UploadResult.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        key = target.physical_path
        try:
            if target.was_remapped:
                if self.settings.wait_for_build > 0:
                    logger.debug(f"Waiting {self.settings.wait_for_build:g}s for build...")
                    await asyncio.sleep(self.settings.wait_for_build)
                if not key.exists():
                    raise BuildOutputMissingError(
                        f"File not found in '{self.settings.upload_folder}' folder: "
                        f"{target.file_name}. Run your build or change the upload folder."
                    )

            self._set_state(key, UploadState.IN_FLIGHT, target.file_name)
            mapped_note = f" (from {self.settings.upload_folder})" if target.was_remapped else ""
            logger.info(f"Uploading: {target.file_name}{mapped_note} -> {target.logical_remote_path}")

            content = key.read_bytes()
            response = await self.client.upload(
                target.logical_remote_path,
                content,
                description=f"Uploaded via Auto-Upload from {target.relative_path}",
            )
        except (FileCabinetError, OSError) as e:
            return self._failed(target, e, loop.time() - started)
        except Exception as e:
            logger.exception(f"Unexpected error uploading {key}")
            return self._failed(target, e, loop.time() - started)

        duration = loop.time() - started
        self.history.appendleft(
            UploadRecord(
                file_name=target.file_name,
                local_path=key,
                remote_path=target.logical_remote_path,
                timestamp=datetime.now(timezone.utc),
                action=response.action,
                remote_id=response.file_id,
            )
        )
        self._set_state(key, UploadState.SUCCEEDED, target.logical_remote_path)
        logger.info(f"Upload successful: {target.file_name} -> {target.logical_remote_path}")
        return UploadResult(
            target=target,
            success=True,
            action=response.action,
            remote_id=response.file_id,
            message=response.message,
            duration=duration,
        )

    def _failed(self, target: UploadTarget, error: Exception, duration: float) -> UploadResult:
        logger.error(f"Upload failed: {target.physical_path}: {error}")
        self._set_state(target.physical_path, UploadState.FAILED, str(error))
        return UploadResult(
            target=target,
            success=False,
            error=str(error),
            error_kind=type(error).__name__,
            duration=duration,
        )

    def _set_state(self, key: Path, state: UploadState, detail: str | None = None) -> None:
        reset = self._resets.pop(key, None)
        if reset is not None:
            reset.cancel()

        if self.on_status is not None:
            self.on_status(key, state, detail)

        if state is not UploadState.DEBOUNCING and key in self._timers:
            # A newer save is armed: earlier uploads are reported, the path stays DEBOUNCING
            return

        window = {
            UploadState.SUCCEEDED: self.success_display,
            UploadState.FAILED: self.failure_display,
        }.get(state)
        if state is UploadState.IDLE:
            self._states.pop(key, None)
        else:
            self._states[key] = state
        if window is not None:
            loop = asyncio.get_running_loop()
            self._resets[key] = loop.call_later(window, self._reset, key, state)

    def _reset(self, key: Path, expected: UploadState) -> None:
        self._resets.pop(key, None)
        if self._states.get(key) is expected and key not in self._timers:
            self._set_state(key, UploadState.IDLE)

    async def drain(self) -> None:
        """Wait until no timer is armed and no upload is running."""
        while self._timers or self._uploads:
            await asyncio.wait([*self._timers.values(), *self._uploads.values()])

    async def close(self) -> None:
        """Cancel armed timers and wait for running uploads to finish."""
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        if self._uploads:
            await asyncio.wait(list(self._uploads.values()))
        if self._closing:
            await asyncio.wait(list(self._closing))
        for handle in self._resets.values():
            handle.cancel()
        self._resets.clear()
