"""Filesystem watching: feeds saved files to the dispatcher."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterable
from fnmatch import fnmatchcase
from pathlib import Path

from watchfiles import Change, awatch

from filecabinet_uploader.client import FileCabinetClient
from filecabinet_uploader.config import ENV_FILES, ConfigCache, Settings
from filecabinet_uploader.dispatcher import UploadDispatcher
from filecabinet_uploader.exceptions import PathTraversalError
from filecabinet_uploader.models import UploadTarget
from filecabinet_uploader.paths import relative_to_workspace

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], FileCabinetClient]


def should_upload(relative_path: str, settings: Settings) -> bool:
    """Whether a workspace-relative path is eligible for upload.

    The path must lie in the watch folder. Exclude patterns are checked
    first, then include patterns; each pattern is tried against the path
    inside the watch folder and the workspace-relative path.
    """
    watch = settings.watch_folder.strip("/")
    if not relative_path.startswith(watch + "/"):
        return False

    candidates = (relative_path[len(watch) + 1 :], relative_path)
    if any(fnmatchcase(c, p) for p in settings.exclude_patterns for c in candidates):
        logger.debug(f"File excluded by pattern: {relative_path}")
        return False
    if not any(fnmatchcase(c, p) for p in settings.watch_patterns for c in candidates):
        logger.debug(f"File not matching watch patterns: {relative_path}")
        return False
    return True


class WorkspaceWatcher:
    """Watch a workspace and dispatch uploads for saved files.

    Changes to the env files invalidate the cached settings and rebuild the
    dispatcher's client with the new values.
    """

    def __init__(
        self,
        dispatcher: UploadDispatcher,
        config_cache: ConfigCache,
        *,
        client_factory: ClientFactory = FileCabinetClient.from_settings,
    ) -> None:
        self.dispatcher = dispatcher
        self.config_cache = config_cache
        self.client_factory = client_factory

    @property
    def workspace_root(self) -> Path:
        return self.dispatcher.workspace_root

    def _is_env_file(self, path: Path) -> bool:
        return path.name in ENV_FILES and path.parent == self.workspace_root

    async def reload_settings(self) -> Settings:
        """Re-read the env files and swap in a fresh client."""
        self.config_cache.invalidate(self.workspace_root)
        settings = self.config_cache.get(self.workspace_root)
        self.dispatcher.settings = settings
        # Uploads already running keep the old client until they finish
        self.dispatcher.replace_client(self.client_factory(settings))
        logger.info("Settings changed, reloaded configuration")
        return settings

    async def handle_changes(
        self, changes: Iterable[tuple[Change, str]]
    ) -> list[UploadTarget]:
        """Dispatch one batch of filesystem changes.

        Returns:
            Targets scheduled for upload
        """
        reload = False
        saved: list[Path] = []
        for change, raw_path in changes:
            path = Path(raw_path)
            if self._is_env_file(path):
                reload = True
            elif change != Change.deleted:
                saved.append(path)

        if reload:
            await self.reload_settings()

        targets = []
        for path in saved:
            relative = relative_to_workspace(path, self.workspace_root)
            if not should_upload(relative, self.dispatcher.settings):
                continue
            try:
                targets.append(self.dispatcher.on_save(path))
            except PathTraversalError as e:
                logger.warning(str(e))
        return targets

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Watch until *stop_event* is set or the task is cancelled."""
        logger.info(
            f"Watching {self.workspace_root / self.dispatcher.settings.watch_folder} "
            f"(debounce {self.dispatcher.settings.debounce_delay:g}s)"
        )
        try:
            async for changes in awatch(
                os.fspath(self.workspace_root), stop_event=stop_event, debounce=50
            ):
                await self.handle_changes(changes)
        finally:
            await self.dispatcher.close()
