"""Remote side of the upload protocol: find-or-create folders and upsert files.

The endpoint has no native upsert. A file is located by walking its folder
path from a fixed root folder and then matching ``(name, folder_id)``. An
existing file is overwritten in place so its id stays the same and records
referencing it stay valid; otherwise the file is created.

The resolver runs against any ``FileCabinetStore``. ``InMemoryFileCabinet``
is a complete store kept in memory.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from filecabinet_uploader.config import DEFAULT_MAX_FILE_SIZE
from filecabinet_uploader.exceptions import FolderError
from filecabinet_uploader.filetypes import extension_of, file_type_for
from filecabinet_uploader.models import FileRecord, FolderNode
from filecabinet_uploader.paths import normalize_path, sanitize_remote_path, split_remote_path

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2.1.0"
DEFAULT_ROOT_FOLDER_ID = -15
DEFAULT_ROOT_NAME = "SuiteScripts"
DEFAULT_DESCRIPTION = "Uploaded via Auto-Upload"


class FileCabinetStore(Protocol):
    """Record-level operations the resolver needs from the file cabinet."""

    def find_child_folder(self, parent_id: int, name: str) -> int | None: ...

    def create_folder(self, parent_id: int, name: str) -> int: ...

    def find_file(self, folder_id: int, name: str) -> FileRecord | None: ...

    def save_file(
        self,
        *,
        name: str,
        folder_id: int,
        content: str,
        file_type: str,
        encoding: str,
        description: str,
    ) -> int:
        """Save a file, overwriting one with the same name in the folder."""
        ...

    def delete_file(self, file_id: int) -> None: ...

    def current_user(self) -> dict[str, Any]: ...


@dataclass
class StoredFile:
    record: FileRecord
    content: str
    file_type: str
    encoding: str
    description: str


class InMemoryFileCabinet:
    """FileCabinetStore kept in memory.

    Overwriting a file with the same name in the same folder keeps its id,
    like the real cabinet's overwrite conflict resolution.
    """

    def __init__(
        self,
        root_folder_id: int = DEFAULT_ROOT_FOLDER_ID,
        root_name: str = DEFAULT_ROOT_NAME,
        user: dict[str, Any] | None = None,
    ) -> None:
        self.folders: dict[int, FolderNode] = {
            root_folder_id: FolderNode(id=root_folder_id, name=root_name, parent_id=None)
        }
        self.files: dict[int, StoredFile] = {}
        self.user = user or {"id": 1, "name": "Developer", "role": 3}
        self._ids = itertools.count(1000)

    def add_folder(self, parent_id: int, name: str) -> int:
        folder_id = next(self._ids)
        self.folders[folder_id] = FolderNode(id=folder_id, name=name, parent_id=parent_id)
        return folder_id

    def find_child_folder(self, parent_id: int, name: str) -> int | None:
        for folder in self.folders.values():
            if folder.parent_id == parent_id and folder.name == name:
                return folder.id
        return None

    def create_folder(self, parent_id: int, name: str) -> int:
        if parent_id not in self.folders:
            raise FolderError(f"Parent folder {parent_id} does not exist")
        return self.add_folder(parent_id, name)

    def find_file(self, folder_id: int, name: str) -> FileRecord | None:
        for stored in self.files.values():
            if stored.record.folder_id == folder_id and stored.record.name == name:
                return stored.record
        return None

    def save_file(
        self,
        *,
        name: str,
        folder_id: int,
        content: str,
        file_type: str,
        encoding: str,
        description: str,
    ) -> int:
        if folder_id not in self.folders:
            raise FolderError(f"Folder {folder_id} does not exist")
        existing = self.find_file(folder_id, name)
        record = existing or FileRecord(id=next(self._ids), name=name, folder_id=folder_id)
        self.files[record.id] = StoredFile(record, content, file_type, encoding, description)
        return record.id

    def delete_file(self, file_id: int) -> None:
        if file_id not in self.files:
            raise KeyError(f"File {file_id} does not exist")
        del self.files[file_id]

    def current_user(self) -> dict[str, Any]:
        return dict(self.user)

    def content_of(self, file_id: int) -> str:
        return self.files[file_id].content


class UpsertResolver:
    """Find-or-create folder paths and upsert files in a FileCabinetStore."""

    def __init__(
        self,
        store: FileCabinetStore,
        *,
        root_folder_id: int = DEFAULT_ROOT_FOLDER_ID,
        root_name: str = DEFAULT_ROOT_NAME,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        allowed_extensions: tuple[str, ...] = (),
    ) -> None:
        self.store = store
        self.root_folder_id = root_folder_id
        self.root_name = root_name
        self.max_file_size = max_file_size
        self.allowed_extensions = tuple(e.lower().lstrip(".") for e in allowed_extensions)

    def _segments(self, folder_path: str) -> list[str]:
        parts = [p for p in normalize_path(folder_path).split("/") if p.strip()]
        # The root folder itself may be named as the first segment
        if parts and parts[0].lower() == self.root_name.lower():
            parts = parts[1:]
        return parts

    def _child(self, parent_id: int, name: str) -> int | None:
        try:
            return self.store.find_child_folder(parent_id, name)
        except FolderError:
            raise
        except Exception as e:
            raise FolderError(f"Folder query failed for {name!r}: {e}") from e

    def find_folder(self, folder_path: str) -> int | None:
        """Id of the folder at *folder_path*, or None if any segment is missing.

        Raises:
            FolderError: If the store query itself fails
        """
        current = self.root_folder_id
        for name in self._segments(folder_path):
            child = self._child(current, name)
            if child is None:
                logger.debug(f"Folder not found: {folder_path}")
                return None
            current = child
        return current

    def find_or_create_folder(self, folder_path: str) -> int:
        """Id of the folder at *folder_path*, creating missing folders."""
        current = self.root_folder_id
        for name in self._segments(folder_path):
            child = self._child(current, name)
            if child is None:
                try:
                    child = self.store.create_folder(current, name)
                except FolderError:
                    raise
                except Exception as e:
                    raise FolderError(f"Failed to create folder {name!r}: {e}") from e
                logger.debug(f"Created folder {name} ({child}) under {current}")
            current = child
        return current

    def find_file(self, path: str) -> FileRecord | None:
        folder_path, file_name = split_remote_path(path)
        folder_id = self.find_folder(folder_path)
        if folder_id is None:
            return None
        return self.store.find_file(folder_id, file_name)

    def upsert(
        self,
        path: str,
        content: str,
        *,
        encoding: str = "utf8",
        description: str = DEFAULT_DESCRIPTION,
        folder_id: int | None = None,
    ) -> tuple[int, str]:
        """Create or overwrite the file at *path*.

        An existing file keeps its id. *folder_id* overrides the folder
        lookup for new files only.

        Returns:
            (file_id, action) where action is "create" or "update"
        """
        folder_path, file_name = split_remote_path(path)
        existing = self.find_file(path)
        if existing is not None:
            target_folder = existing.folder_id
            action = "update"
        else:
            target_folder = (
                folder_id if folder_id is not None else self.find_or_create_folder(folder_path)
            )
            action = "create"

        file_id = self.store.save_file(
            name=file_name,
            folder_id=target_folder,
            content=content,
            file_type=file_type_for(file_name),
            encoding=encoding,
            description=description,
        )
        if existing is not None and file_id != existing.id:
            logger.warning(f"Overwrite of {path} changed id {existing.id} -> {file_id}")
        return file_id, action

    def _validate(self, payload: Mapping[str, Any]) -> dict[str, Any] | None:
        path = payload.get("path")
        content = payload.get("content")
        if not path:
            return {"error": "MISSING_PATH", "message": "File path is required"}
        if content is None:
            return {"error": "MISSING_CONTENT", "message": "File content is required"}
        if len(content) > self.max_file_size:
            return {
                "error": "FILE_TOO_LARGE",
                "message": f"File size ({len(content)} bytes) exceeds maximum "
                f"allowed ({self.max_file_size} bytes)",
            }
        if ".." in path:
            return {"error": "INVALID_PATH", "message": "Path traversal (..) is not allowed"}
        return None

    def handle_get(self) -> dict[str, Any]:
        """Connection test response."""
        try:
            user = self.store.current_user()
        except Exception as e:
            logger.error(f"Connection test failed: {e}")
            return {"success": False, "error": "CONNECTION_TEST_FAILED", "message": str(e)}
        return {
            "success": True,
            "message": "File cabinet upload endpoint is active",
            "version": PROTOCOL_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user": {"id": user.get("id"), "name": user.get("name"), "role": user.get("role")},
            "config": {
                "defaultRootFolder": self.root_folder_id,
                "maxFileSize": self.max_file_size,
            },
        }

    def handle_post(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Upload request response."""
        started = time.monotonic()
        invalid = self._validate(payload)
        if invalid is not None:
            return {"success": False, **invalid}

        path = sanitize_remote_path(payload["path"])
        _, file_name = split_remote_path(path)
        if self.allowed_extensions:
            ext = extension_of(file_name)
            if ext not in self.allowed_extensions:
                return {
                    "success": False,
                    "error": "INVALID_EXTENSION",
                    "message": f"File extension .{ext} is not allowed",
                }

        folder = payload.get("folder")
        try:
            file_id, action = self.upsert(
                path,
                payload["content"],
                encoding="base64" if payload.get("encoding") == "base64" else "utf8",
                description=payload.get("description") or DEFAULT_DESCRIPTION,
                folder_id=int(folder) if folder not in (None, "") else None,
            )
        except Exception as e:
            logger.error(f"Upload error for {path}: {e}")
            return {
                "success": False,
                "error": type(e).__name__,
                "message": str(e),
                "details": {"path": payload.get("path")},
            }

        duration = int((time.monotonic() - started) * 1000)
        logger.info(f"Upload success: {path} ({action}, id {file_id}, {duration}ms)")
        return {
            "success": True,
            "message": f"File {action}d successfully",
            "fileId": file_id,
            "path": path,
            "action": action,
            "duration": duration,
        }

    def handle_delete(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Delete request response; *params* carries ``path`` or ``fileId``."""
        if not params.get("path") and not params.get("fileId"):
            return {
                "success": False,
                "error": "MISSING_IDENTIFIER",
                "message": "File path or fileId is required",
            }
        try:
            if params.get("fileId"):
                file_id = int(params["fileId"])
            else:
                existing = self.find_file(sanitize_remote_path(params["path"]))
                if existing is None:
                    return {
                        "success": False,
                        "error": "FILE_NOT_FOUND",
                        "message": f"File not found: {params['path']}",
                    }
                file_id = existing.id
            self.store.delete_file(file_id)
        except Exception as e:
            logger.error(f"Delete error: {e}")
            return {"success": False, "error": type(e).__name__, "message": str(e)}

        return {"success": True, "message": "File deleted successfully", "fileId": file_id}
