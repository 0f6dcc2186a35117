"""Data models for the filecabinet_uploader library."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

RETRYABLE_ERRORS = frozenset({"NetworkError", "RemoteRejectedError"})


class UploadState(enum.Enum):
    """Lifecycle of a single physical path inside the dispatcher."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadTarget:
    """Which local file to send and where it lands remotely."""

    physical_path: Path
    logical_remote_path: str
    was_remapped: bool
    relative_path: str
    saved_path: Path

    @property
    def file_name(self) -> str:
        return self.physical_path.name


@dataclass(frozen=True)
class UploadResponse:
    """Successful answer of the upload endpoint."""

    file_id: int | None
    path: str
    action: str | None
    message: str | None = None
    duration: int | None = None


@dataclass(frozen=True)
class UploadResult:
    """Outcome of one dispatcher upload attempt."""

    target: UploadTarget
    success: bool
    action: str | None = None
    remote_id: int | None = None
    message: str | None = None
    error: str | None = None
    error_kind: str | None = None
    duration: float | None = None

    @property
    def retryable(self) -> bool:
        """True when the same upload may simply be attempted again."""
        return not self.success and self.error_kind in RETRYABLE_ERRORS


@dataclass(frozen=True)
class UploadRecord:
    """History entry for a completed upload."""

    file_name: str
    local_path: Path
    remote_path: str
    timestamp: datetime
    action: str | None
    remote_id: int | None


@dataclass(frozen=True)
class ConnectionInfo:
    """Result of the endpoint health check."""

    version: str
    timestamp: str | None
    user_id: int | None
    user_name: str | None
    role: str | None
    message: str | None = None


@dataclass(frozen=True)
class DeleteResult:
    """Result of a remote delete."""

    file_id: int
    message: str | None = None


@dataclass(frozen=True)
class FolderNode:
    """Folder in the remote file cabinet."""

    id: int
    name: str
    parent_id: int | None


@dataclass(frozen=True)
class FileRecord:
    """File in the remote file cabinet, matched by (name, folder_id)."""

    id: int
    name: str
    folder_id: int
