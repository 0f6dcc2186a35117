"""Exception hierarchy for the filecabinet_uploader library."""

from __future__ import annotations

from collections.abc import Iterable


class FileCabinetError(Exception):
    """Base exception for all filecabinet_uploader errors."""

    pass


class ConfigMissingError(FileCabinetError):
    """Raised when required credentials or settings are absent.

    The missing attribute lists the names of every absent value so the
    caller can report them all at once.
    """

    def __init__(self, missing: Iterable[str], message: str | None = None) -> None:
        self.missing = tuple(missing)
        super().__init__(
            message or f"Missing required configuration: {', '.join(self.missing)}"
        )


class PathTraversalError(FileCabinetError):
    """Raised when a path contains parent-directory segments."""

    pass


class FileTooLargeError(FileCabinetError):
    """Raised when file content exceeds the configured upload limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"File size ({size} bytes) exceeds maximum allowed ({limit} bytes)"
        )


class BuildOutputMissingError(FileCabinetError):
    """Raised when a remapped build output does not exist after the build wait."""

    pass


class NetworkError(FileCabinetError):
    """Raised on connection failures and request timeouts."""

    pass


class RemoteRejectedError(FileCabinetError):
    """Raised when the endpoint answers non-2xx or with success=false."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class ParseError(FileCabinetError):
    """Raised when a response body cannot be decoded."""

    pass


class FolderError(FileCabinetError):
    """Raised when a remote folder query or creation fails."""

    pass
