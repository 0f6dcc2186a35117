"""File Cabinet Uploader - push locally edited files to a remote file cabinet.

Example usage:
    from filecabinet_uploader import FileCabinetClient, UploadDispatcher, load_settings

    settings = load_settings("/path/to/project")

    # One-off upload (recommended inside an async context manager)
    async with FileCabinetClient.from_settings(settings) as client:
        response = await client.upload("/SuiteScripts/app/lib.js", b"...")
        print(f"{response.action}: file id {response.file_id}")

    # Debounced uploads driven by save events
    dispatcher = UploadDispatcher(client, settings, "/path/to/project")
    dispatcher.on_save("/path/to/project/src/FileCabinet/SuiteScripts/app/lib.js")
    await dispatcher.drain()
"""

from filecabinet_uploader.client import FileCabinetClient
from filecabinet_uploader.config import ConfigCache, Settings, load_settings
from filecabinet_uploader.dispatcher import UploadDispatcher
from filecabinet_uploader.exceptions import (
    BuildOutputMissingError,
    ConfigMissingError,
    FileCabinetError,
    FileTooLargeError,
    FolderError,
    NetworkError,
    ParseError,
    PathTraversalError,
    RemoteRejectedError,
)
from filecabinet_uploader.models import (
    ConnectionInfo,
    DeleteResult,
    UploadRecord,
    UploadResponse,
    UploadResult,
    UploadState,
    UploadTarget,
)
from filecabinet_uploader.paths import resolve
from filecabinet_uploader.signing import Credentials, sign

__version__ = "0.1.0"

__all__ = [
    # Main client
    "FileCabinetClient",
    "UploadDispatcher",
    # Configuration and signing
    "ConfigCache",
    "Credentials",
    "Settings",
    "load_settings",
    "resolve",
    "sign",
    # Models
    "ConnectionInfo",
    "DeleteResult",
    "UploadRecord",
    "UploadResponse",
    "UploadResult",
    "UploadState",
    "UploadTarget",
    # Exceptions
    "FileCabinetError",
    "ConfigMissingError",
    "PathTraversalError",
    "FileTooLargeError",
    "BuildOutputMissingError",
    "NetworkError",
    "RemoteRejectedError",
    "ParseError",
    "FolderError",
]
