"""FileCabinetClient: async API client for the file cabinet upload RESTlet."""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import Any

import httpx

from filecabinet_uploader._internal.transport import SignedTransport
from filecabinet_uploader.config import DEFAULT_MAX_FILE_SIZE, Settings
from filecabinet_uploader.exceptions import (
    ConfigMissingError,
    FileTooLargeError,
    RemoteRejectedError,
)
from filecabinet_uploader.models import ConnectionInfo, DeleteResult, UploadResponse
from filecabinet_uploader.paths import check_relative_path, sanitize_remote_path
from filecabinet_uploader.signing import Credentials

logger = logging.getLogger(__name__)


def encode_content(content: bytes) -> tuple[str, str]:
    """Text for the JSON body and its encoding name.

    UTF-8 decodable content is sent as text, anything else as base64.
    """
    try:
        return content.decode("utf-8"), "utf8"
    except UnicodeDecodeError:
        return base64.b64encode(content).decode("ascii"), "base64"


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class FileCabinetClient:
    """Client for pushing files to the remote file cabinet.

    Supports both async context manager and manual session patterns.

    Example (context manager - recommended):
        async with FileCabinetClient(url, credentials) as client:
            await client.upload("/SuiteScripts/app/lib.js", b"...")

    Example (manual session):
        client = FileCabinetClient.from_settings(settings)
        await client.test_connection()
        await client.aclose()
    """

    def __init__(
        self,
        restlet_url: str | None,
        credentials: Credentials,
        *,
        timeout: float = 30.0,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            restlet_url: External URL of the RESTlet deployment
            credentials: Account id and OAuth token secrets
            timeout: Request timeout in seconds
            max_file_size: Largest content accepted, in bytes
            transport: Optional httpx transport (tests, proxies)
        """
        self.restlet_url = restlet_url
        self.credentials = credentials
        self.timeout = timeout
        self.max_file_size = max_file_size
        self._transport_override = transport
        self._transport: SignedTransport | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> FileCabinetClient:
        return cls(
            settings.restlet_url,
            settings.credentials,
            timeout=settings.request_timeout,
            max_file_size=settings.max_file_size,
            transport=transport,
        )

    async def __aenter__(self) -> FileCabinetClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def _get_transport(self) -> SignedTransport:
        """Get the signed transport, checking configuration first."""
        if not self.restlet_url:
            raise ConfigMissingError(
                ["RESTLET_URL"], "RESTlet URL not configured. Add NS_RESTLET_URL to .env file."
            )
        self.credentials.validate()
        if self._transport is None:
            self._transport = SignedTransport(
                self.restlet_url,
                self.credentials,
                timeout=self.timeout,
                transport=self._transport_override,
            )
        return self._transport

    async def upload(
        self,
        remote_path: str,
        content: bytes,
        *,
        description: str | None = None,
        folder_id: int | None = None,
    ) -> UploadResponse:
        """Create or update the file at *remote_path*.

        Args:
            remote_path: Logical remote path, e.g. /SuiteScripts/app/lib.js
            content: Raw file bytes
            description: Optional file description
            folder_id: Optional folder id used when the file is created

        Returns:
            UploadResponse with the remote file id and action

        Raises:
            PathTraversalError: If the path contains ``..``
            FileTooLargeError: If content exceeds max_file_size
            ConfigMissingError: If URL or credentials are missing
            NetworkError, RemoteRejectedError, ParseError: On request failure
        """
        remote_path = sanitize_remote_path(remote_path)
        check_relative_path(remote_path)
        if len(content) > self.max_file_size:
            raise FileTooLargeError(len(content), self.max_file_size)

        transport = self._get_transport()
        text, encoding = encode_content(content)
        payload: dict[str, Any] = {"path": remote_path, "content": text, "encoding": encoding}
        if description:
            payload["description"] = description
        if folder_id is not None:
            payload["folder"] = folder_id

        data = await transport.request("POST", payload=payload)
        if not data.get("success"):
            raise RemoteRejectedError(
                data.get("message") or data.get("error") or "Upload failed",
                error_code=data.get("error"),
            )

        logger.info(f"Uploaded {remote_path} ({data.get('action')}, id {data.get('fileId')})")
        return UploadResponse(
            file_id=_optional_int(data.get("fileId")),
            path=data.get("path") or remote_path,
            action=data.get("action"),
            message=data.get("message"),
            duration=_optional_int(data.get("duration")),
        )

    async def upload_file(
        self,
        file_path: str | os.PathLike[str],
        remote_path: str,
        *,
        description: str | None = None,
    ) -> UploadResponse:
        """Read *file_path* and upload its bytes to *remote_path*."""
        content = Path(file_path).read_bytes()
        return await self.upload(remote_path, content, description=description)

    async def test_connection(self) -> ConnectionInfo:
        """Check that the endpoint answers and the credentials are accepted."""
        data = await self._get_transport().request("GET")
        if not data.get("success"):
            raise RemoteRejectedError(
                data.get("message") or "Unknown error", error_code=data.get("error")
            )
        user = data.get("user") or {}
        return ConnectionInfo(
            version=str(data.get("version") or "1.0"),
            timestamp=data.get("timestamp"),
            user_id=_optional_int(user.get("id")),
            user_name=user.get("name"),
            role=str(user["role"]) if user.get("role") is not None else None,
            message=data.get("message"),
        )

    async def delete(
        self, remote_path: str | None = None, *, file_id: int | None = None
    ) -> DeleteResult:
        """Delete a remote file by path or by explicit id."""
        if remote_path is None and file_id is None:
            raise ValueError("Either remote_path or file_id is required")

        params: dict[str, str] = {}
        if file_id is not None:
            params["fileId"] = str(file_id)
        else:
            path = sanitize_remote_path(remote_path or "")
            check_relative_path(path)
            params["path"] = path

        data = await self._get_transport().request("DELETE", params=params)
        if not data.get("success"):
            raise RemoteRejectedError(
                data.get("message") or data.get("error") or "Delete failed",
                error_code=data.get("error"),
            )
        logger.info(f"Deleted remote file {data.get('fileId')}")
        return DeleteResult(
            file_id=_optional_int(data.get("fileId")) or file_id or 0,
            message=data.get("message"),
        )

    async def aclose(self) -> None:
        """Close the client and clean up resources."""
        if self._transport is not None:
            await self._transport.aclose()
            self._transport = None
