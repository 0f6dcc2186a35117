"""Signed HTTP transport for the file cabinet RESTlet."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from filecabinet_uploader.exceptions import NetworkError, ParseError, RemoteRejectedError
from filecabinet_uploader.signing import Credentials, sign

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "filecabinet-uploader"


def parse_response(response: httpx.Response) -> dict[str, Any]:
    """Decode a RESTlet response body, mapping failures to exceptions.

    Raises:
        RemoteRejectedError: On a non-2xx status
        ParseError: If the body is not a JSON object
    """
    status = response.status_code
    text = response.text
    logger.debug(f"Response received: status={status} length={len(text)}")

    if not text.strip():
        if response.is_success:
            return {"success": True, "message": "Request completed"}
        raise RemoteRejectedError(f"HTTP {status}: Empty response", status_code=status)

    try:
        data = json.loads(text)
    except ValueError as e:
        logger.debug(f"Parse error, raw body: {text[:500]}")
        raise ParseError(f"Invalid response: {text[:100]}") from e

    if not response.is_success:
        message = None
        error_code = None
        if isinstance(data, dict):
            error = data.get("error")
            # Platform-level errors nest code and message under "error"
            if isinstance(error, dict):
                message = error.get("message")
                error_code = error.get("code")
            else:
                error_code = error
            message = data.get("message") or message
        raise RemoteRejectedError(
            message or f"HTTP {status}", status_code=status, error_code=error_code
        )

    if not isinstance(data, dict):
        raise ParseError(f"Invalid response: {text[:100]}")
    return data


class SignedTransport:
    """httpx client that signs every request to one RESTlet URL."""

    def __init__(
        self,
        url: str,
        credentials: Credentials,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.credentials = credentials
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": DEFAULT_USER_AGENT},
        )

    async def request(
        self,
        method: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a signed request and return the decoded JSON object.

        The signature covers the full URL including *params*, so it is
        computed after the query string is assembled.

        Raises:
            ConfigMissingError: If credentials are incomplete (before any I/O)
            NetworkError: On connection errors and timeouts
            RemoteRejectedError: On non-2xx responses
            ParseError: On malformed bodies
        """
        url = str(httpx.URL(self.url).copy_merge_params(params)) if params else self.url
        headers = {
            "Authorization": sign(method, url, self.credentials),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        body = json.dumps(payload) if payload is not None else None

        logger.debug(f"Making request: {method} {httpx.URL(url).host}")
        try:
            response = await self._client.request(method, url, content=body, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout after {self.timeout:g}s") from e
        except httpx.TransportError as e:
            reason = str(e) or type(e).__name__
            raise NetworkError(f"Network error: {reason} ({httpx.URL(url).host})") from e
        return parse_response(response)

    async def aclose(self) -> None:
        await self._client.aclose()
