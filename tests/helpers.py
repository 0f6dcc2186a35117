"""Shared test helpers for filecabinet_uploader tests."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import re
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote

import httpx

from filecabinet_uploader.cabinet import UpsertResolver
from filecabinet_uploader.signing import Credentials, signature_base_string

RESTLET_URL = "https://1234567.restlets.api.netsuite.com/app/site/hosting/restlet.nl?script=12&deploy=1"

_HEADER_PARAM = re.compile(r'(\w+)="([^"]*)"')


def parse_authorization(header: str) -> dict[str, str]:
    """Split an OAuth Authorization header into its parameters."""
    assert header.startswith("OAuth ")
    return {k: unquote(v) for k, v in _HEADER_PARAM.findall(header)}


def signature_is_valid(request: httpx.Request, credentials: Credentials) -> bool:
    """Recompute the request signature the way the server does."""
    params = parse_authorization(request.headers["Authorization"])
    params.pop("realm", None)
    signature = params.pop("oauth_signature")
    base = signature_base_string(request.method, str(request.url), params)
    key = f"{credentials.consumer_secret}&{credentials.token_secret}"
    expected = base64.b64encode(
        hmac.new(key.encode(), base.encode(), hashlib.sha256).digest()
    ).decode()
    return hmac.compare_digest(signature, expected)


class CabinetEndpoint:
    """httpx handler serving an UpsertResolver the way the RESTlet does.

    Requests are recorded; ``fail`` may return a Response (or raise) to
    simulate endpoint failures for selected requests.
    """

    def __init__(
        self,
        resolver: UpsertResolver,
        credentials: Credentials,
        fail: Callable[[httpx.Request], httpx.Response | None] | None = None,
    ) -> None:
        self.resolver = resolver
        self.credentials = credentials
        self.fail = fail
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail is not None:
            failure = self.fail(request)
            if failure is not None:
                return failure

        if not signature_is_valid(request, self.credentials):
            return httpx.Response(
                401,
                json={"error": {"code": "INVALID_LOGIN_ATTEMPT", "message": "Invalid login attempt."}},
            )

        body: dict[str, Any]
        if request.method == "GET":
            body = self.resolver.handle_get()
        elif request.method == "POST":
            body = self.resolver.handle_post(json.loads(request.content))
        elif request.method == "DELETE":
            body = self.resolver.handle_delete(dict(request.url.params))
        else:
            return httpx.Response(405)
        return httpx.Response(200, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def uploads(self) -> list[dict[str, Any]]:
        """JSON bodies of the POST requests received so far."""
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]


class ClosableTransport(httpx.MockTransport):
    """MockTransport that drops responses once closed, like a torn-down pool."""

    closed = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        response = await super().handle_async_request(request)
        if self.closed:
            raise httpx.ReadError("connection closed")
        return response

    async def aclose(self) -> None:
        self.closed = True
