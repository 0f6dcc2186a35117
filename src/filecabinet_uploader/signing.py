"""OAuth 1.0a request signing for token-based RESTlet authentication."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass, fields
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from filecabinet_uploader.exceptions import ConfigMissingError

SIGNATURE_METHOD = "HMAC-SHA256"
OAUTH_VERSION = "1.0"


@dataclass(frozen=True)
class Credentials:
    """Account id plus the four OAuth secrets of an integration token."""

    account_id: str | None = None
    consumer_key: str | None = None
    consumer_secret: str | None = None
    token_id: str | None = None
    token_secret: str | None = None

    def missing(self) -> list[str]:
        """Names of the fields that are empty."""
        return [f.name for f in fields(self) if not getattr(self, f.name)]

    def validate(self) -> None:
        """Raise ConfigMissingError if any of the five values is absent."""
        missing = self.missing()
        if missing:
            raise ConfigMissingError(
                missing,
                "OAuth credentials not configured "
                f"(missing: {', '.join(missing)}). Add them to your .env file.",
            )


def _encode(value: str) -> str:
    """RFC 3986 percent-encoding as OAuth requires."""
    return quote(str(value), safe="~-._")


def _base_url(url: str) -> str:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    if (scheme == "https" and netloc.endswith(":443")) or (
        scheme == "http" and netloc.endswith(":80")
    ):
        netloc = netloc.rsplit(":", 1)[0]
    return urlunsplit((scheme, netloc, parts.path or "/", "", ""))


def signature_base_string(method: str, url: str, oauth_params: dict[str, str]) -> str:
    """Build the OAuth signature base string for *method* and *url*.

    Query parameters of the URL are signed alongside the oauth parameters.
    """
    params = list(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    params.extend(oauth_params.items())
    normalized = "&".join(
        f"{k}={v}" for k, v in sorted((_encode(k), _encode(v)) for k, v in params)
    )
    return "&".join(
        [method.upper(), _encode(_base_url(url)), _encode(normalized)]
    )


def sign(
    method: str,
    url: str,
    credentials: Credentials,
    *,
    timestamp: int | None = None,
    nonce: str | None = None,
) -> str:
    """Produce the Authorization header value for one request.

    The account id is embedded as the realm inside the header value; the
    endpoint rejects a realm sent any other way. A new timestamp and nonce
    are generated per call unless given explicitly.

    Raises:
        ConfigMissingError: If any credential is missing
    """
    credentials.validate()

    oauth_params = {
        "oauth_consumer_key": credentials.consumer_key,
        "oauth_nonce": nonce or secrets.token_hex(16),
        "oauth_signature_method": SIGNATURE_METHOD,
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
        "oauth_token": credentials.token_id,
        "oauth_version": OAUTH_VERSION,
    }

    base_string = signature_base_string(method, url, oauth_params)
    key = f"{_encode(credentials.consumer_secret)}&{_encode(credentials.token_secret)}"
    digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha256)
    oauth_params["oauth_signature"] = base64.b64encode(digest.digest()).decode("ascii")

    header_params = ", ".join(
        f'{_encode(k)}="{_encode(v)}"' for k, v in sorted(oauth_params.items())
    )
    return f'OAuth realm="{credentials.account_id}", {header_params}'
