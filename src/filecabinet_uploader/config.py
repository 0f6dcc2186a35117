"""Configuration management.

Settings are read from env files in the workspace root, later files
overriding earlier ones:

    .env            shared project settings
    .env.local      personal overrides (keep out of version control)
    .netsuite.env   alternative name

Every key may be written bare (``ACCOUNT_ID``) or with an ``NS_`` or
``NETSUITE_`` prefix. Keys the files do not set fall back to the process
environment, then to defaults.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from filecabinet_uploader.paths import (
    DEFAULT_ROOT_PATH,
    DEFAULT_UPLOAD_FOLDER,
    DEFAULT_WATCH_FOLDER,
)
from filecabinet_uploader.signing import Credentials

logger = logging.getLogger(__name__)

ENV_FILES = (".env", ".env.local", ".netsuite.env")
KEY_PREFIXES = ("", "NS_", "NETSUITE_")

DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024
DEFAULT_DEBOUNCE_MS = 1000
DEFAULT_WAIT_FOR_BUILD_MS = 500
DEFAULT_REQUEST_TIMEOUT_MS = 30000
DEFAULT_WATCH_PATTERNS = ("*",)
DEFAULT_EXCLUDE_PATTERNS = ("*node_modules/*", "*.map")


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one workspace."""

    account_id: str | None = None
    restlet_url: str | None = None
    consumer_key: str | None = None
    consumer_secret: str | None = None
    token_id: str | None = None
    token_secret: str | None = None
    upload_folder: str = DEFAULT_UPLOAD_FOLDER
    watch_folder: str = DEFAULT_WATCH_FOLDER
    root_path: str = DEFAULT_ROOT_PATH
    debounce_delay: float = DEFAULT_DEBOUNCE_MS / 1000
    wait_for_build: float = DEFAULT_WAIT_FOR_BUILD_MS / 1000
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_MS / 1000
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    watch_patterns: tuple[str, ...] = DEFAULT_WATCH_PATTERNS
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    sources: tuple[str, ...] = field(default=(), compare=False)

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            account_id=self.account_id,
            consumer_key=self.consumer_key,
            consumer_secret=self.consumer_secret,
            token_id=self.token_id,
            token_secret=self.token_secret,
        )

    def missing_credentials(self) -> list[str]:
        """Required keys that have no value, in env-file spelling."""
        missing = [name.upper() for name in self.credentials.missing()]
        if not self.restlet_url:
            missing.insert(0, "RESTLET_URL")
        return missing

    @classmethod
    def from_mapping(
        cls, values: Mapping[str, str | None], *, sources: tuple[str, ...] = ()
    ) -> Settings:
        """Build settings from raw key/value pairs."""

        def get(key: str) -> str | None:
            for prefix in KEY_PREFIXES:
                value = values.get(prefix + key)
                if value:
                    return value.strip()
            return None

        return cls(
            account_id=get("ACCOUNT_ID"),
            restlet_url=get("RESTLET_URL"),
            consumer_key=get("CONSUMER_KEY"),
            consumer_secret=get("CONSUMER_SECRET"),
            token_id=get("TOKEN_ID"),
            token_secret=get("TOKEN_SECRET"),
            upload_folder=get("UPLOAD_FROM") or DEFAULT_UPLOAD_FOLDER,
            watch_folder=get("WATCH_FOLDER") or DEFAULT_WATCH_FOLDER,
            root_path=get("ROOT_PATH") or DEFAULT_ROOT_PATH,
            debounce_delay=_millis(get("DEBOUNCE_DELAY"), DEFAULT_DEBOUNCE_MS),
            wait_for_build=_millis(get("WAIT_FOR_BUILD"), DEFAULT_WAIT_FOR_BUILD_MS),
            request_timeout=_millis(get("REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT_MS),
            max_file_size=_integer(get("MAX_FILE_SIZE"), DEFAULT_MAX_FILE_SIZE),
            watch_patterns=_patterns(get("WATCH_PATTERNS"), DEFAULT_WATCH_PATTERNS),
            exclude_patterns=_patterns(get("EXCLUDE_PATTERNS"), DEFAULT_EXCLUDE_PATTERNS),
            sources=sources,
        )


def _integer(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric setting value: {raw!r}")
        return default


def _millis(raw: str | None, default_ms: int) -> float:
    return _integer(raw, default_ms) / 1000


def _patterns(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if raw is None:
        return default
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def read_env_files(workspace: Path | str) -> tuple[dict[str, str | None], tuple[str, ...]]:
    """Merge the env files of *workspace*, later files overriding earlier.

    Returns the merged values and the names of the files that were read.
    """
    root = Path(workspace)
    merged: dict[str, str | None] = {}
    loaded: list[str] = []
    for name in ENV_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            values = dotenv_values(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to load {name}: {e}")
            continue
        merged.update({k: v for k, v in values.items() if v})
        loaded.append(name)
        logger.debug(f"Loaded settings from: {name}")
    return merged, tuple(loaded)


def load_settings(
    workspace: Path | str, environ: Mapping[str, str] | None = None
) -> Settings:
    """Load settings for *workspace* from its env files and the environment."""
    file_values, sources = read_env_files(workspace)
    env = os.environ if environ is None else environ
    # A key set in a file under any spelling wins over the environment
    merged = {**_without_shadowed(env, file_values), **file_values}
    return Settings.from_mapping(merged, sources=sources)


def _without_shadowed(
    env: Mapping[str, str], file_values: Mapping[str, str | None]
) -> dict[str, str]:
    """Environment entries whose setting is not already given by a file."""
    file_keys = {_bare_key(k) for k in file_values}
    return {k: v for k, v in env.items() if _bare_key(k) not in file_keys}


def _bare_key(key: str) -> str:
    for prefix in ("NETSUITE_", "NS_"):
        if key.startswith(prefix):
            return key[len(prefix):]
    return key


class ConfigCache:
    """Per-workspace settings cache.

    Entries live until invalidate() is called, typically when an env file
    changes.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ
        self._entries: dict[str, Settings] = {}

    @staticmethod
    def _key(workspace: Path | str) -> str:
        return str(Path(workspace).resolve())

    def get(self, workspace: Path | str) -> Settings:
        key = self._key(workspace)
        settings = self._entries.get(key)
        if settings is None:
            settings = load_settings(workspace, self._environ)
            self._entries[key] = settings
        return settings

    def invalidate(self, workspace: Path | str | None = None) -> None:
        """Drop the cached settings of *workspace*, or of all workspaces."""
        if workspace is None:
            self._entries.clear()
        else:
            self._entries.pop(self._key(workspace), None)

    def __contains__(self, workspace: object) -> bool:
        if not isinstance(workspace, (str, Path)):
            return False
        return self._key(workspace) in self._entries


ENV_TEMPLATE = """\
# ============================================
# File Cabinet Auto-Upload Configuration
# ============================================
# Keep this file out of version control: it holds credentials.

# Account ID (Setup > Company > Company Information).
# Sandbox accounts use a suffix, e.g. 1234567_SB1
NS_ACCOUNT_ID=

# External URL of the upload RESTlet deployment
# e.g. https://1234567.restlets.api.netsuite.com/app/site/hosting/restlet.nl?script=123&deploy=1
NS_RESTLET_URL=

# Integration record consumer key and secret
NS_CONSUMER_KEY=
NS_CONSUMER_SECRET=

# Access token id and secret
NS_TOKEN_ID=
NS_TOKEN_SECRET=

# ============================================
# Optional upload settings
# ============================================

# Folder the uploaded files are read from (build output)
NS_UPLOAD_FROM=dist

# Folder whose saves trigger uploads
NS_WATCH_FOLDER=src

# Remote folder for files outside a SuiteScripts tree
NS_ROOT_PATH=/SuiteScripts

# Timings in milliseconds
# NS_DEBOUNCE_DELAY=1000
# NS_WAIT_FOR_BUILD=500
# NS_REQUEST_TIMEOUT=30000

# Comma separated glob lists
# NS_WATCH_PATTERNS=*
# NS_EXCLUDE_PATTERNS=*node_modules/*,*.map
"""

GITIGNORE_ENTRIES = "\n# File cabinet credentials\n.env\n.env.local\n"


def write_env_template(workspace: Path | str) -> Path:
    """Write the settings template into *workspace*.

    Writes ``.env``, or ``.env.example`` when ``.env`` already exists, and
    adds the env files to an existing ``.gitignore`` that does not list them.

    Returns:
        Path of the file written
    """
    root = Path(workspace)
    env_path = root / ".env"
    target = root / ".env.example" if env_path.exists() else env_path
    target.write_text(ENV_TEMPLATE, encoding="utf-8")

    gitignore = root / ".gitignore"
    if gitignore.exists() and ".env" not in gitignore.read_text(encoding="utf-8"):
        with gitignore.open("a", encoding="utf-8") as fh:
            fh.write(GITIGNORE_ENTRIES)
        logger.info("Added .env to .gitignore")

    return target
