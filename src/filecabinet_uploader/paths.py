"""Mapping of locally saved files to upload targets and remote paths.

Everything here is a pure function of its inputs: no filesystem access.

Example:
    >>> target = resolve("src/FileCabinet/SuiteScripts/a/b.js", "/ws")
    >>> target.physical_path
    PosixPath('/ws/dist/FileCabinet/SuiteScripts/a/b.js')
    >>> target.logical_remote_path
    '/SuiteScripts/a/b.js'
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from filecabinet_uploader.exceptions import PathTraversalError
from filecabinet_uploader.models import UploadTarget

DEFAULT_WATCH_FOLDER = "src"
DEFAULT_UPLOAD_FOLDER = "dist"
DEFAULT_ROOT_PATH = "/SuiteScripts"

# Segment that marks the start of the remote path inside a local project tree
ROOT_MARKER = "SuiteScripts"
FILE_CABINET_PREFIX = "FileCabinet/"

_REPEATED_SLASHES = re.compile(r"/+")


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Forward slashes only, no repeated separators, no ``.`` segments."""
    text = os.fspath(path).replace("\\", "/")
    leading = "/" if text.startswith("/") else ""
    segments = [s for s in text.split("/") if s not in ("", ".")]
    return leading + "/".join(segments)


def sanitize_remote_path(path: str) -> str:
    """Clean a remote path and give it exactly one leading slash."""
    clean = _REPEATED_SLASHES.sub("/", path.strip().replace("\\", "/"))
    if not clean.startswith("/"):
        clean = "/" + clean
    return clean


def check_relative_path(path: str | os.PathLike[str]) -> None:
    """Reject paths that contain parent-directory segments.

    Raises:
        PathTraversalError: If any segment is ``..``
    """
    text = os.fspath(path).replace("\\", "/")
    if ".." in text.split("/"):
        raise PathTraversalError(f"Path traversal (..) is not allowed: {text}")


def split_remote_path(path: str) -> tuple[str, str]:
    """Split a remote path into (folder_path, file_name).

    The folder path has no leading or trailing slash; it is empty for files
    directly under the root.
    """
    parts = path.strip("/").split("/")
    file_name = parts.pop()
    return "/".join(parts), file_name


def relative_to_workspace(
    saved_path: str | os.PathLike[str], workspace_root: str | os.PathLike[str]
) -> str:
    """Workspace-relative posix form of *saved_path*.

    Relative inputs are assumed to already be relative to the workspace.
    """
    saved = os.fspath(saved_path)
    if os.path.isabs(saved):
        saved = os.path.relpath(saved, os.fspath(workspace_root))
    return normalize_path(saved)


def remote_path_for(
    relative_path: str,
    upload_folder: str = DEFAULT_UPLOAD_FOLDER,
    root_remote_path: str = DEFAULT_ROOT_PATH,
) -> str:
    """Logical remote path for a workspace-relative physical path.

    Strips the upload folder and ``FileCabinet/`` prefixes, then keeps
    everything from the first ``SuiteScripts`` directory onward. Paths
    without that marker are placed under *root_remote_path*.
    """
    path = normalize_path(relative_path).lstrip("/")
    upload = normalize_path(upload_folder).strip("/")

    if upload and path.startswith(upload + "/"):
        path = path[len(upload) + 1 :]
    if path.startswith(FILE_CABINET_PREFIX):
        path = path[len(FILE_CABINET_PREFIX) :]

    segments = path.split("/")
    for index, segment in enumerate(segments[:-1]):
        if segment.lower() == ROOT_MARKER.lower():
            return "/" + "/".join(segments[index:])

    return sanitize_remote_path(root_remote_path.strip("/") + "/" + path)


def resolve(
    saved_path: str | os.PathLike[str],
    workspace_root: str | os.PathLike[str],
    watch_folder: str = DEFAULT_WATCH_FOLDER,
    upload_folder: str = DEFAULT_UPLOAD_FOLDER,
    root_remote_path: str = DEFAULT_ROOT_PATH,
) -> UploadTarget:
    """Work out which file to upload for a save event and where it goes.

    When the saved file lives under *watch_folder* and *upload_folder*
    differs, the file actually sent is the sibling under *upload_folder*
    (a build output). Files outside the watch folder pass through unchanged.

    Args:
        saved_path: Path of the file that was saved (absolute or workspace-relative)
        workspace_root: Workspace directory
        watch_folder: Folder whose saves trigger uploads
        upload_folder: Folder the uploaded bytes are read from
        root_remote_path: Remote folder for files without a ``SuiteScripts`` segment

    Returns:
        UploadTarget describing the physical file and its remote path
    """
    root = Path(workspace_root)
    relative = relative_to_workspace(saved_path, workspace_root)
    watch = normalize_path(watch_folder).strip("/")
    upload = normalize_path(upload_folder).strip("/")

    saved = Path(saved_path)
    if not saved.is_absolute():
        saved = root / relative

    if upload != watch and relative.startswith(watch + "/"):
        physical_relative = upload + "/" + relative[len(watch) + 1 :]
        physical = root / physical_relative
        remapped = True
    else:
        physical_relative = relative
        physical = saved
        remapped = False

    return UploadTarget(
        physical_path=physical,
        logical_remote_path=remote_path_for(physical_relative, upload, root_remote_path),
        was_remapped=remapped,
        relative_path=physical_relative,
        saved_path=saved,
    )
