"""Static File Resolver -- serve files from under a root directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

logger = logging.getLogger("tsss.static_files")

DEFAULT_EXTENSION = ".html"
# Anything not listed here is served as plain text
DEFAULT_MIME_TYPE = "text/plain"

MIME_TYPES = {
    ".ico": "image/x-icon",
    ".html": "text/html",
    ".htm": "text/html",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".map": "application/json",
    ".json": "application/json",
    ".css": "text/css",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".svg": "image/svg+xml",
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".wasm": "application/wasm",
    ".txt": "text/plain",
}


class PathOutsideRootError(ValueError):
    """The requested path resolves outside the served root."""


def mime_type_for(extension: str) -> str:
    return MIME_TYPES.get(extension.lower(), DEFAULT_MIME_TYPE)


def is_subpath(root: str | Path, path: str | Path) -> bool:
    """True when ``path`` is ``root`` itself or lies beneath it."""
    relative = os.path.relpath(path, root)
    if os.path.isabs(relative):
        return False
    return relative != os.pardir and not relative.startswith(os.pardir + os.sep)


def resolve_request_path(request_path: str, root: str | Path) -> Path:
    """Resolve a URL path against ``root`` without following symlinks.

    Raises:
        PathOutsideRootError: If the result is not a descendant of ``root``.
    """
    root = os.path.abspath(root)
    # "/a/b" must stay under root rather than jump to the filesystem root
    resolved = os.path.abspath(os.path.join(root, request_path.lstrip("/\\")))
    if not is_subpath(root, resolved):
        raise PathOutsideRootError(f"File {resolved} is outside of {root}")
    return Path(resolved)


async def serve_file(request_path: str, root: str | Path) -> Response:
    """Serve ``request_path`` from ``root``.

    400 when outside the root, 404 when missing, 500 when the read fails.
    A directory is served through its ``index<ext>`` file, ``<ext>`` being
    the extension of the request (``.html`` when there is none).
    """
    try:
        path = resolve_request_path(request_path, root)
    except PathOutsideRootError as e:
        logger.warning("Rejected request outside root: %s", request_path)
        return PlainTextResponse(str(e), status_code=400)

    if not path.exists():
        return PlainTextResponse(f"File {path} not found!", status_code=404)

    extension = path.suffix or DEFAULT_EXTENSION
    media_type = mime_type_for(extension)
    if path.is_dir():
        path = path / f"index{extension}"

    try:
        data = await run_in_threadpool(path.read_bytes)
    except OSError as e:
        logger.error("Error reading %s: %s", path, e)
        return PlainTextResponse(f"Error getting the file: {e}.", status_code=500)

    return Response(content=data, media_type=media_type)
