"""Catch-all route serving project files. Must be registered last."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from tsss.api.deps import get_config
from tsss.config import ServerConfig
from tsss.static_files import serve_file

router = APIRouter(tags=["static"])


@router.get("/{file_path:path}")
async def static_file(
    file_path: str,
    config: ServerConfig = Depends(get_config),
) -> Response:
    """Any other path is a file under the project root."""
    return await serve_file(file_path, config.root_path)
