"""Entry-document route."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse

from tsss.api.deps import get_config
from tsss.config import ServerConfig
from tsss.static_files import serve_file

BUILT_IN_HTML_PATH = Path(__file__).resolve().parents[2] / "built-in.html"

router = APIRouter(tags=["entry"])


@router.get("/")
async def entry_document(config: ServerConfig = Depends(get_config)) -> Response:
    """The project's HTML document, or the built-in one when none was found."""
    if config.html is None:
        html = await run_in_threadpool(BUILT_IN_HTML_PATH.read_text, encoding="utf-8")
        return HTMLResponse(html)
    return await serve_file(config.html, config.root_path)
