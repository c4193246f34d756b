"""Compiled-artifact route -- the latest bundle, or a script describing why not."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Response

from tsss.api.deps import get_store
from tsss.engine.artifact_store import ArtifactStore, BuildState, Failed, NotBuilt, Success

logger = logging.getLogger("api.artifact")

ARTIFACT_ROUTE = "/index.js"
JS_MEDIA_TYPE = "text/javascript"

router = APIRouter(tags=["artifact"])


def diagnostic_script(state: BuildState) -> str:
    """JavaScript that reports a missing or failed build in the browser console."""
    if isinstance(state, NotBuilt):
        return 'console.error("not built yet");'
    if isinstance(state, Failed):
        return "\n".join(f"console.error({json.dumps(str(e))});" for e in state.errors)
    raise TypeError(f"No diagnostic script for {type(state).__name__}")


def render_artifact(state: BuildState) -> str:
    if isinstance(state, Success):
        return state.artifact
    return diagnostic_script(state)


@router.get(ARTIFACT_ROUTE)
async def compiled_artifact(store: ArtifactStore = Depends(get_store)) -> Response:
    """Serve the last completed build. Always 200 unless the handler itself breaks."""
    try:
        body = render_artifact(store.get())
    except Exception as e:
        logger.error("Failed to render %s: %s", ARTIFACT_ROUTE, e, exc_info=True)
        payload = json.dumps({"error": type(e).__name__, "message": str(e)})
        return Response(
            content=f"console.error({payload});",
            status_code=500,
            media_type=JS_MEDIA_TYPE,
        )
    return Response(content=body, media_type=JS_MEDIA_TYPE)
