"""Build status route -- a JSON view of the Artifact Store."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tsss import __version__
from tsss.api.deps import get_build_loop, get_store
from tsss.api.models import BuildStatusResponse, ErrorDetailResponse
from tsss.engine.artifact_store import ArtifactStore, Failed, Success
from tsss.engine.build_loop import BuildLoop

STATUS_ROUTE = "/__tsss__/status"

router = APIRouter(tags=["status"])


@router.get(STATUS_ROUTE, response_model=BuildStatusResponse)
async def build_status(
    store: ArtifactStore = Depends(get_store),
    build_loop: BuildLoop | None = Depends(get_build_loop),
) -> BuildStatusResponse:
    """Current build outcome, for tooling and humans alike."""
    snap = store.snapshot()
    state = snap.state
    errors: list[ErrorDetailResponse] = []
    if isinstance(state, Failed):
        errors = [
            ErrorDetailResponse(
                message=e.message,
                file=e.location.file if e.location else None,
                line=e.location.line if e.location else None,
                column=e.location.column if e.location else None,
            )
            for e in state.errors
        ]

    return BuildStatusResponse(
        version=__version__,
        state=state.kind,
        generation=snap.generation,
        updated_at=snap.updated_at.isoformat() if snap.updated_at else None,
        artifact_bytes=len(state.artifact) if isinstance(state, Success) else None,
        errors=errors,
        build_loop_running=build_loop is not None and build_loop.started,
    )
