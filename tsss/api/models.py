"""Pydantic response models for the tsss HTTP API."""

from __future__ import annotations

from pydantic import BaseModel


class ErrorDetailResponse(BaseModel):
    """A single build diagnostic."""

    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None


class BuildStatusResponse(BaseModel):
    """Snapshot of the Artifact Store."""

    version: str
    state: str  # not_built, success, failed
    generation: int = 0
    updated_at: str | None = None
    artifact_bytes: int | None = None
    errors: list[ErrorDetailResponse] = []
    build_loop_running: bool = False
