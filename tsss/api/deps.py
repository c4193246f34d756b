"""FastAPI dependency injection functions for shared state."""

from __future__ import annotations

from fastapi import Request

from tsss.config import ServerConfig
from tsss.engine.artifact_store import ArtifactStore
from tsss.engine.build_loop import BuildLoop


def get_config(request: Request) -> ServerConfig:
    """Get the resolved ServerConfig from app state."""
    return request.app.state.config


def get_store(request: Request) -> ArtifactStore:
    """Get the shared ArtifactStore from app state."""
    return request.app.state.store


def get_build_loop(request: Request) -> BuildLoop | None:
    """Get the BuildLoop from app state (None when the app serves a store only)."""
    return request.app.state.build_loop
