"""Artifact Store -- the single current build outcome, swapped atomically."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Position of a diagnostic in the watched source tree."""

    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class ErrorDetail:
    """One compiler diagnostic. Opaque beyond display."""

    message: str
    location: SourceLocation | None = None

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.location}: {self.message}"


@dataclass(frozen=True, slots=True)
class NotBuilt:
    """No build has completed yet."""

    kind: str = field(default="not_built", init=False)


@dataclass(frozen=True, slots=True)
class Success:
    """The last completed build produced ``artifact`` without diagnostics."""

    artifact: str
    kind: str = field(default="success", init=False)


@dataclass(frozen=True, slots=True)
class Failed:
    """The last completed build reported ``errors``, in compiler order."""

    errors: tuple[ErrorDetail, ...]
    kind: str = field(default="failed", init=False)


BuildState = Union[NotBuilt, Success, Failed]


@dataclass(frozen=True, slots=True)
class StoreSnapshot:
    """A state together with its write generation and commit time."""

    state: BuildState
    generation: int
    updated_at: datetime | None


class ArtifactStore:
    """Single-writer / multi-reader cell holding the current BuildState.

    States are immutable, so a reader holding a reference can never observe
    a later write partially applied. The lock only guards the reference swap
    and keeps ``state``, ``generation`` and ``updated_at`` consistent.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = StoreSnapshot(state=NotBuilt(), generation=0, updated_at=None)

    def get(self) -> BuildState:
        """Return the latest fully committed state."""
        with self._lock:
            return self._snapshot.state

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return self._snapshot

    def replace(self, state: BuildState) -> None:
        """Replace the current state wholesale. Called only by the Build Loop."""
        if not isinstance(state, (NotBuilt, Success, Failed)):
            raise TypeError(f"Not a BuildState: {state!r}")
        now = datetime.now(timezone.utc)
        with self._lock:
            self._snapshot = StoreSnapshot(
                state=state,
                generation=self._snapshot.generation + 1,
                updated_at=now,
            )
