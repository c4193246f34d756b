"""tsss build engine -- artifact store, compiler collaborator, build loop."""

from tsss.engine.artifact_store import (
    ArtifactStore,
    BuildState,
    ErrorDetail,
    Failed,
    NotBuilt,
    SourceLocation,
    Success,
)
from tsss.engine.build_loop import BuildLoop
from tsss.engine.compiler import (
    CommandCompiler,
    CompilerOptions,
    DiskOutput,
    MemoryOutput,
    ToolingFailure,
)

__all__ = [
    "ArtifactStore",
    "BuildState",
    "ErrorDetail",
    "Failed",
    "NotBuilt",
    "SourceLocation",
    "Success",
    "BuildLoop",
    "CommandCompiler",
    "CompilerOptions",
    "DiskOutput",
    "MemoryOutput",
    "ToolingFailure",
]
