"""Compiler collaborator -- runs an external bundler and watches the sources.

The bundler (``esbuild`` by default) is driven as a subprocess, the same way
a CLI is wrapped anywhere else in this codebase: build the argv, run it,
parse what comes back. One build cycle ends in exactly one call of the
completion callback with ``(error, diagnostics, read_artifact)``:

* ``error`` -- a :class:`ToolingFailure` when the bundler itself could not be
  run; ``diagnostics`` is empty and ``read_artifact`` is None.
* ``diagnostics`` -- ordered :class:`ErrorDetail` records when the bundler
  exited non-zero because of errors in the watched source.
* ``read_artifact`` -- reads the produced bundle text from the output target.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

from tsss.engine.artifact_store import ErrorDetail, SourceLocation

logger = logging.getLogger("engine.compiler")

ARTIFACT_FILENAME = "index.js"

DEFAULT_ARGS = (
    "--bundle",
    "--sourcemap=inline",
    "--format=iife",
    "--color=false",
    "--log-level=error",
    "--resolve-extensions=.ts,.tsx,.js,.css,.mjs",
)
DEFAULT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".css", ".json")
DEFAULT_IGNORE_DIRS = ("node_modules", ".git", ".hg", ".svn", "__pycache__")

ArtifactReader = Callable[[], str]
CompletionCallback = Callable[
    [BaseException | None, list[ErrorDetail], ArtifactReader | None], None
]

# esbuild: "✘ [ERROR] Expected ";" but found "y"" (plain "X" on Windows consoles)
_ERROR_RE = re.compile(r"^\s*(?:✘|X|×)?\s*\[ERROR\]\s+(?P<message>.+?)\s*$")
# esbuild: "    index.ts:1:8:"
_LOCATION_RE = re.compile(r"^\s+(?P<file>\S.*?):(?P<line>\d+):(?P<column>\d+):\s*$")


class ToolingFailure(Exception):
    """The bundler infrastructure broke (not an error in the user's source)."""


class Compiler(Protocol):
    """Anything that can run a watch session for one fixed entry point."""

    async def watch(self, on_completion: CompletionCallback) -> None: ...


@dataclass
class CompilerOptions:
    """Bundler invocation settings, loadable from a JSON config file."""

    command: list[str] = field(default_factory=lambda: ["esbuild"])
    args: list[str] = field(default_factory=lambda: list(DEFAULT_ARGS))
    tsconfig: str | None = None
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    ignore_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_DIRS))


# ---------------------------------------------------------------------------
# Output targets
# ---------------------------------------------------------------------------


class MemoryOutput:
    """Keep the bundle in memory: the bundler writes it to stdout."""

    out_dir: Path | None = None

    def command_args(self) -> list[str]:
        return []

    def prepare(self) -> None:
        pass

    def capture(self, stdout: bytes) -> ArtifactReader:
        text = stdout.decode("utf-8")
        return lambda: text


class DiskOutput:
    """Write the bundle to ``<out_dir>/index.js``."""

    def __init__(self, out_dir: str | Path, filename: str = ARTIFACT_FILENAME) -> None:
        self.out_dir = Path(out_dir)
        self.path = self.out_dir / filename

    def command_args(self) -> list[str]:
        return [f"--outfile={self.path}"]

    def prepare(self) -> None:
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def capture(self, stdout: bytes) -> ArtifactReader:
        return lambda: self.path.read_text(encoding="utf-8")


OutputTarget = MemoryOutput | DiskOutput


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def parse_diagnostics(stderr: str) -> list[ErrorDetail]:
    """Parse bundler stderr into diagnostics, preserving reported order.

    Each ``[ERROR] message`` line starts a record; the first
    ``file:line:column:`` line before the next record is its location.
    """
    errors: list[ErrorDetail] = []
    message: str | None = None
    location: SourceLocation | None = None

    for line in stderr.splitlines():
        m = _ERROR_RE.match(line)
        if m:
            if message is not None:
                errors.append(ErrorDetail(message=message, location=location))
            message, location = m.group("message"), None
            continue
        if message is not None and location is None:
            loc = _LOCATION_RE.match(line)
            if loc:
                location = SourceLocation(
                    file=loc.group("file"),
                    line=int(loc.group("line")),
                    column=int(loc.group("column")),
                )

    if message is not None:
        errors.append(ErrorDetail(message=message, location=location))
    return errors


# ---------------------------------------------------------------------------
# Source watcher
# ---------------------------------------------------------------------------

Snapshot = dict[str, int]


class SourceWatcher:
    """Polls modification times of source files under ``root``."""

    def __init__(
        self,
        root: str | Path,
        *,
        extensions: list[str] | tuple[str, ...] = DEFAULT_EXTENSIONS,
        ignore_dirs: list[str] | tuple[str, ...] = DEFAULT_IGNORE_DIRS,
        interval: float = 0.1,
    ) -> None:
        self.root = Path(root)
        self.extensions = tuple(extensions)
        self.ignore_dirs = set(ignore_dirs)
        self.interval = interval

    def snapshot(self) -> Snapshot:
        """Map every watched file path to its mtime in nanoseconds."""
        found: Snapshot = {}
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if d not in self.ignore_dirs]
            for name in filenames:
                if not name.endswith(self.extensions):
                    continue
                path = os.path.join(dirpath, name)
                try:
                    found[path] = os.stat(path).st_mtime_ns
                except OSError as e:
                    # Removed between listing and stat, symlink loop, no permission
                    logger.debug("Skipping %s: %s", path, e)
                    continue
        return found

    async def wait_for_change(self, previous: Snapshot) -> Snapshot:
        """Sleep-poll until the tree differs from ``previous``; return the new snapshot."""
        while True:
            await asyncio.sleep(self.interval)
            current = await asyncio.to_thread(self.snapshot)
            if current != previous:
                return current


# ---------------------------------------------------------------------------
# Command compiler
# ---------------------------------------------------------------------------


class CommandCompiler:
    """Compiles one entry point with an external bundler on every source change."""

    def __init__(
        self,
        entry: str | Path,
        output: OutputTarget,
        options: CompilerOptions | None = None,
        *,
        root: str | Path | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        self.entry = Path(entry)
        self.output = output
        self.options = options or CompilerOptions()
        self.root = Path(root) if root is not None else self.entry.parent

        ignore = list(self.options.ignore_dirs)
        if output.out_dir is not None:
            ignore.append(output.out_dir.name)
        self.watcher = SourceWatcher(
            self.root,
            extensions=self.options.extensions,
            ignore_dirs=ignore,
            interval=poll_interval,
        )

    def build_command(self) -> list[str]:
        cmd = [*self.options.command, str(self.entry), *self.options.args]
        if self.options.tsconfig:
            cmd.append(f"--tsconfig={self.options.tsconfig}")
        cmd.extend(self.output.command_args())
        return cmd

    async def build(
        self,
    ) -> tuple[ToolingFailure | None, list[ErrorDetail], ArtifactReader | None]:
        """Run a single compilation.

        Returns:
            ``(error, diagnostics, read_artifact)`` as handed to the
            completion callback.
        """
        cmd = self.build_command()
        logger.debug("Running %s", " ".join(cmd))
        try:
            self.output.prepare()
        except OSError as e:
            return ToolingFailure(f"Cannot prepare output directory: {e}"), [], None
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return (
                ToolingFailure(
                    f"Bundler {self.options.command[0]!r} not found on PATH. "
                    "Install esbuild or point 'command' in the compiler config at a bundler."
                ),
                [],
                None,
            )
        except OSError as e:
            return ToolingFailure(f"Cannot run bundler: {e}"), [], None

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # The bundler must not outlive the watch session
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise
        stderr_text = stderr.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            diagnostics = parse_diagnostics(stderr_text)
            if not diagnostics:
                detail = stderr_text.strip() or (
                    f"{self.options.command[0]} exited with code {proc.returncode}"
                )
                diagnostics = [ErrorDetail(message=detail)]
            return None, diagnostics, None

        if stderr_text.strip():
            logger.debug("Bundler stderr: %s", stderr_text.strip())
        try:
            read_artifact = self.output.capture(stdout)
        except UnicodeDecodeError as e:
            return ToolingFailure(f"Bundler output is not valid UTF-8: {e}"), [], None
        return None, [], read_artifact

    async def watch(self, on_completion: CompletionCallback) -> None:
        """Build now, then rebuild on every change under the root. Never returns.

        A cycle that raises is reported as a :class:`ToolingFailure` and the
        session keeps watching.
        """
        baseline = await asyncio.to_thread(self.watcher.snapshot)
        while True:
            try:
                error, diagnostics, read_artifact = await self.build()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("Build cycle raised", exc_info=True)
                error, diagnostics, read_artifact = ToolingFailure(f"Build cycle failed: {e}"), [], None
            on_completion(error, diagnostics, read_artifact)
            baseline = await self.watcher.wait_for_change(baseline)
            logger.debug("Change detected under %s, rebuilding", self.root)
