"""Build Loop -- drives the compiler's watch session and commits its results."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from tsss.display import log_diagnostics
from tsss.engine.artifact_store import ArtifactStore, ErrorDetail, Failed, Success
from tsss.engine.compiler import ArtifactReader, Compiler

logger = logging.getLogger("engine.build_loop")


@dataclass(frozen=True)
class BuildCompletion:
    """One finished compiler cycle, queued for the state-update task."""

    error: BaseException | None
    diagnostics: tuple[ErrorDetail, ...]
    read_artifact: ArtifactReader | None


class BuildLoop:
    """Owns the single watch session for the process.

    The compiler reports completions through a plain callback; each one is
    queued and applied to the store by one consumer task, so the store only
    ever has one writer and updates land in completion order.

    Completion policy:
        * tooling failure -- logged, store left as it was (a stale success
          keeps being served)
        * diagnostics -- store set to ``Failed``, each error logged in order
        * clean build -- artifact read and store set to ``Success``
    """

    def __init__(
        self,
        compiler: Compiler,
        store: ArtifactStore,
        *,
        once: bool = False,
    ) -> None:
        self.compiler = compiler
        self.store = store
        self.once = once
        self.exit_code: int | None = None
        self._queue: asyncio.Queue[BuildCompletion] | None = None
        self._watch_task: asyncio.Task | None = None
        self._update_task: asyncio.Task | None = None
        self._finished = asyncio.Event()

    @property
    def started(self) -> bool:
        return self._watch_task is not None

    def start(self) -> None:
        """Begin watching. Returns immediately; must be called from a running loop.

        Raises:
            RuntimeError: If the loop was already started.
        """
        if self.started:
            raise RuntimeError("Build loop already started")
        self._queue = asyncio.Queue()
        self._update_task = asyncio.create_task(self._apply_completions())
        self._watch_task = asyncio.create_task(self._watch())
        logger.info("Build loop started (%s mode)", "one-shot" if self.once else "watch")

    async def stop(self) -> None:
        """Cancel the watch session and the state-update task."""
        tasks = [t for t in (self._watch_task, self._update_task) if t and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Build loop stopped")

    async def wait_finished(self) -> int:
        """Wait for the one-shot build to complete and return its exit code."""
        await self._finished.wait()
        return self.exit_code if self.exit_code is not None else 1

    # ── Compiler side ─────────────────────────────────────────────────

    def on_completion(
        self,
        error: BaseException | None,
        diagnostics: list[ErrorDetail],
        read_artifact: ArtifactReader | None,
    ) -> None:
        """Completion callback handed to the compiler; never touches the store."""
        if self._queue is None:
            raise RuntimeError("on_completion called before start()")
        self._queue.put_nowait(
            BuildCompletion(
                error=error,
                diagnostics=tuple(diagnostics),
                read_artifact=read_artifact,
            )
        )

    async def _watch(self) -> None:
        try:
            await self.compiler.watch(self.on_completion)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Watch session crashed: %s", e, exc_info=True)
            if self.once:
                self._finish(1)

    # ── Store side ────────────────────────────────────────────────────

    async def _apply_completions(self) -> None:
        assert self._queue is not None
        while True:
            completion = await self._queue.get()
            try:
                ok = self.apply(completion)
            finally:
                self._queue.task_done()
            if self.once:
                self._finish(0 if ok else 1)
                if self._watch_task and not self._watch_task.done():
                    self._watch_task.cancel()
                return

    def apply(self, completion: BuildCompletion) -> bool:
        """Commit one completion to the store. Returns True for a clean build."""
        if completion.error is not None:
            logger.error("Compiler failure: %s", completion.error)
            return False

        if completion.diagnostics:
            self.store.replace(Failed(errors=completion.diagnostics))
            log_diagnostics(logger, completion.diagnostics)
            return False

        if completion.read_artifact is None:
            logger.error("Compiler reported success without an artifact")
            return False
        try:
            artifact = completion.read_artifact()
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Cannot read compiled artifact: %s", e)
            return False

        self.store.replace(Success(artifact=artifact))
        logger.info("Build succeeded (%d bytes)", len(artifact))
        return True

    def _finish(self, code: int) -> None:
        if self._finished.is_set():
            return
        self.exit_code = code
        self._finished.set()
