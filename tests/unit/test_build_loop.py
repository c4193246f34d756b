"""Tests for the Build Loop."""

from __future__ import annotations

import asyncio
import logging

import pytest

from tsss.engine.artifact_store import (
    ArtifactStore,
    ErrorDetail,
    Failed,
    NotBuilt,
    SourceLocation,
    Success,
)
from tsss.engine.build_loop import BuildCompletion, BuildLoop
from tsss.engine.compiler import ToolingFailure


class ScriptedCompiler:
    """Fake compiler replaying completions, then idling like a real watch."""

    def __init__(self, completions: list[tuple]) -> None:
        self.completions = completions
        self.watch_calls = 0
        self.cancelled = False

    async def watch(self, on_completion) -> None:
        self.watch_calls += 1
        try:
            for error, diagnostics, artifact in self.completions:
                reader = (lambda text=artifact: text) if artifact is not None else None
                on_completion(error, diagnostics, reader)
                await asyncio.sleep(0)
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class CrashingCompiler:
    async def watch(self, on_completion) -> None:
        raise RuntimeError("watcher exploded")


async def _drain(loop: BuildLoop) -> None:
    """Let the watch task emit everything and the update task apply it."""
    for _ in range(50):
        await asyncio.sleep(0)
    await loop._queue.join()


# ---------------------------------------------------------------------------
# apply() -- completion policy
# ---------------------------------------------------------------------------


class TestApply:
    def _loop(self) -> BuildLoop:
        return BuildLoop(ScriptedCompiler([]), ArtifactStore())

    def test_success_commits_artifact(self):
        loop = self._loop()
        ok = loop.apply(BuildCompletion(None, (), lambda: "console.log(1)"))
        assert ok is True
        assert loop.store.get() == Success(artifact="console.log(1)")

    def test_diagnostics_commit_failed_in_order(self):
        loop = self._loop()
        errors = (
            ErrorDetail("Unexpected token", SourceLocation("index.ts", 1, 2)),
            ErrorDetail("Cannot find module"),
        )
        ok = loop.apply(BuildCompletion(None, errors, None))
        assert ok is False
        state = loop.store.get()
        assert isinstance(state, Failed)
        assert [e.message for e in state.errors] == ["Unexpected token", "Cannot find module"]

    def test_tooling_failure_keeps_stale_success(self):
        loop = self._loop()
        loop.apply(BuildCompletion(None, (), lambda: "good"))
        ok = loop.apply(BuildCompletion(ToolingFailure("esbuild missing"), (), None))
        assert ok is False
        assert loop.store.get() == Success(artifact="good")
        assert loop.store.snapshot().generation == 1

    def test_tooling_failure_before_any_build_keeps_not_built(self):
        loop = self._loop()
        loop.apply(BuildCompletion(ToolingFailure("boom"), (), None))
        assert loop.store.get() == NotBuilt()

    def test_unreadable_artifact_is_a_tooling_failure(self):
        def broken() -> str:
            raise FileNotFoundError("build/index.js")

        loop = self._loop()
        loop.apply(BuildCompletion(None, (), lambda: "good"))
        assert loop.apply(BuildCompletion(None, (), broken)) is False
        assert loop.store.get() == Success(artifact="good")

    def test_diagnostics_logged_individually_in_order(self, caplog):
        loop = self._loop()
        errors = (ErrorDetail("first"), ErrorDetail("second"))
        with caplog.at_level(logging.ERROR, logger="engine.build_loop"):
            loop.apply(BuildCompletion(None, errors, None))
        messages = [r.getMessage() for r in caplog.records]
        first = next(i for i, m in enumerate(messages) if m.endswith("first"))
        second = next(i for i, m in enumerate(messages) if m.endswith("second"))
        assert first < second
        assert all("-" * 10 in messages[i] for i in (first, second))

    def test_tooling_failure_is_logged(self, caplog):
        loop = self._loop()
        with caplog.at_level(logging.ERROR, logger="engine.build_loop"):
            loop.apply(BuildCompletion(ToolingFailure("esbuild missing"), (), None))
        assert "esbuild missing" in caplog.text


# ---------------------------------------------------------------------------
# Continuous mode
# ---------------------------------------------------------------------------


class TestContinuous:
    @pytest.mark.asyncio
    async def test_start_returns_immediately_and_applies_in_order(self):
        compiler = ScriptedCompiler([
            (None, [ErrorDetail("Unexpected token")], None),
            (None, [], "console.log(1)"),
            (None, [], "console.log(2)"),
        ])
        store = ArtifactStore()
        loop = BuildLoop(compiler, store)
        loop.start()
        assert loop.started
        assert store.get() == NotBuilt()

        await _drain(loop)
        assert store.get() == Success(artifact="console.log(2)")
        assert store.snapshot().generation == 3
        await loop.stop()
        assert compiler.cancelled

    @pytest.mark.asyncio
    async def test_failure_after_success_replaces_it(self):
        compiler = ScriptedCompiler([
            (None, [], "console.log(1)"),
            (None, [ErrorDetail("Unexpected token")], None),
        ])
        loop = BuildLoop(compiler, ArtifactStore())
        loop.start()
        await _drain(loop)
        assert isinstance(loop.store.get(), Failed)
        await loop.stop()

    @pytest.mark.asyncio
    async def test_tooling_failure_preserves_success(self):
        compiler = ScriptedCompiler([
            (None, [], "console.log(1)"),
            (ToolingFailure("bundler crashed"), [], None),
        ])
        loop = BuildLoop(compiler, ArtifactStore())
        loop.start()
        await _drain(loop)
        assert loop.store.get() == Success(artifact="console.log(1)")
        await loop.stop()

    @pytest.mark.asyncio
    async def test_start_twice_raises(self):
        loop = BuildLoop(ScriptedCompiler([]), ArtifactStore())
        loop.start()
        with pytest.raises(RuntimeError):
            loop.start()
        await loop.stop()
        assert loop.exit_code is None

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self):
        loop = BuildLoop(ScriptedCompiler([]), ArtifactStore())
        await loop.stop()
        assert not loop.started

    def test_completion_before_start_raises(self):
        loop = BuildLoop(ScriptedCompiler([]), ArtifactStore())
        with pytest.raises(RuntimeError, match="before start"):
            loop.on_completion(None, [], lambda: "console.log(1)")


# ---------------------------------------------------------------------------
# One-shot mode
# ---------------------------------------------------------------------------


class TestOneShot:
    @pytest.mark.asyncio
    async def test_success_exits_zero_and_stops_watching(self):
        compiler = ScriptedCompiler([(None, [], "console.log(1)"), (None, [], "never")])
        loop = BuildLoop(compiler, ArtifactStore(), once=True)
        loop.start()
        code = await asyncio.wait_for(loop.wait_finished(), timeout=5)
        assert code == 0
        assert loop.store.get() == Success(artifact="console.log(1)")
        await loop.stop()
        assert compiler.cancelled

    @pytest.mark.asyncio
    async def test_diagnostics_exit_one(self):
        compiler = ScriptedCompiler([(None, [ErrorDetail("Unexpected token")], None)])
        loop = BuildLoop(compiler, ArtifactStore(), once=True)
        loop.start()
        assert await asyncio.wait_for(loop.wait_finished(), timeout=5) == 1
        await loop.stop()

    @pytest.mark.asyncio
    async def test_tooling_failure_exits_one(self):
        compiler = ScriptedCompiler([(ToolingFailure("esbuild missing"), [], None)])
        loop = BuildLoop(compiler, ArtifactStore(), once=True)
        loop.start()
        assert await asyncio.wait_for(loop.wait_finished(), timeout=5) == 1
        await loop.stop()

    @pytest.mark.asyncio
    async def test_crashed_watch_exits_one(self):
        loop = BuildLoop(CrashingCompiler(), ArtifactStore(), once=True)
        loop.start()
        assert await asyncio.wait_for(loop.wait_finished(), timeout=5) == 1
        await loop.stop()
