"""Process wiring -- builds the compiler, build loop and app for one run mode."""

from __future__ import annotations

import asyncio
import errno
import logging
import socket

import uvicorn

from tsss.config import ServerConfig, load_compiler_options
from tsss.engine.artifact_store import ArtifactStore
from tsss.engine.build_loop import BuildLoop
from tsss.engine.compiler import CommandCompiler, DiskOutput, MemoryOutput, OutputTarget

logger = logging.getLogger("tsss.server")


class PortUnavailableError(Exception):
    """The configured listen port cannot be bound."""


def ensure_port_available(host: str, port: int) -> None:
    """Fail fast, before any build starts, if ``host:port`` cannot be bound.

    Raises:
        PortUnavailableError: If the bind fails.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise PortUnavailableError(f"Port {port} on {host} is already in use") from e
            raise PortUnavailableError(f"Cannot bind {host}:{port}: {e}") from e


def make_compiler(config: ServerConfig) -> CommandCompiler:
    """The bundler for ``config``: in memory when watching, on disk for one-shot runs.

    Raises:
        ConfigError: If a compiler config file cannot be loaded.
    """
    output: OutputTarget = DiskOutput(config.out_path) if config.once else MemoryOutput()
    return CommandCompiler(
        config.src_path,
        output,
        load_compiler_options(config),
        root=config.root_path,
        poll_interval=config.poll_interval,
    )


async def build_once(config: ServerConfig, compiler=None) -> int:
    """Run one build without serving; return the process exit code."""
    loop = BuildLoop(compiler or make_compiler(config), ArtifactStore(), once=True)
    loop.start()
    try:
        return await loop.wait_finished()
    finally:
        await loop.stop()


def serve(config: ServerConfig, compiler=None) -> None:
    """Watch and serve until the process is stopped."""
    from tsss.api.app import create_app

    store = ArtifactStore()
    build_loop = BuildLoop(compiler or make_compiler(config), store)
    app = create_app(config=config, store=store, build_loop=build_loop)
    # log_config=None keeps uvicorn on the root handlers configured by the CLI
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
    )


def run(config: ServerConfig) -> int:
    """Entry point for both modes. Returns the exit code."""
    if config.once:
        return asyncio.run(build_once(config))
    ensure_port_available(config.host, config.port)
    serve(config)
    return 0
