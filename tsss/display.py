"""Operator experience -- startup banner and build diagnostics on the console."""

from __future__ import annotations

import logging
from typing import Iterable

import click

from tsss.engine.artifact_store import ErrorDetail

SEPARATOR = "-" * 63

BUILT_IN_NAME = "[built-in.html]"


def banner(src: str, html: str | None, port: int) -> str:
    """Text printed once at startup, before the first build."""
    return "\n".join(
        [
            "---",
            f"Building {click.style(src, fg='blue')}",
            f"and serving {click.style(html or BUILT_IN_NAME, fg='red')}",
            f"on {click.style(f'http://localhost:{port}', bold=True)}",
            "---",
        ]
    )


def log_diagnostics(logger: logging.Logger, errors: Iterable[ErrorDetail]) -> None:
    """Log each diagnostic as its own record, delimited for scanning."""
    errors = list(errors)
    logger.error("Build failed with %d error(s)", len(errors))
    for error in errors:
        logger.error("%s\n%s", SEPARATOR, error)
    logger.error(SEPARATOR)
