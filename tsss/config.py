"""tsss configuration -- layered: CLI flags > TSSS_* env vars > defaults."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from tsss.engine.compiler import CompilerOptions

logger = logging.getLogger("tsss.config")

DEFAULT_PORT = 3333

SOURCE_CANDIDATES = ("index.ts", "index.tsx", "app.ts", "app.tsx")
DOCUMENT_CANDIDATES = ("index.html", "index.htm", "app.html", "app.htm")


class ConfigError(Exception):
    """Raised when a configuration file cannot be loaded."""


def _flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("true", "1", "yes")


def resolve_file(variants: tuple[str, ...] | list[str], root: str | Path) -> str | None:
    """Return the first of ``variants`` that exists under ``root``, or None."""
    for name in variants:
        if (Path(root) / name).exists():
            return name
    return None


def _default_root() -> str:
    return os.environ.get("TSSS_ROOT", os.getcwd())


def _default_src() -> str:
    return os.environ.get("TSSS_SRC") or resolve_file(SOURCE_CANDIDATES, _default_root()) or "index.ts"


def _default_html() -> str | None:
    return os.environ.get("TSSS_HTML") or resolve_file(DOCUMENT_CANDIDATES, _default_root())


@dataclass
class ServerConfig:
    """Resolved settings for one tsss process."""

    root: str = field(default_factory=_default_root)
    src: str = field(default_factory=_default_src)
    # None means no project document was found: serve the built-in one
    html: str | None = field(default_factory=_default_html)
    host: str = field(
        default_factory=lambda: os.environ.get("TSSS_HOST", "127.0.0.1")
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("TSSS_PORT", str(DEFAULT_PORT)))
    )
    tsconfig: str | None = field(
        default_factory=lambda: os.environ.get("TSSS_TSCONFIG")
    )
    compiler_config: str | None = field(
        default_factory=lambda: os.environ.get("TSSS_COMPILER_CONFIG")
    )
    compiler_config_ext: str | None = field(
        default_factory=lambda: os.environ.get("TSSS_COMPILER_CONFIG_EXT")
    )
    once: bool = field(default_factory=lambda: _flag("TSSS_ONCE"))
    out_dir: str = field(
        default_factory=lambda: os.environ.get("TSSS_OUT_DIR", "build")
    )
    poll_interval: float = field(
        default_factory=lambda: float(os.environ.get("TSSS_POLL_INTERVAL", "0.1"))
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("TSSS_LOG_LEVEL", "INFO")
    )

    @property
    def root_path(self) -> Path:
        return Path(self.root).resolve()

    @property
    def src_path(self) -> Path:
        return self.root_path / self.src

    @property
    def out_path(self) -> Path:
        return self.root_path / self.out_dir


# Singleton for convenience
_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the global tsss configuration."""
    global _config
    if _config is None:
        _config = ServerConfig()
    return _config


def set_config(config: ServerConfig) -> None:
    """Install an explicitly built configuration as the global one."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read compiler config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in compiler config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Compiler config {path} must contain a JSON object")
    return data


def load_compiler_options(config: ServerConfig) -> CompilerOptions:
    """Build the compiler options for ``config``.

    ``compiler_config`` is the base (keys it omits keep their defaults);
    ``compiler_config_ext`` is shallow-merged over it, its keys winning.
    Both paths are relative to the project root.

    Raises:
        ConfigError: If a file is unreadable, not JSON, or has unknown keys.
    """
    root = config.root_path
    base: dict[str, Any] = {}
    if config.compiler_config:
        base = _read_json(root / config.compiler_config)
    ext: dict[str, Any] = {}
    if config.compiler_config_ext:
        ext = _read_json(root / config.compiler_config_ext)
    merged = {**base, **ext}

    known = {f.name for f in fields(CompilerOptions)}
    unknown = sorted(set(merged) - known)
    if unknown:
        raise ConfigError(f"Unknown compiler config keys: {', '.join(unknown)}")
    for key in ("command", "args", "extensions", "ignore_dirs"):
        value = merged.get(key)
        if value is not None and (
            not isinstance(value, list) or not all(isinstance(v, str) for v in value)
        ):
            raise ConfigError(f"Compiler config key '{key}' must be a list of strings")
    if merged.get("command") == []:
        raise ConfigError("Compiler config key 'command' must not be empty")

    options = CompilerOptions(**merged)
    if config.tsconfig and options.tsconfig is None:
        options.tsconfig = str(root / config.tsconfig)
    logger.debug("Compiler options: %s", options)
    return options
