"""tsss -- TypeScript simple server.

Run it in any folder and it will serve ``./index.html`` from that folder, as
well as any other file, except for ``/index.js``, which is the result of
bundling ``./index.ts``.

Usage:
    tsss [OPTIONS]
    python -m tsss --once      # build to ./build/index.js and exit
"""

from __future__ import annotations

import logging
import sys

import click

from tsss import __version__
from tsss.config import ConfigError, ServerConfig, set_config
from tsss.display import banner
from tsss.server import PortUnavailableError, run


def setup_logging(level: str) -> None:
    """Configure Python logging for the whole process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def apply_cli_overrides(config: ServerConfig, **options) -> ServerConfig:
    """Apply CLI arguments to the config, overriding env/defaults."""
    for name, value in options.items():
        if value is None or value is False:
            continue
        setattr(config, name, value)
    return config


@click.command(context_settings={"help_option_names": ["--help"]})
@click.option("--src", "-s", help="TypeScript source file name.")
@click.option("--html", "-h", help="HTML document served at /.")
@click.option("--port", "-p", type=int, help="Port of the HTTP server.  [default: 3333]")
@click.option("--host", help="Interface to bind.  [default: 127.0.0.1]")
@click.option("--compiler-config", help="JSON file replacing the default compiler options.")
@click.option("--compiler-config-ext", help="JSON file merged over the compiler options.")
@click.option("--tsconfig", "-c", help="TypeScript configuration file.")
@click.option("--once", is_flag=True, help="Build once to --out-dir and exit.")
@click.option("--out-dir", help="Output directory for --once.  [default: build]")
@click.option("--poll-interval", type=float, help="Seconds between source polls.  [default: 0.1]")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.version_option(__version__, prog_name="tsss")
def cli(verbose: bool, **options) -> None:
    """Serve a folder and a continuously rebuilt /index.js bundle."""
    config = apply_cli_overrides(ServerConfig(), **options)
    if verbose:
        config.log_level = "DEBUG"
    setup_logging(config.log_level)
    set_config(config)

    click.echo(banner(config.src, config.html, config.port))

    try:
        code = run(config)
    except ConfigError as e:
        raise click.ClickException(str(e))
    except PortUnavailableError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(code)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
