"""tsss -- watch-compile a TypeScript entry point and serve it with static files."""

__version__ = "0.1.0"
