"""aiohttp HTTP surface."""

from pellernation.api.server import create_app, run_server

__all__ = ["create_app", "run_server"]
