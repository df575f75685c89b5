"""MCP server integration for permaskills.

This package bridges :mod:`permaskills_core` and the `Model Context
Protocol <https://modelcontextprotocol.io>`_, providing:

* :func:`create_mcp_server` -- builds a FastMCP server from a
  :class:`~permaskills_core.SearchService`, an
  :class:`~permaskills_core.InstallPipeline` and a
  :class:`~permaskills_core.PublishPipeline`.
* :func:`build_server` -- wires the AO registry and Arweave store from a
  :class:`ServerConfig`.
* CLI entry-point (``python -m permaskills_mcp_server``) for zero-code
  server startup.

Quick start (programmatic)::

    from permaskills_mcp_server import build_server, load_config

    server = build_server(load_config())
    server.run()  # stdio by default

Install::

    pip install permaskills-mcp-server
"""

from permaskills_mcp_server.config import ServerConfig, load_config, resolve_env_vars
from permaskills_mcp_server.logs import RedactingFilter, configure_logging
from permaskills_mcp_server.server import build_server, create_mcp_server, translate_error

__all__ = [
    "RedactingFilter",
    "ServerConfig",
    "build_server",
    "configure_logging",
    "create_mcp_server",
    "load_config",
    "resolve_env_vars",
    "translate_error",
]
