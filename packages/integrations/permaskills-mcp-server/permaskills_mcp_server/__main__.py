"""Run the permaskills MCP server.

Usage::

    python -m permaskills_mcp_server
    python -m permaskills_mcp_server --config server.yaml
    python -m permaskills_mcp_server --transport streamable-http

Without ``--config`` the server reads ``./.skillsrc`` or ``~/.skillsrc``
(see :mod:`permaskills_mcp_server.config`); environment variables
override file values.

MCP client integration (stdio transport)::

    {
        "command": "python",
        "args": ["-m", "permaskills_mcp_server"],
        "env": {"ARWEAVE_WALLET": "/path/to/wallet.json"}
    }
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from permaskills_core import PermaskillsError, exit_code_for, format_error


def main() -> None:
    """Parse CLI arguments, load config, and start the MCP server."""
    parser = argparse.ArgumentParser(
        prog="permaskills_mcp_server",
        description="Start the permaskills MCP server.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a JSON or YAML configuration file (default: .skillsrc lookup).",
    )
    parser.add_argument(
        "--transport",
        default="stdio",
        choices=["stdio", "streamable-http"],
        help="MCP transport type (default: stdio).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print startup errors as JSON with their context.",
    )
    args = parser.parse_args()

    if args.config is not None and not args.config.exists():
        print(f"Error: config file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    from permaskills_mcp_server.config import load_config
    from permaskills_mcp_server.logs import configure_logging
    from permaskills_mcp_server.server import build_server

    try:
        config = load_config(args.config)
        configure_logging(config.log_level)
        server = build_server(config)
    except PermaskillsError as exc:
        print(format_error(exc, verbose=args.verbose), file=sys.stderr)
        sys.exit(int(exit_code_for(exc)))

    server.run(transport=args.transport)


if __name__ == "__main__":
    main()
