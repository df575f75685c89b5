"""MCP server builder for permaskills.

This module creates a `FastMCP <https://pypi.org/project/mcp/>`_ server
that lets an agent search, install and publish skills in the permanent
registry.

Tools
-----

==============================  =============================================
Tool name                       Description
==============================  =============================================
``search_skills``               Search the registry by keyword and tags.
``install_skill``               Install a skill and its dependencies.
``publish_skill``               Publish a local skill directory.
``ping``                        Health check.
==============================  =============================================

Every tool returns a JSON document.  Failures raised by the pipelines
are returned as::

    {"status": "error", "errorType": "...", "message": "...", "solution": "..."}

with secret-looking substrings redacted.  Unexpected exceptions are left
to FastMCP, which reports them as tool errors.

Example::

    from permaskills_mcp_server import build_server, load_config

    server = build_server(load_config())
    server.run()  # stdio by default
"""

from __future__ import annotations

import functools
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from permaskills_ao import AORegistryClient, RegistryEndpoints
from permaskills_arweave import ArweaveObjectStore, GatewayConfig, KeyfileSigningProvider
from permaskills_core import (
    ConfigurationError,
    InstallPipeline,
    PermaskillsError,
    PublishPipeline,
    SearchService,
    SigningProvider,
    redact_secrets,
    resolve_install_location,
)
from permaskills_mcp_server.config import ServerConfig

_logger = logging.getLogger(__name__)

SigningProviderFactory = Callable[[], SigningProvider]


def translate_error(exc: PermaskillsError) -> dict[str, Any]:
    """Render *exc* as the tool error payload."""
    return {
        "status": "error",
        "errorType": type(exc).__name__,
        "message": redact_secrets(exc.message),
        "solution": redact_secrets(exc.solution) if exc.solution else None,
    }


def _missing_wallet() -> SigningProvider:
    raise ConfigurationError(
        "No wallet configured for publishing",
        config_key="wallet",
        solution="Set 'wallet' in .skillsrc or the ARWEAVE_WALLET environment variable",
    )


# ------------------------------------------------------------------
# Server builder
# ------------------------------------------------------------------


def create_mcp_server(
    search: SearchService,
    install: InstallPipeline,
    publish: PublishPipeline,
    *,
    name: str,
    instructions: str | None = None,
    signing_provider_factory: SigningProviderFactory | None = None,
    on_shutdown: Sequence[Callable[[], Awaitable[None]]] = (),
) -> FastMCP:
    """Build an MCP server around the search, install and publish services.

    Args:
        search: Service backing ``search_skills``.
        install: Pipeline backing ``install_skill``.
        publish: Pipeline backing ``publish_skill``.
        name: Display name for the MCP server.
        instructions: Optional server-level instructions sent to the
            MCP client during initialization.
        signing_provider_factory: Creates a fresh signing provider for
            each publish.  Without one, ``publish_skill`` reports a
            configuration error.
        on_shutdown: Coroutine functions awaited, in order, when the
            server stops.

    Returns:
        A configured :class:`~mcp.server.fastmcp.FastMCP` server
        instance, ready for ``server.run()``.
    """

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            for close in on_shutdown:
                await close()

    mcp = FastMCP(name, instructions=instructions, lifespan=lifespan)
    wallet_factory = signing_provider_factory or _missing_wallet

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    @mcp.tool()
    async def search_skills(query: str = "", tags: list[str] | None = None) -> str:
        """Search the skills registry by keyword, optionally filtered by tags (all must match)."""
        try:
            skills = await search.search(query, tags=tags or ())
        except PermaskillsError as exc:
            return json.dumps(translate_error(exc))
        return json.dumps(
            {
                "status": "success",
                "count": len(skills),
                "skills": [s.to_dict() for s in skills],
            }
        )

    @mcp.tool()
    async def install_skill(name: str, version: str | None = None, force: bool = False) -> str:
        """Install a skill and its dependencies.

        Omit *version* to install the latest.  Skills already installed at
        the resolved version are skipped unless *force* is true.
        """
        identifier = f"{name}@{version}" if version else name
        try:
            result = await install.install(identifier, force=force)
        except PermaskillsError as exc:
            return json.dumps(translate_error(exc))
        return json.dumps({"status": "success", **result.to_dict()})

    @mcp.tool()
    async def publish_skill(directory: str) -> str:
        """Publish the skill in a local directory containing SKILL.md."""
        try:
            result = await publish.publish(Path(directory).expanduser(), wallet_factory())
        except PermaskillsError as exc:
            return json.dumps(translate_error(exc))
        return json.dumps({"status": "success", **result.to_dict()})

    @mcp.tool()
    async def ping() -> str:
        """Check that the server is running."""
        return json.dumps({"status": "ok", "server": name, "timestamp": int(time.time() * 1000)})

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @mcp.resource("skills://tools-usage-instructions")
    def skills_tools_usage_instructions() -> str:
        """Workflow instructions explaining how to use the permaskills tools."""
        return _TOOLS_USAGE_INSTRUCTIONS

    return mcp


def build_server(config: ServerConfig) -> FastMCP:
    """Wire the AO registry, Arweave store and pipelines from *config*."""
    endpoint_overrides = {
        key: value
        for key, value in (
            ("process_id", config.registry),
            ("hyperbeam_node", config.hyperbeam_node),
        )
        if value
    }
    gateway_overrides = {
        key: value
        for key, value in (("gateway_url", config.gateway), ("upload_url", config.upload_url))
        if value
    }
    registry = AORegistryClient(RegistryEndpoints.from_env(**endpoint_overrides))
    store = ArweaveObjectStore(GatewayConfig.from_env(**gateway_overrides))
    install_root = resolve_install_location(config.install_location)
    _logger.info("Installing skills into %s", install_root)

    factory: SigningProviderFactory | None = None
    if config.wallet:
        factory = functools.partial(KeyfileSigningProvider, Path(config.wallet).expanduser())

    return create_mcp_server(
        SearchService(registry),
        InstallPipeline(registry, store, install_root=install_root),
        PublishPipeline(registry, store),
        name=config.name,
        instructions=config.instructions,
        signing_provider_factory=factory,
        on_shutdown=(registry.aclose, store.aclose),
    )


_TOOLS_USAGE_INSTRUCTIONS = """\
## How to Use the Skills Registry

Skills are versioned instruction bundles stored permanently on Arweave \
and indexed by a registry process on AO.

### Workflow

1. **Find a skill** with `search_skills(query, tags)`. Results are \
sorted by relevance; each carries name, version, description and tags.
2. **Install it** with `install_skill(name, version)`. Dependencies \
are installed too; the lock file records what was installed.
3. **Publish your own** with `publish_skill(directory)`. The directory \
needs a SKILL.md whose frontmatter has name, version, description and \
author.

### Errors

Failed calls return `status: "error"` with a `solution` field. Follow \
the solution before retrying.\
"""
