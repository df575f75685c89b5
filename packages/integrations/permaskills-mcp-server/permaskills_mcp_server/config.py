"""Pydantic configuration for the permaskills MCP server.

Configuration comes from, in increasing priority:

1. the defaults on :class:`ServerConfig`;
2. a ``.skillsrc`` JSON file -- ``./.skillsrc`` if present, otherwise
   ``~/.skillsrc`` -- or the file passed with ``--config`` (JSON or YAML);
3. environment variables (``ARWEAVE_WALLET``, ``AO_REGISTRY_PROCESS_ID``
   or ``REGISTRY_PROCESS_ID``, ``ARWEAVE_GATEWAY``, ``INSTALL_LOCATION``,
   ``LOG_LEVEL``).

String values may contain ``${VAR}`` placeholders that are resolved
from environment variables at load time.  Unset variables resolve to
an empty string and emit a warning.

Example ``.skillsrc``::

    {
        "wallet": "~/.arweave/wallet.json",
        "registry": "afj-S1wpWK07iSs9jIttoPJsptf4Db6ubZ_CLODdEpQ",
        "gateway": "https://arweave.net",
        "install_location": "local"
    }
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from permaskills_core import ConfigurationError

_logger = logging.getLogger(__name__)

SKILLSRC_FILENAME = ".skillsrc"

_ENV_KEYS: dict[str, str] = {
    "ARWEAVE_WALLET": "wallet",
    "REGISTRY_PROCESS_ID": "registry",
    "AO_REGISTRY_PROCESS_ID": "registry",
    "ARWEAVE_GATEWAY": "gateway",
    "INSTALL_LOCATION": "install_location",
    "LOG_LEVEL": "log_level",
}


class ServerConfig(BaseModel):
    """Top-level configuration for a permaskills MCP server.

    Attributes:
        name: Display name shown to MCP clients during initialization.
        instructions: Optional server-level instructions sent during
            the MCP handshake.
        wallet: Path to an Arweave JWK keyfile, needed for publishing.
        registry: Registry process id override.
        hyperbeam_node: HyperBEAM node override.
        gateway: Arweave gateway override.
        upload_url: Bundler override.
        install_location: ``"global"``, ``"local"`` or a directory.
        log_level: Logging level name.
    """

    name: str = Field("permaskills", description="Display name for the MCP server")
    instructions: str | None = Field(None, description="Optional server-level instructions")
    wallet: str | None = Field(None, description="Path to an Arweave JWK keyfile")
    registry: str | None = Field(None, description="Registry AO process id")
    hyperbeam_node: str | None = Field(None, description="HyperBEAM node URL")
    gateway: str | None = Field(None, description="Arweave gateway URL")
    upload_url: str | None = Field(None, description="Bundler URL")
    install_location: str = Field("global", description="'global', 'local' or a path")
    log_level: str = Field("INFO", description="Logging level")


# ------------------------------------------------------------------
# Loading
# ------------------------------------------------------------------


def find_skillsrc(cwd: Path | None = None, home: Path | None = None) -> Path | None:
    """Return ``./.skillsrc`` if it exists, else ``~/.skillsrc``, else ``None``."""
    for base in (cwd or Path.cwd(), home or Path.home()):
        candidate = base / SKILLSRC_FILENAME
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse a JSON (or ``.yaml``/``.yml``) config file.

    Raises:
        ConfigurationError: If the file is unreadable or malformed.
    """
    try:
        raw = path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw) if path.suffix in (".yaml", ".yml") else json.loads(raw)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"Cannot load config file {path}: {exc}",
            config_key=str(path),
            solution="Fix the file syntax or remove it",
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain an object", config_key=str(path)
        )
    return data


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    home: Path | None = None,
) -> ServerConfig:
    """Load :class:`ServerConfig` from a file and the environment.

    Args:
        path: Explicit config file.  When omitted, ``.skillsrc`` is
            looked up with :func:`find_skillsrc`.
        environ: Environment mapping (defaults to ``os.environ``).
        cwd: Directory searched first for ``.skillsrc``.
        home: Directory searched second for ``.skillsrc``.
    """
    environ = os.environ if environ is None else environ
    if path is None:
        path = find_skillsrc(cwd, home)
    data: dict[str, Any] = read_config_file(path) if path is not None else {}
    if path is not None:
        _logger.debug("Loaded config from %s", path)

    for var, key in _ENV_KEYS.items():
        if environ.get(var):
            data[key] = environ[var]

    return ServerConfig(**resolve_env_vars(data, environ))


# ------------------------------------------------------------------
# Environment variable resolution
# ------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(data: Any, environ: Mapping[str, str] | None = None) -> Any:
    """Recursively resolve ``${VAR}`` placeholders in config data.

    Walks dicts, lists, and strings.  Non-string scalars are returned
    as-is.  Unset variables resolve to an empty string and a warning is
    logged.
    """
    environ = os.environ if environ is None else environ
    if isinstance(data, str):
        return _resolve_env_vars_in_string(data, environ)
    if isinstance(data, dict):
        return {k: resolve_env_vars(v, environ) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item, environ) for item in data]
    return data


def _resolve_env_vars_in_string(value: str, environ: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = environ.get(var_name, "")
        if not env_value:
            _logger.warning("Environment variable '%s' is not set or empty", var_name)
        return env_value

    return _ENV_VAR_RE.sub(_replace, value)
