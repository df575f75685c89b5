"""AO registry client for permaskills.

This package provides:

* :class:`AORegistryClient` -- a :class:`~permaskills_core.RegistryClient`
  that reads through a HyperBEAM fast path with dry-run fallback, and
  writes signed messages to the registry process.
* :class:`RegistryEndpoints` -- pydantic model of the process id and
  endpoint URLs, with environment overrides.

Install::

    pip install permaskills-ao
"""

from permaskills_ao.client import AORegistryClient, sanitize_query
from permaskills_ao.config import FAST_PATH_MODULES, RegistryEndpoints

__all__ = [
    "AORegistryClient",
    "FAST_PATH_MODULES",
    "RegistryEndpoints",
    "sanitize_query",
]
