"""Endpoint configuration for the AO skill registry.

:class:`RegistryEndpoints` is a pydantic model holding the registry
process id and the URLs of the HyperBEAM node (fast path), the compute
units (dry runs and message results) and the messenger units (writes).
:meth:`RegistryEndpoints.from_env` layers environment overrides over
the defaults:

=========================  ==================
Variable                   Field
=========================  ==================
``AO_REGISTRY_PROCESS_ID``  ``process_id``
``HYPERBEAM_NODE``          ``hyperbeam_node``
``AO_CU_URL``               ``cu_url``
``AO_MU_URL``               ``mu_url``
=========================  ==================
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

DEFAULT_PROCESS_ID = "afj-S1wpWK07iSs9jIttoPJsptf4Db6ubZ_CLODdEpQ"
DEFAULT_HYPERBEAM_NODE = "https://hb.randao.net"
DEFAULT_CU_URL = "https://ur-cu.randao.net"
DEFAULT_CU_FALLBACK_URL = "https://cu.ao-testnet.xyz"
DEFAULT_MU_URL = "https://ur-mu.randao.net"
DEFAULT_MU_FALLBACK_URL = "https://mu.ao-testnet.xyz"

#: Lua module transaction ids for each fast-path function.
FAST_PATH_MODULES: dict[str, str] = {
    "searchSkills": "hjL7_fEj2onw1Uhyk4bmMum8lewZjWrn01IZXsY1utk",
    "getSkill": "oH8kYBrZAv2J1O2htWCMkyaUhdG1IddSFwr3lzCAfEA",
    "getSkillVersions": "qRlxuHc_NnhOnfql1oaJ1CrTbjViDOXcLbkXZpLmJGo",
    "getDownloadStats": "pbdp0HUfN3pnJzYo0mRkF-n9D1lGsg6NYRREEo5BvZ8",
    "info": "fKI_pC6Mo0iRad3CADOkdwPHxTxL3OXfML5curbh3x4",
    "listSkills": "gxeEPGrxbfh4Uf7NEbPdE2iSTgALaz58RX8zrAreAqs",
}

_ENV_OVERRIDES: dict[str, str] = {
    "AO_REGISTRY_PROCESS_ID": "process_id",
    "HYPERBEAM_NODE": "hyperbeam_node",
    "AO_CU_URL": "cu_url",
    "AO_MU_URL": "mu_url",
}


class RegistryEndpoints(BaseModel):
    """Where the registry lives and how to reach it."""

    process_id: str = Field(DEFAULT_PROCESS_ID, description="Registry AO process id")
    hyperbeam_node: str = Field(DEFAULT_HYPERBEAM_NODE, description="HyperBEAM node for fast reads")
    cu_url: str = Field(DEFAULT_CU_URL, description="Primary compute unit")
    cu_fallback_url: str = Field(DEFAULT_CU_FALLBACK_URL, description="Fallback compute unit")
    mu_url: str = Field(DEFAULT_MU_URL, description="Primary messenger unit")
    mu_fallback_url: str = Field(DEFAULT_MU_FALLBACK_URL, description="Fallback messenger unit")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: str
    ) -> RegistryEndpoints:
        """Build endpoints from defaults, then *environ*, then *overrides*.

        Empty environment values are ignored; empty keyword overrides
        are not.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for var, field_name in _ENV_OVERRIDES.items():
            if environ.get(var):
                values[field_name] = environ[var]
        values.update(overrides)
        return cls(**values)

    def cu_urls(self) -> list[str]:
        return _distinct(self.cu_url, self.cu_fallback_url)

    def mu_urls(self) -> list[str]:
        return _distinct(self.mu_url, self.mu_fallback_url)


def _distinct(*urls: str) -> list[str]:
    return list(dict.fromkeys(u.rstrip("/") for u in urls if u))
