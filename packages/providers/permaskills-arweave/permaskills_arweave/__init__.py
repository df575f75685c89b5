"""Arweave storage and signing for permaskills.

This package provides:

* :class:`ArweaveObjectStore` -- an :class:`~permaskills_core.ObjectStore`
  that uploads bundles through a bundler and downloads them from a
  gateway.
* :class:`KeyfileSigningProvider` -- a :class:`~permaskills_core.SigningProvider`
  backed by an Arweave JWK keyfile.
* :func:`sign_data_item` / :class:`DataItem` -- ANS-104 data item
  encoding shared by uploads and registry messages.

Install::

    pip install permaskills-arweave
"""

from permaskills_arweave.dataitem import DataItem, sign_data_item
from permaskills_arweave.store import (
    ArweaveObjectStore,
    GatewayConfig,
    truncate_address,
    winston_to_ar,
)
from permaskills_arweave.wallet import (
    ArweaveSigner,
    KeyfileSigningProvider,
    jwk_from_key,
    key_from_jwk,
)

__all__ = [
    "ArweaveObjectStore",
    "ArweaveSigner",
    "DataItem",
    "GatewayConfig",
    "KeyfileSigningProvider",
    "jwk_from_key",
    "key_from_jwk",
    "sign_data_item",
    "truncate_address",
    "winston_to_ar",
]
