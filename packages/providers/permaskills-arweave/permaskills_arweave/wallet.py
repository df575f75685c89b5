"""Keyfile-backed signing for Arweave wallets.

:class:`KeyfileSigningProvider` loads an Arweave JWK (the ``wallet.json``
exported by Arweave wallets) and hands out :class:`ArweaveSigner`
instances that sign ANS-104 data items with `cryptography
<https://cryptography.io/>`_.  The wallet address is the base64url
SHA-256 of the key's modulus.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives.asymmetric import rsa

from permaskills_arweave.dataitem import b64url_decode, b64url_encode, sign_data_item
from permaskills_core import ConfigurationError, DataItemSigner, SignedDataItem, SigningProvider

_logger = logging.getLogger(__name__)

_JWK_MEMBERS = ("n", "e", "d", "p", "q", "dp", "dq", "qi")


def _b64_int(value: str) -> int:
    return int.from_bytes(b64url_decode(value), "big")


def key_from_jwk(jwk: Mapping[str, Any]) -> rsa.RSAPrivateKey:
    """Build an RSA private key from an Arweave JWK mapping.

    Raises:
        ConfigurationError: If members are missing or inconsistent.
    """
    missing = [m for m in _JWK_MEMBERS if not jwk.get(m)]
    if missing or jwk.get("kty", "RSA") != "RSA":
        raise ConfigurationError(
            f"Wallet key is not an RSA JWK (missing: {', '.join(missing) or 'kty'})",
            config_key="wallet",
            solution="Use the JSON keyfile exported by your Arweave wallet",
        )
    try:
        public = rsa.RSAPublicNumbers(_b64_int(jwk["e"]), _b64_int(jwk["n"]))
        return rsa.RSAPrivateNumbers(
            p=_b64_int(jwk["p"]),
            q=_b64_int(jwk["q"]),
            d=_b64_int(jwk["d"]),
            dmp1=_b64_int(jwk["dp"]),
            dmq1=_b64_int(jwk["dq"]),
            iqmp=_b64_int(jwk["qi"]),
            public_numbers=public,
        ).private_key()
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(
            "Wallet key is invalid",
            config_key="wallet",
            solution="Use the JSON keyfile exported by your Arweave wallet",
        ) from exc


def jwk_from_key(key: rsa.RSAPrivateKey) -> dict[str, str]:
    """Export *key* as an Arweave JWK mapping."""
    priv = key.private_numbers()
    pub = priv.public_numbers

    def enc(n: int) -> str:
        return b64url_encode(n.to_bytes((n.bit_length() + 7) // 8, "big"))

    return {
        "kty": "RSA",
        "n": enc(pub.n),
        "e": enc(pub.e),
        "d": enc(priv.d),
        "p": enc(priv.p),
        "q": enc(priv.q),
        "dp": enc(priv.dmp1),
        "dq": enc(priv.dmq1),
        "qi": enc(priv.iqmp),
    }


def address_of(key: rsa.RSAPrivateKey) -> str:
    n = key.public_key().public_numbers().n
    return b64url_encode(hashlib.sha256(n.to_bytes((n.bit_length() + 7) // 8, "big")).digest())


class ArweaveSigner(DataItemSigner):
    """Signs ANS-104 data items with one Arweave key."""

    def __init__(self, key: rsa.RSAPrivateKey) -> None:
        self._key = key
        self._address = address_of(key)

    @property
    def address(self) -> str:
        return self._address

    async def sign(
        self,
        data: bytes,
        *,
        tags: Sequence[tuple[str, str]] = (),
        target: str | None = None,
    ) -> SignedDataItem:
        item_id, raw = sign_data_item(
            self._key, data, tags=tags, target=target, anchor=secrets.token_bytes(32)
        )
        return SignedDataItem(id=item_id, raw=raw, owner=self._address)


class KeyfileSigningProvider(SigningProvider):
    """Signing provider backed by a JWK keyfile (or an in-memory JWK).

    Args:
        path: Path to the JSON keyfile.
        jwk: Already-loaded JWK mapping, instead of *path*.

    Raises:
        ConfigurationError: If neither or both are given, the file is
            missing, or it does not hold a valid RSA JWK.

    Example::

        async with KeyfileSigningProvider("~/.arweave/wallet.json") as wallet:
            print(await wallet.get_address())
    """

    source = "file"

    def __init__(
        self, path: Path | str | None = None, *, jwk: Mapping[str, Any] | None = None
    ) -> None:
        if (path is None) == (jwk is None):
            raise ConfigurationError(
                "Pass exactly one of 'path' or 'jwk'",
                config_key="wallet",
            )
        if path is not None:
            jwk = self._read_keyfile(Path(path).expanduser())
        assert jwk is not None
        self._key: rsa.RSAPrivateKey | None = key_from_jwk(jwk)

    @staticmethod
    def _read_keyfile(path: Path) -> dict[str, Any]:
        if not path.is_file():
            raise ConfigurationError(
                f"Wallet file not found: {path}",
                config_key="wallet",
                solution="Pass the path of your Arweave keyfile or set 'wallet' in .skillsrc",
            )
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(
                f"Wallet file is not readable JSON: {path}",
                config_key="wallet",
                solution="Use the JSON keyfile exported by your Arweave wallet",
            ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Wallet file is not a JWK object: {path}", config_key="wallet"
            )
        return data

    def _require_key(self) -> rsa.RSAPrivateKey:
        if self._key is None:
            raise ConfigurationError("Wallet has been closed", config_key="wallet")
        return self._key

    async def get_address(self) -> str:
        return address_of(self._require_key())

    async def create_signer(self) -> ArweaveSigner:
        return ArweaveSigner(self._require_key())

    async def close(self) -> None:
        if self._key is not None:
            _logger.debug("Releasing wallet key")
        self._key = None
