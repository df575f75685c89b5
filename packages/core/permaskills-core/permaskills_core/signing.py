"""Signing capabilities for publishing identities.

A :class:`SigningProvider` stands for one publishing identity, whatever
backs it (a keyfile, a seed phrase, a browser wallet).  Pipelines use it
through ``async with`` so that :meth:`SigningProvider.close` runs on
every exit path, and never keep a reference to it in their results.

Example::

    async with KeyfileSigningProvider("wallet.json") as wallet:
        signer = await wallet.create_signer()
        item = await signer.sign(b"payload", tags=[("Action", "Ping")])
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

Tag = tuple[str, str]


@dataclass(frozen=True)
class SignedDataItem:
    """A signed, serialized message ready to be posted.

    Attributes:
        id: Content-derived identifier of the item.
        raw: Binary encoding accepted by upload and messenger endpoints.
        owner: Address of the signing identity.
    """

    id: str
    raw: bytes
    owner: str


class DataItemSigner(ABC):
    """Signs data items on behalf of one identity."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Address of the identity this signer signs for."""

    @abstractmethod
    async def sign(
        self,
        data: bytes,
        *,
        tags: Sequence[Tag] = (),
        target: str | None = None,
    ) -> SignedDataItem:
        """Sign *data* with *tags*, optionally addressed to *target*."""


class SigningProvider(ABC):
    """Source of a :class:`DataItemSigner` for one publishing identity.

    Subclasses implement :meth:`get_address` and :meth:`create_signer`,
    and override :meth:`close` when they hold live resources such as a
    browser connection.
    """

    #: Short label for the provider kind (``"file"``, ``"seed-phrase"``, ...).
    source: str = "unknown"

    @abstractmethod
    async def get_address(self) -> str:
        """Return the identity's address."""

    @abstractmethod
    async def create_signer(self) -> DataItemSigner:
        """Return a signer bound to this identity."""

    async def close(self) -> None:  # noqa: B027
        """Release any held resources.  Safe to call more than once."""

    async def __aenter__(self) -> SigningProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
