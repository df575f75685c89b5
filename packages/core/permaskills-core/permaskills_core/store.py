"""Abstract content-addressed object store.

Bundles are uploaded once and are afterwards reachable forever through
the returned content id.  See :class:`permaskills_arweave.ArweaveObjectStore`
for the concrete implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from permaskills_core.signing import DataItemSigner, Tag


@dataclass(frozen=True)
class UploadResult:
    """Outcome of :meth:`ObjectStore.upload`.

    Attributes:
        content_id: Permanent, globally addressable reference to the blob.
        cost: Storage cost actually charged, in AR.
    """

    content_id: str
    cost: float


class ObjectStore(ABC):
    """Permanent blob storage."""

    @abstractmethod
    async def upload(
        self, blob: bytes, signer: DataItemSigner, *, tags: Sequence[Tag] = ()
    ) -> UploadResult:
        """Store *blob*, paid for and signed by *signer*.

        Raises:
            AuthorizationError: If the signer's balance cannot cover the cost.
            NetworkError: If the upload endpoint cannot be reached.
        """

    @abstractmethod
    async def download(self, content_id: str) -> bytes:
        """Fetch the blob stored under *content_id*.

        Raises:
            NetworkError: With kind ``not_found`` for unknown ids, or
                another kind when the gateway fails.
        """
