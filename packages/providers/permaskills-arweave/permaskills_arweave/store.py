"""Arweave-backed object store.

:class:`ArweaveObjectStore` uploads bundles as signed ANS-104 data items
to a bundler (``POST {upload_url}/v1/tx``) and downloads them from a
gateway (``GET {gateway}/{id}``).  Before a paid upload it asks the
gateway for the price and the wallet balance and refuses to upload when
the balance cannot cover it.  Uploads below :data:`FREE_UPLOAD_BYTES`
are free.

Network failures are retried with a :class:`~permaskills_core.RetryPolicy`.
Retrying an upload re-posts the same signed item, so the bundler sees
it as the same transaction.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field

from permaskills_core import (
    AuthorizationError,
    ConfigurationError,
    DataItemSigner,
    NetworkError,
    ObjectStore,
    RetryPolicy,
    UploadResult,
)

_logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://arweave.net"
DEFAULT_UPLOAD_URL = "https://upload.ardrive.io"

#: Winston per AR.
WINSTON_PER_AR = 10**12

#: Uploads up to this size are free on the bundler.
FREE_UPLOAD_BYTES = 100 * 1024

#: Default HTTP request timeout in seconds.
DEFAULT_TIMEOUT_SECONDS: float = 30.0

#: Downloads larger than this are rejected.
DEFAULT_MAX_DOWNLOAD_BYTES: int = 20 * 1024 * 1024

APP_TAGS: list[tuple[str, str]] = [
    ("App-Name", "Agent-Skills-Registry"),
    ("Content-Type", "application/x-tar+gzip"),
]


class GatewayConfig(BaseModel):
    """Gateway and bundler URLs."""

    gateway_url: str = Field(DEFAULT_GATEWAY_URL, description="Arweave gateway for reads")
    upload_url: str = Field(DEFAULT_UPLOAD_URL, description="Bundler for uploads")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: str
    ) -> GatewayConfig:
        """Build from defaults, then the environment, then *overrides*.

        ``ARWEAVE_GATEWAY`` and ``ARWEAVE_UPLOAD_URL`` are read from *environ*.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, str] = {}
        if environ.get("ARWEAVE_GATEWAY"):
            values["gateway_url"] = environ["ARWEAVE_GATEWAY"]
        if environ.get("ARWEAVE_UPLOAD_URL"):
            values["upload_url"] = environ["ARWEAVE_UPLOAD_URL"]
        values.update(overrides)
        return cls(**values)


def winston_to_ar(winston: int) -> float:
    return winston / WINSTON_PER_AR


def truncate_address(address: str) -> str:
    """Shorten *address* to ``abc123...xyz789`` for display."""
    if len(address) <= 15:
        return address
    return f"{address[:6]}...{address[-6:]}"


class ArweaveObjectStore(ObjectStore):
    """Object store on Arweave.

    The store owns an :class:`httpx.AsyncClient` unless one is passed in.
    Call :meth:`aclose` or use ``async with`` when finished.

    Args:
        config: Gateway and bundler URLs.  Defaults to
            :meth:`GatewayConfig.from_env`.
        client: Optional pre-configured :class:`httpx.AsyncClient`.
        retry: Retry policy for network failures.
        max_download_bytes: Largest accepted download.

    Raises:
        ConfigurationError: If a URL does not use HTTPS.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        retry: RetryPolicy | None = None,
        max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_BYTES,
    ) -> None:
        self._config = config or GatewayConfig.from_env()
        for url in (self._config.gateway_url, self._config.upload_url):
            if urlparse(url).scheme != "https":
                raise ConfigurationError(
                    f"Gateway URL must use HTTPS: {url}",
                    config_key="gateway",
                    solution="Use an https:// gateway URL",
                )
        self._gateway = self._config.gateway_url.rstrip("/")
        self._upload = self._config.upload_url.rstrip("/")
        self._retry = retry or RetryPolicy()
        self._max_download_bytes = max_download_bytes
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(DEFAULT_TIMEOUT_SECONDS), follow_redirects=True
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if it is owned by this store."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ArweaveObjectStore:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def get_price(self, size: int) -> int:
        """Return the gateway's storage price for *size* bytes, in winston."""
        url = f"{self._gateway}/price/{size}"
        resp = await self._retry.run(lambda: self._request("GET", url), name="price")
        return self._parse_winston(resp.text, url)

    async def get_balance(self, address: str) -> int:
        """Return the wallet balance of *address*, in winston."""
        url = f"{self._gateway}/wallet/{address}/balance"
        resp = await self._retry.run(lambda: self._request("GET", url), name="balance")
        return self._parse_winston(resp.text, url)

    @staticmethod
    def _parse_winston(text: str, url: str) -> int:
        try:
            return int(text.strip())
        except ValueError as exc:
            raise NetworkError(
                f"Unexpected answer from {url}: {text[:50]!r}",
                endpoint=url,
                kind=NetworkError.GATEWAY_ERROR,
            ) from exc

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def upload(
        self, blob: bytes, signer: DataItemSigner, *, tags: Sequence[tuple[str, str]] = ()
    ) -> UploadResult:
        cost = 0.0
        if len(blob) > FREE_UPLOAD_BYTES:
            price = await self.get_price(len(blob))
            balance = await self.get_balance(signer.address)
            if balance < price:
                raise AuthorizationError(
                    f"Insufficient funds ({winston_to_ar(balance)} AR) for transaction "
                    f"(estimated cost: {winston_to_ar(price)} AR)",
                    address=truncate_address(signer.address),
                    balance=winston_to_ar(balance),
                    solution=f"Add funds to wallet address {truncate_address(signer.address)}",
                )
            cost = winston_to_ar(price)

        item = await signer.sign(blob, tags=[*APP_TAGS, *tags])
        url = f"{self._upload}/v1/tx"

        async def post() -> httpx.Response:
            return await self._request(
                "POST",
                url,
                content=item.raw,
                headers={"Content-Type": "application/octet-stream"},
            )

        resp = await self._retry.run(post, name="upload")
        content_id = item.id
        try:
            body: Any = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("id"), str) and body["id"]:
            content_id = body["id"]
        _logger.info("Uploaded %d bytes as %s", len(blob), content_id)
        return UploadResult(content_id=content_id, cost=cost)

    async def download(self, content_id: str) -> bytes:
        url = f"{self._gateway}/{content_id}"
        return await self._retry.run(lambda: self._fetch(url, content_id), name="download")

    async def _fetch(self, url: str, content_id: str) -> bytes:
        """Stream *url* into memory, stopping once the size cap is passed."""
        limit = self._max_download_bytes
        too_large = f"Download of {content_id} exceeds {limit} bytes"
        with _mapped_transport_errors(url):
            async with self._client.stream("GET", url) as resp:
                _check_status(resp, url)
                declared = resp.headers.get("Content-Length", "")
                if declared.isdigit() and int(declared) > limit:
                    raise NetworkError(too_large, endpoint=url, kind=NetworkError.GATEWAY_ERROR)
                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > limit:
                        raise NetworkError(
                            too_large, endpoint=url, kind=NetworkError.GATEWAY_ERROR
                        )
        return bytes(body)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        with _mapped_transport_errors(url):
            resp = await self._client.request(method, url, **kwargs)
        _check_status(resp, url)
        return resp


@contextmanager
def _mapped_transport_errors(url: str) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as exc:
        raise NetworkError(
            f"Request to {url} timed out", endpoint=url, kind=NetworkError.TIMEOUT
        ) from exc
    except httpx.HTTPError as exc:
        raise NetworkError(
            f"Request to {url} failed: {exc}",
            endpoint=url,
            kind=NetworkError.CONNECTION_FAILURE,
        ) from exc


def _check_status(resp: httpx.Response, url: str) -> None:
    if resp.status_code == 404:
        raise NetworkError(f"{url} returned 404", endpoint=url, kind=NetworkError.NOT_FOUND)
    if resp.status_code == 402:
        raise AuthorizationError(
            "Upload rejected: payment required",
            solution="Add funds to the wallet and retry",
        )
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise NetworkError(
            f"HTTP {resp.status_code} from {url}",
            endpoint=url,
            kind=NetworkError.GATEWAY_ERROR,
        ) from exc
