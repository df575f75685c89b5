"""Registry client for the skill registry AO process.

This module implements :class:`AORegistryClient`, a
:class:`~permaskills_core.RegistryClient` that talks to the registry
process over plain HTTP with `httpx <https://www.python-httpx.org/>`_.

Reads use two paths:

* **Fast path** -- a ``GET`` against a HyperBEAM node that runs a Lua
  transformation over the process's cached state::

      {node}/{process}~process@1.0/now/~lua@5.3a&module={module}
          /{function}/serialize~json@1.0?{params}

  It has a hard 5 second timeout.  Any failure (transport error,
  non-2xx, bad JSON, or a body whose ``status`` is 400 or more) falls
  through to the slow path.
* **Slow path** -- a dry-run message posted to a compute unit
  (``POST {cu}/dry-run?process-id={process}``), tried against the
  primary compute unit and then the fallback.

Both paths run inside one :class:`~permaskills_core.RetryPolicy` loop,
so a failed fast path never consumes a retry on its own.  Successful
reads are stored in a :class:`~permaskills_core.CacheStore`; cache hits
skip the network entirely.

Writes (``Register-Skill``/``Update-Skill``) are signed data items
posted to a messenger unit.  The message result is read back from a
compute unit so that ownership and funding rejections surface as
:class:`~permaskills_core.AuthorizationError`.  Writes are never
retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
import warnings
from collections.abc import Callable, Mapping, Sequence
from functools import partial
from typing import Any, TypeVar
from urllib.parse import urlparse

import httpx

from permaskills_ao.config import FAST_PATH_MODULES, RegistryEndpoints
from permaskills_core import (
    AuthorizationError,
    CacheStore,
    ConfigurationError,
    DataItemSigner,
    DownloadStats,
    NetworkError,
    PermaskillsError,
    RegistryClient,
    RegistryError,
    RegistryErrorCode,
    RegistryInfo,
    RetryPolicy,
    SkillManifest,
    SkillMetadata,
    SkillNotFoundError,
    SkillPage,
    SkillVersions,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Hard timeout for fast-path reads, in seconds.
FAST_PATH_TIMEOUT_SECONDS: float = 5.0

#: Timeout for dry runs, message posts and result reads, in seconds.
SLOW_PATH_TIMEOUT_SECONDS: float = 30.0

#: Free-text queries are truncated to this many characters.
MAX_QUERY_LENGTH = 256

#: Page size bounds for :meth:`AORegistryClient.list_skills`.
MAX_PAGE_SIZE = 100

_PROTOCOL_TAGS: list[tuple[str, str]] = [
    ("Data-Protocol", "ao"),
    ("Variant", "ao.TN.1"),
    ("Type", "Message"),
    ("SDK", "permaskills"),
]

_MISSING = object()


def sanitize_query(query: str) -> str:
    """Trim *query* and cap it at :data:`MAX_QUERY_LENGTH` characters."""
    return query.strip()[:MAX_QUERY_LENGTH]


def _decode_json(text: str, what: str, endpoint: str | None) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise RegistryError(
            f"{what} is not valid JSON", code=RegistryErrorCode.PARSE_ERROR, endpoint=endpoint
        ) from exc


def _build(factory: Callable[[], T], what: str, endpoint: str | None = None) -> T:
    """Run a record constructor, mapping shape errors to ``INVALID_STRUCTURE``."""
    try:
        return factory()
    except (KeyError, TypeError, ValueError, AttributeError, PermaskillsError) as exc:
        raise RegistryError(
            f"Unexpected {what} structure: {exc}",
            code=RegistryErrorCode.INVALID_STRUCTURE,
            endpoint=endpoint,
        ) from exc


def _skills_from(items: Any, endpoint: str | None = None) -> tuple[SkillMetadata, ...]:
    if not isinstance(items, list):
        raise RegistryError(
            f"Expected an array of skills, got {type(items).__name__}",
            code=RegistryErrorCode.INVALID_STRUCTURE,
            endpoint=endpoint,
        )
    return tuple(
        _build(partial(SkillMetadata.from_dict, item), "skill", endpoint) for item in items
    )


def _page_from(data: Any, endpoint: str | None = None) -> SkillPage:
    def build() -> SkillPage:
        pagination = data.get("pagination") or data
        return SkillPage(
            skills=_skills_from(data["skills"], endpoint),
            total=int(pagination["total"]),
            limit=int(pagination["limit"]),
            offset=int(pagination["offset"]),
        )

    return _build(build, "skill list", endpoint)


def _versions_from(data: Any, endpoint: str | None = None) -> SkillVersions:
    def build() -> SkillVersions:
        versions = _skills_from(data["versions"], endpoint)
        return SkillVersions(
            versions=versions,
            latest=str(data.get("latest") or (versions[0].version if versions else "")),
            total=int(data.get("total", len(versions))),
        )

    return _build(build, "version list", endpoint)


class AORegistryClient(RegistryClient):
    """Registry client backed by the AO registry process.

    The client owns an :class:`httpx.AsyncClient` unless one is passed
    in, in which case the caller is responsible for closing it.  Call
    :meth:`aclose` or use ``async with`` when finished.

    Args:
        endpoints: Registry location.  Defaults to
            :meth:`RegistryEndpoints.from_env`.
        cache: Shared read cache.  A private one is created if omitted.
        retry: Retry policy wrapping each read.
        client: Optional pre-configured :class:`httpx.AsyncClient`.
        use_fast_path: Set to ``False`` to always use dry runs.
        fast_path_timeout: Fast-path timeout in seconds.
        slow_path_timeout: Dry-run and write timeout in seconds.

    Raises:
        ConfigurationError: If no registry process id is configured.

    Example::

        async with AORegistryClient() as registry:
            skill = await registry.get_skill("pdf-tools")
            print(skill.identifier, skill.content_id)
    """

    def __init__(
        self,
        endpoints: RegistryEndpoints | None = None,
        *,
        cache: CacheStore | None = None,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        use_fast_path: bool = True,
        fast_path_timeout: float = FAST_PATH_TIMEOUT_SECONDS,
        slow_path_timeout: float = SLOW_PATH_TIMEOUT_SECONDS,
    ) -> None:
        self._endpoints = endpoints or RegistryEndpoints.from_env()
        if not self._endpoints.process_id:
            raise ConfigurationError(
                "Registry process id is not configured",
                config_key="registry",
                solution="Set AO_REGISTRY_PROCESS_ID or 'registry' in .skillsrc",
            )
        for url in (
            self._endpoints.hyperbeam_node,
            *self._endpoints.cu_urls(),
            *self._endpoints.mu_urls(),
        ):
            if urlparse(url).scheme == "http":
                warnings.warn(
                    f"Registry endpoint {url} uses unencrypted HTTP.",
                    UserWarning,
                    stacklevel=2,
                )
        self._cache = cache if cache is not None else CacheStore()
        self._retry = retry or RetryPolicy()
        self._use_fast_path = use_fast_path
        self._fast_deadline = fast_path_timeout
        self._fast_timeout = httpx.Timeout(fast_path_timeout)
        self._slow_timeout = httpx.Timeout(slow_path_timeout)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._slow_timeout)

    @property
    def endpoints(self) -> RegistryEndpoints:
        return self._endpoints

    @property
    def cache(self) -> CacheStore:
        return self._cache

    def clear_cache(self) -> None:
        """Forget every cached read."""
        self._cache.clear()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if it is owned by this client."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AORegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search_skills(self, query: str) -> list[SkillMetadata]:
        q = sanitize_query(query)
        if q:
            tags = [("Action", "Search-Skills"), ("Query", q)]

            def from_slow(data: Any) -> tuple[SkillMetadata, ...]:
                return _skills_from(data)

        else:
            # Search-Skills rejects an empty query; list everything instead.
            tags = [("Action", "List-Skills"), ("Limit", str(MAX_PAGE_SIZE)), ("Offset", "0")]

            def from_slow(data: Any) -> tuple[SkillMetadata, ...]:
                return _page_from(data).skills

        results = await self._read(
            "searchSkills",
            {"query": q},
            slow_tags=tags,
            from_fast=lambda data: _skills_from(data.get("results")),
            from_slow=from_slow,
        )
        return list(results)

    async def list_skills(
        self,
        *,
        limit: int = 10,
        offset: int = 0,
        filter_tags: Sequence[str] | None = None,
        filter_name: str | None = None,
        featured: bool | None = None,
    ) -> SkillPage:
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        offset = max(0, int(offset))
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        tags = [("Action", "List-Skills"), ("Limit", str(limit)), ("Offset", str(offset))]
        if filter_tags:
            params["filterTags"] = json.dumps(list(filter_tags))
            tags.append(("FilterTags", params["filterTags"]))
        if filter_name:
            params["filterName"] = filter_name
            tags.append(("FilterName", filter_name))
        if featured is not None:
            params["featured"] = "true" if featured else "false"
            tags.append(("Featured", params["featured"]))

        return await self._read(
            "listSkills", params, slow_tags=tags, from_fast=_page_from, from_slow=_page_from
        )

    async def get_skill(self, name: str, version: str | None = None) -> SkillMetadata:
        params: dict[str, Any] = {"name": name}
        tags = [("Action", "Get-Skill"), ("Name", name)]
        if version:
            params["version"] = version
            tags.append(("Version", version))

        def from_fast(data: Any) -> SkillMetadata:
            return _build(lambda: SkillMetadata.from_dict(data["skill"]), "skill")

        def from_slow(data: Any) -> SkillMetadata:
            return _build(lambda: SkillMetadata.from_dict(data), "skill")

        return await self._read(
            "getSkill", params, slow_tags=tags, from_fast=from_fast, from_slow=from_slow
        )

    async def get_skill_versions(self, name: str) -> SkillVersions:
        return await self._read(
            "getSkillVersions",
            {"name": name},
            slow_tags=[("Action", "Get-Skill-Versions"), ("Name", name)],
            from_fast=_versions_from,
            from_slow=_versions_from,
        )

    async def get_download_stats(self, name: str | None = None) -> DownloadStats:
        def build(data: Any) -> DownloadStats:
            return _build(lambda: DownloadStats.from_dict(data), "download stats")

        if name:
            return await self._read(
                "getDownloadStats",
                {"name": name},
                slow_tags=[("Action", "Get-Download-Stats"), ("Name", name)],
                from_fast=build,
                from_slow=build,
            )
        # The fast-path function only answers per-skill queries.
        return await self._read(
            "getDownloadStats",
            {"scope": "all"},
            slow_tags=[("Action", "Get-Download-Stats"), ("Scope", "all")],
            from_fast=None,
            from_slow=build,
        )

    async def get_registry_info(self) -> RegistryInfo:
        def build(data: Any) -> RegistryInfo:
            return _build(lambda: RegistryInfo.from_dict(data), "registry info")

        return await self._read(
            "info", {}, slow_tags=[("Action", "Info")], from_fast=build, from_slow=build
        )

    async def _read(
        self,
        function: str,
        params: Mapping[str, Any],
        *,
        slow_tags: list[tuple[str, str]],
        from_fast: Callable[[Any], T] | None,
        from_slow: Callable[[Any], T],
    ) -> T:
        """Cached, retried read: fast path first, then the dry-run slow path."""
        key = CacheStore.make_key(function, params)
        cached = self._cache.get(key, _MISSING)
        if cached is not _MISSING:
            _logger.debug("Cache hit for %s", key)
            return cached

        async def attempt() -> T:
            if from_fast is not None and self._use_fast_path:
                try:
                    return from_fast(await self._fast_path(function, params))
                except PermaskillsError as exc:
                    _logger.debug("Fast path %s failed (%s); using dry run", function, exc)
            return from_slow(await self._dry_run(slow_tags))

        result = await self._retry.run(attempt, name=function)
        self._cache.set(key, result)
        return result

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def register_skill(
        self, manifest: SkillManifest, content_id: str, signer: DataItemSigner
    ) -> str:
        message_id = await self._send(
            [("Action", "Register-Skill"), *_manifest_tags(manifest, content_id)], signer
        )
        self.clear_cache()
        return message_id

    async def update_skill(
        self, manifest: SkillManifest, content_id: str, signer: DataItemSigner
    ) -> str:
        message_id = await self._send(
            [("Action", "Update-Skill"), *_manifest_tags(manifest, content_id)], signer
        )
        self.clear_cache()
        return message_id

    async def _send(self, tags: list[tuple[str, str]], signer: DataItemSigner) -> str:
        """Post a signed message to a messenger unit and check its result."""
        item = await signer.sign(
            b"", tags=[*_PROTOCOL_TAGS, *tags], target=self._endpoints.process_id
        )

        first_error: NetworkError | None = None
        for mu in self._endpoints.mu_urls():
            _logger.debug("Posting %s to %s", dict(tags).get("Action"), mu)
            try:
                resp = await self._request(
                    "POST",
                    f"{mu}/",
                    content=item.raw,
                    headers={"Content-Type": "application/octet-stream"},
                )
                break
            except NetworkError as exc:
                first_error = first_error or exc
                _logger.warning("Messenger unit %s failed: %s", mu, exc)
        else:
            assert first_error is not None
            raise first_error

        body = _decode_json(resp.text, "Messenger response", mu)
        message_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(message_id, str) or not message_id:
            message_id = item.id

        payload = await self._over_compute_units(
            lambda cu: f"{cu}/result/{message_id}",
            method="GET",
        )
        try:
            self._first_message(payload, None)
        except RegistryError as exc:
            mapped = _write_error(exc, signer.address)
            if mapped is exc:
                raise
            raise mapped from exc
        _logger.debug("Message %s accepted", message_id)
        return message_id

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _fast_path(self, function: str, params: Mapping[str, Any]) -> Any:
        module = FAST_PATH_MODULES[function]
        url = (
            f"{self._endpoints.hyperbeam_node.rstrip('/')}/{self._endpoints.process_id}"
            f"~process@1.0/now/~lua@5.3a&module={module}/{function}/serialize~json@1.0"
        )
        request = self._request("GET", url, params=dict(params), timeout=self._fast_timeout)
        try:
            # httpx timeouts apply per read; the deadline covers the whole exchange
            resp = await asyncio.wait_for(request, self._fast_deadline)
        except asyncio.TimeoutError as exc:
            raise NetworkError(
                f"Fast path {url} exceeded {self._fast_deadline:g}s",
                endpoint=url,
                kind=NetworkError.TIMEOUT,
            ) from exc
        data = _decode_json(resp.text, "Fast-path response", url)
        if not isinstance(data, dict):
            raise RegistryError(
                "Fast-path response is not an object",
                code=RegistryErrorCode.INVALID_STRUCTURE,
                endpoint=url,
            )
        status = data.get("status")
        if isinstance(status, int) and status >= 400:
            raise RegistryError(
                str(data.get("error") or f"Fast path returned status {status}"),
                code=RegistryErrorCode.REGISTRY_ERROR,
                endpoint=url,
            )
        return data

    async def _dry_run(self, tags: list[tuple[str, str]]) -> Any:
        pid = self._endpoints.process_id
        body = {
            "Id": "1234",
            "Target": pid,
            "Owner": "1234",
            "Anchor": "0",
            "Data": "1234",
            "Tags": [{"name": k, "value": v} for k, v in [*_PROTOCOL_TAGS, *tags]],
        }
        _logger.debug("Dry run %s", dict(tags).get("Action"))
        payload = await self._over_compute_units(
            lambda cu: f"{cu}/dry-run", method="POST", json=body
        )
        message = self._first_message(payload, None)
        data = message.get("Data")
        if isinstance(data, str):
            return _decode_json(data, "Registry message data", None)
        if data is None:
            raise RegistryError(
                "Registry message has no data", code=RegistryErrorCode.EMPTY_RESPONSE
            )
        return data

    async def _over_compute_units(
        self, url_for: Callable[[str], str], *, method: str, **kwargs: Any
    ) -> Any:
        """Call each compute unit in turn until one gives a usable JSON envelope."""
        first_error: PermaskillsError | None = None
        for cu in self._endpoints.cu_urls():
            url = url_for(cu)
            try:
                resp = await self._request(
                    method, url, params={"process-id": self._endpoints.process_id}, **kwargs
                )
                payload = _decode_json(resp.text, "Compute unit response", url)
                self._check_envelope(payload, url)
                return payload
            except (NetworkError, RegistryError) as exc:
                first_error = first_error or exc
                _logger.debug("Compute unit %s failed: %s", cu, exc)
        assert first_error is not None
        raise first_error

    @staticmethod
    def _check_envelope(payload: Any, endpoint: str) -> None:
        if not isinstance(payload, dict):
            raise RegistryError(
                "Compute unit response is not an object",
                code=RegistryErrorCode.INVALID_STRUCTURE,
                endpoint=endpoint,
            )
        if payload.get("Error"):
            raise RegistryError(
                f"Registry process error: {payload['Error']}",
                code=RegistryErrorCode.REGISTRY_ERROR,
                endpoint=endpoint,
            )
        messages = payload.get("Messages")
        if not isinstance(messages, list):
            raise RegistryError(
                "Compute unit response has no Messages array",
                code=RegistryErrorCode.INVALID_STRUCTURE,
                endpoint=endpoint,
            )
        if not messages:
            raise RegistryError(
                "Registry returned no messages",
                code=RegistryErrorCode.EMPTY_RESPONSE,
                endpoint=endpoint,
            )

    @staticmethod
    def _first_message(payload: dict[str, Any], endpoint: str | None) -> dict[str, Any]:
        message = payload["Messages"][0]
        if not isinstance(message, dict):
            raise RegistryError(
                "Registry message is not an object",
                code=RegistryErrorCode.INVALID_STRUCTURE,
                endpoint=endpoint,
            )
        tags = {
            t.get("name"): t.get("value")
            for t in message.get("Tags") or []
            if isinstance(t, dict)
        }
        if tags.get("Action") == "Error":
            text = str(tags.get("Error") or message.get("Data") or "Registry returned an error")
            if "not found" in text.lower():
                raise SkillNotFoundError(text, endpoint=endpoint)
            raise RegistryError(text, code=RegistryErrorCode.REGISTRY_ERROR, endpoint=endpoint)
        return message

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport and status failures to :class:`NetworkError`."""
        try:
            resp = await self._client.request(method, url, **kwargs)
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
        if resp.status_code == 404:
            raise NetworkError(
                f"{url} returned 404", endpoint=url, kind=NetworkError.NOT_FOUND
            )
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"HTTP {resp.status_code} from {url}",
                endpoint=url,
                kind=NetworkError.GATEWAY_ERROR,
            ) from exc
        return resp


def _manifest_tags(manifest: SkillManifest, content_id: str) -> list[tuple[str, str]]:
    tags = [
        ("Name", manifest.name),
        ("Version", manifest.version),
        ("Description", manifest.description),
        ("Author", manifest.author),
        ("Tags", json.dumps(list(manifest.tags))),
        ("ArweaveTxId", content_id),
        (
            "Dependencies",
            json.dumps([{"name": d.name, "version": d.version} for d in manifest.dependencies]),
        ),
    ]
    if manifest.license:
        tags.append(("License", manifest.license))
    if manifest.changelog:
        tags.append(("Changelog", manifest.changelog))
    return tags


def _write_error(exc: RegistryError, address: str) -> PermaskillsError:
    text = exc.message
    lowered = text.lower()
    if "unauthorized" in lowered or "owner" in lowered:
        return AuthorizationError(
            text,
            address=address,
            solution="Only the skill owner can publish new versions; use a different name",
        )
    if "insufficient" in lowered or "funds" in lowered:
        return AuthorizationError(
            text, address=address, solution="Add funds to the wallet and retry"
        )
    return exc
