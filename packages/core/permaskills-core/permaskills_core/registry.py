"""Abstract registry client and the records it returns.

A :class:`RegistryClient` answers read queries about published skills
and performs the two registry mutations, :meth:`~RegistryClient.register_skill`
and :meth:`~RegistryClient.update_skill`.  Concrete clients (for example
:class:`permaskills_ao.AORegistryClient`) own the transport details:
endpoints, fallbacks, retries and caching.

Records are frozen dataclasses built from the registry's JSON with
``from_dict``.  A record that cannot be built raises :class:`ValueError`
(or :class:`KeyError`/:class:`TypeError`); clients translate that into a
:class:`~permaskills_core.RegistryError` with code ``INVALID_STRUCTURE``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from permaskills_core.manifest import DependencyRef, SkillManifest
from permaskills_core.signing import DataItemSigner


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{key}' must be a non-empty string")
    return value


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class SkillMetadata:
    """One registry entry (the latest, or a specific, version of a skill)."""

    name: str
    version: str
    description: str = ""
    author: str = ""
    owner: str = ""
    content_id: str = ""
    tags: tuple[str, ...] = ()
    dependencies: tuple[DependencyRef, ...] = ()
    license: str | None = None
    changelog: str | None = None
    published_at: int | None = None
    updated_at: int | None = None
    download_count: int = 0

    @property
    def identifier(self) -> str:
        return f"{self.name}@{self.version}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SkillMetadata:
        if not isinstance(data, Mapping):
            raise TypeError(f"skill metadata must be an object, got {type(data).__name__}")
        tags = data.get("tags") or []
        deps = data.get("dependencies") or []
        if not isinstance(tags, list) or not isinstance(deps, list):
            raise TypeError("'tags' and 'dependencies' must be arrays")
        return cls(
            name=_require_str(data, "name"),
            version=_require_str(data, "version"),
            description=str(data.get("description") or ""),
            author=str(data.get("author") or ""),
            owner=str(data.get("owner") or ""),
            content_id=str(data.get("arweaveTxId") or ""),
            tags=tuple(str(t) for t in tags),
            dependencies=tuple(DependencyRef.from_value(d) for d in deps),
            license=data.get("license"),
            changelog=data.get("changelog"),
            published_at=_optional_int(data.get("publishedAt")),
            updated_at=_optional_int(data.get("updatedAt")),
            download_count=int(data.get("downloadCount") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "owner": self.owner,
            "arweaveTxId": self.content_id,
            "tags": list(self.tags),
            "dependencies": [{"name": d.name, "version": d.version} for d in self.dependencies],
            "license": self.license,
            "changelog": self.changelog,
            "publishedAt": self.published_at,
            "updatedAt": self.updated_at,
            "downloadCount": self.download_count,
        }


@dataclass(frozen=True)
class SkillPage:
    """One page of :meth:`RegistryClient.list_skills` results."""

    skills: tuple[SkillMetadata, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_next_page(self) -> bool:
        return self.offset + len(self.skills) < self.total

    @property
    def has_prev_page(self) -> bool:
        return self.offset > 0


@dataclass(frozen=True)
class SkillVersions:
    """Every published version of one skill, newest first."""

    versions: tuple[SkillMetadata, ...]
    latest: str
    total: int


@dataclass(frozen=True)
class DownloadStats:
    """Download counters, for one skill or for the whole registry.

    ``skill_name`` is ``None`` for registry-wide statistics, which carry
    ``total_skills`` and the 7/30-day windows instead of per-version
    counts.
    """

    total_downloads: int
    skill_name: str | None = None
    latest_version: str | None = None
    versions: dict[str, int] = field(default_factory=dict)
    total_skills: int | None = None
    downloads_7_days: int | None = None
    downloads_30_days: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DownloadStats:
        if "skillName" in data:
            raw_versions = data.get("versions") or {}
            if isinstance(raw_versions, Mapping):
                raw_versions = list(raw_versions.values())
            return cls(
                total_downloads=int(data["totalDownloads"]),
                skill_name=_require_str(data, "skillName"),
                latest_version=data.get("latestVersion"),
                versions={str(v["version"]): int(v.get("downloads") or 0) for v in raw_versions},
            )
        return cls(
            total_downloads=int(data["downloadsTotal"]),
            total_skills=int(data["totalSkills"]),
            downloads_7_days=_optional_int(data.get("downloads7Days")),
            downloads_30_days=_optional_int(data.get("downloads30Days")),
        )


@dataclass(frozen=True)
class RegistryInfo:
    """Self-description of the registry process."""

    name: str
    version: str
    adp_version: str | None = None
    capabilities: tuple[str, ...] = ()
    handlers: tuple[str, ...] = ()
    message_schemas: dict[str, Any] = field(default_factory=dict)
    documentation: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RegistryInfo:
        process = data["process"]
        if not isinstance(process, Mapping):
            raise TypeError("'process' must be an object")
        return cls(
            name=_require_str(process, "name"),
            version=_require_str(process, "version"),
            adp_version=process.get("adpVersion"),
            capabilities=tuple(process.get("capabilities") or ()),
            handlers=tuple(data.get("handlers") or ()),
            message_schemas=dict(process.get("messageSchemas") or {}),
            documentation=dict(data.get("documentation") or {}),
        )


class RegistryClient(ABC):
    """Abstract interface to the skill registry.

    Read methods raise :class:`~permaskills_core.SkillNotFoundError`
    when the named skill does not exist, :class:`~permaskills_core.RegistryError`
    for unusable answers and :class:`~permaskills_core.NetworkError`
    when no endpoint could be reached.  Write methods additionally raise
    :class:`~permaskills_core.AuthorizationError` when the signer does
    not own the entry or cannot pay for the message.
    """

    @abstractmethod
    async def search_skills(self, query: str) -> list[SkillMetadata]:
        """Return skills whose name, description or tags match *query*.

        An empty query matches every skill.
        """

    @abstractmethod
    async def list_skills(
        self,
        *,
        limit: int = 10,
        offset: int = 0,
        filter_tags: Sequence[str] | None = None,
        filter_name: str | None = None,
        featured: bool | None = None,
    ) -> SkillPage:
        """Return one page of registry entries."""

    @abstractmethod
    async def get_skill(self, name: str, version: str | None = None) -> SkillMetadata:
        """Return the entry for *name* (the latest version unless *version* is given)."""

    @abstractmethod
    async def get_skill_versions(self, name: str) -> SkillVersions:
        """Return every published version of *name*."""

    @abstractmethod
    async def get_download_stats(self, name: str | None = None) -> DownloadStats:
        """Return download counters for *name*, or for the whole registry."""

    @abstractmethod
    async def get_registry_info(self) -> RegistryInfo:
        """Return the registry's self-description."""

    @abstractmethod
    async def register_skill(
        self, manifest: SkillManifest, content_id: str, signer: DataItemSigner
    ) -> str:
        """Create a new registry entry and return the registry message id."""

    @abstractmethod
    async def update_skill(
        self, manifest: SkillManifest, content_id: str, signer: DataItemSigner
    ) -> str:
        """Publish a new version of an existing entry and return the message id."""
