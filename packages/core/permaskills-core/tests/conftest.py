"""In-memory collaborators shared by the core tests."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

import pytest

from permaskills_core import (
    BundleBuilder,
    DataItemSigner,
    DependencyRef,
    DownloadStats,
    NetworkError,
    ObjectStore,
    RegistryClient,
    RegistryInfo,
    SignedDataItem,
    SigningProvider,
    SkillManifest,
    SkillMetadata,
    SkillNotFoundError,
    SkillPage,
    SkillVersions,
    UploadResult,
    dump_manifest,
)

OWNER = "owner-address-aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"


class FakeRegistry(RegistryClient):
    """Registry keeping every published version in a dict."""

    def __init__(self) -> None:
        self.entries: dict[str, list[SkillMetadata]] = {}
        self.lookups: list[tuple[str, str | None]] = []
        self.registered: list[tuple[SkillManifest, str]] = []
        self.updated: list[tuple[SkillManifest, str]] = []

    def add(
        self,
        name: str,
        version: str = "1.0.0",
        *,
        deps: Sequence[str] = (),
        content_id: str | None = None,
        owner: str = OWNER,
        description: str = "",
        tags: Sequence[str] = (),
    ) -> SkillMetadata:
        meta = SkillMetadata(
            name=name,
            version=version,
            description=description or f"The {name} skill.",
            author="Ada",
            owner=owner,
            content_id=content_id if content_id is not None else f"tx-{name}-{version}",
            tags=tuple(tags),
            dependencies=tuple(DependencyRef.from_value(d) for d in deps),
        )
        self.entries.setdefault(name, []).append(meta)
        return meta

    async def search_skills(self, query: str) -> list[SkillMetadata]:
        q = query.lower()
        latest = [versions[-1] for versions in self.entries.values()]
        return [
            s
            for s in latest
            if not q
            or q in s.name
            or q in s.description.lower()
            or any(q in t.lower() for t in s.tags)
        ]

    async def list_skills(
        self, *, limit=10, offset=0, filter_tags=None, filter_name=None, featured=None
    ) -> SkillPage:
        latest = sorted((v[-1] for v in self.entries.values()), key=lambda s: s.name)
        return SkillPage(tuple(latest[offset : offset + limit]), len(latest), limit, offset)

    async def get_skill(self, name: str, version: str | None = None) -> SkillMetadata:
        self.lookups.append((name, version))
        for meta in reversed(self.entries.get(name, [])):
            if version is None or meta.version == version:
                return meta
        raise SkillNotFoundError(f"Skill '{name}' not found")

    async def get_skill_versions(self, name: str) -> SkillVersions:
        versions = tuple(reversed(self.entries.get(name, [])))
        if not versions:
            raise SkillNotFoundError(f"Skill '{name}' not found")
        return SkillVersions(versions, versions[0].version, len(versions))

    async def get_download_stats(self, name: str | None = None) -> DownloadStats:
        return DownloadStats(total_downloads=0, skill_name=name)

    async def get_registry_info(self) -> RegistryInfo:
        return RegistryInfo(name="Fake Registry", version="1.0.0")

    async def register_skill(self, manifest, content_id, signer) -> str:
        self.registered.append((manifest, content_id))
        self.add(manifest.name, manifest.version, content_id=content_id, owner=signer.address)
        return f"msg-{len(self.registered)}"

    async def update_skill(self, manifest, content_id, signer) -> str:
        self.updated.append((manifest, content_id))
        self.add(manifest.name, manifest.version, content_id=content_id, owner=signer.address)
        return f"msg-update-{len(self.updated)}"


class FakeStore(ObjectStore):
    """Content-addressed blobs in a dict."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.uploads: list[tuple[bytes, list[tuple[str, str]]]] = []
        self.downloads: list[str] = []

    async def upload(self, blob, signer, *, tags=()) -> UploadResult:
        content_id = "tx-" + hashlib.sha256(blob).hexdigest()[:40]
        self.blobs[content_id] = blob
        self.uploads.append((blob, list(tags)))
        return UploadResult(content_id=content_id, cost=0.0)

    async def download(self, content_id: str) -> bytes:
        self.downloads.append(content_id)
        try:
            return self.blobs[content_id]
        except KeyError:
            raise NetworkError(
                f"{content_id} not found", endpoint=content_id, kind=NetworkError.NOT_FOUND
            ) from None


class FakeSigner(DataItemSigner):
    def __init__(self, address: str) -> None:
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    async def sign(self, data, *, tags=(), target=None) -> SignedDataItem:
        return SignedDataItem(id=hashlib.sha256(data).hexdigest(), raw=data, owner=self._address)


class FakeSigningProvider(SigningProvider):
    source = "fake"

    def __init__(self, address: str = OWNER) -> None:
        self.address = address
        self.closed = False

    async def get_address(self) -> str:
        return self.address

    async def create_signer(self) -> FakeSigner:
        return FakeSigner(self.address)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture()
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def wallet() -> FakeSigningProvider:
    return FakeSigningProvider()


@pytest.fixture()
def other_wallet() -> FakeSigningProvider:
    return FakeSigningProvider("someone-else-bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb")


@pytest.fixture()
def make_skill_dir(tmp_path):
    """Write a skill directory and return its path."""

    def _make(name="my-skill", version="1.0.0", *, deps=(), files=None, **fields):
        skill_dir = tmp_path / "src" / f"{name}-{version}"
        skill_dir.mkdir(parents=True)
        manifest = SkillManifest(
            name=name,
            version=version,
            description=fields.pop("description", f"The {name} skill."),
            author=fields.pop("author", "Ada"),
            dependencies=tuple(DependencyRef.from_value(d) for d in deps),
            **fields,
        )
        (skill_dir / "SKILL.md").write_text(
            dump_manifest(manifest, f"# {name}\n\nInstructions."), encoding="utf-8"
        )
        for rel, content in (files or {}).items():
            path = skill_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return skill_dir

    return _make


@pytest.fixture()
def publish_fixture(registry, store, make_skill_dir):
    """Bundle a skill into *store* and add its entry to *registry*."""

    def _publish(name, version="1.0.0", *, deps=()):
        blob = BundleBuilder().build(make_skill_dir(name, version, deps=deps)).blob
        content_id = f"tx-{name}-{version}"
        store.blobs[content_id] = blob
        return registry.add(name, version, deps=deps, content_id=content_id)

    return _publish
