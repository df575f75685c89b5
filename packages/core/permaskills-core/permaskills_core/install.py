"""Install skills and their dependencies.

:class:`InstallPipeline` resolves the full dependency tree of the
requested skill, downloads every bundle that is not already installed at
the same version, extracts them under the install root and finally
rewrites ``skills-lock.json``.

Installs are all-or-nothing: bundles are downloaded and extracted into a
staging directory first, and only moved into place (and recorded in the
lock file) once every one of them succeeded.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from permaskills_core.bundle import extract_bundle
from permaskills_core.exceptions import (
    DependencyError,
    FileSystemError,
    RegistryError,
    RegistryErrorCode,
    ValidationError,
)
from permaskills_core.lockfile import LockEntry, LockFile, lock_path_for
from permaskills_core.registry import RegistryClient
from permaskills_core.resolver import (
    DEFAULT_MAX_DEPTH,
    DependencyNode,
    DependencyResolver,
    DependencyTree,
)
from permaskills_core.store import ObjectStore
from permaskills_core.validation import NAME_RE, VERSION_RE

_logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]


@dataclass(frozen=True)
class InstallResult:
    """Outcome of :meth:`InstallPipeline.install`.

    Attributes:
        installed_skills: ``"name@version"`` of every skill written to
            disk by this call, in resolution order.
        dependency_count: Installed skills other than the requested one.
        total_size: Sum of downloaded bundle sizes in bytes.
        elapsed_time: Wall-clock duration in seconds.
    """

    installed_skills: list[str]
    dependency_count: int
    total_size: int
    elapsed_time: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_identifier(identifier: str) -> tuple[str, str | None]:
    """Split ``"name"`` or ``"name@version"``.

    Raises:
        ValidationError: If the name or version is malformed.
    """
    name, sep, version = identifier.strip().partition("@")
    if not NAME_RE.match(name):
        raise ValidationError(
            f"Invalid skill name: '{name}'",
            field="name",
            value=name,
            solution="Use only lowercase letters, numbers, and hyphens",
        )
    if sep and not VERSION_RE.match(version):
        raise ValidationError(
            f"Invalid version: '{version}'",
            field="version",
            value=version,
            solution="Use an exact semantic version such as 1.0.0",
        )
    return name, version if sep else None


def resolve_install_location(location: str | Path = "global") -> Path:
    """Map ``"global"``/``"local"`` (or a path) to an install root.

    ``global`` is ``~/.claude/skills``; ``local`` is ``./.claude/skills``.
    """
    if location == "global":
        return Path.home() / ".claude" / "skills"
    if location == "local":
        return Path.cwd() / ".claude" / "skills"
    return Path(location).expanduser()


def _check_versions(tree: DependencyTree) -> None:
    """Raise if *tree* needs one skill name at two different versions.

    Skills are installed one directory per name, so only a single
    version of each can be on disk.
    """
    first: dict[str, tuple[str, list[str]]] = {}
    stack: list[tuple[DependencyNode, list[str]]] = [(tree.root, [tree.root.name])]
    while stack:
        node, path = stack.pop()
        seen = first.setdefault(node.name, (node.version, path))
        if seen[0] != node.version:
            raise DependencyError(
                f"Conflicting versions of '{node.name}': {seen[0]} "
                f"(via {' → '.join(seen[1])}) and {node.version} (via {' → '.join(path)})",
                dependency_name=node.name,
                path=path,
                solution="Align the dependency versions declared in SKILL.md",
            )
        stack.extend((c, [*path, c.name]) for c in reversed(node.children))


class InstallPipeline:
    """Resolve, download and extract skills, then update the lock file.

    Args:
        registry: Registry used for dependency resolution.
        store: Object store bundles are downloaded from.
        install_root: Directory receiving one sub-directory per skill.
        lock_path: Lock file location; defaults to
            :func:`~permaskills_core.lock_path_for` of *install_root*.
        max_depth: Maximum dependency depth.
        clock: Returns the current time in epoch milliseconds.

    Example::

        pipeline = InstallPipeline(registry, store, install_root=resolve_install_location("local"))
        result = await pipeline.install("report-writer@2.0.0")
        print(result.installed_skills)
    """

    def __init__(
        self,
        registry: RegistryClient,
        store: ObjectStore,
        *,
        install_root: Path,
        lock_path: Path | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._install_root = Path(install_root)
        self._lock_path = lock_path or lock_path_for(self._install_root)
        self._max_depth = max_depth
        self._clock = clock or (lambda: int(time.time() * 1000))

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    async def install(
        self,
        identifier: str,
        *,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> InstallResult:
        """Install *identifier* (``name`` or ``name@version``) with its dependencies.

        Skills already installed at the resolved version are skipped
        unless *force* is set.  When nothing needs installing the lock
        file is left untouched.

        Raises:
            ValidationError: If *identifier* is malformed.
            SkillNotFoundError: If the requested skill does not exist.
            DependencyError: On a cycle, a missing dependency, or two
                different versions of one skill in the tree.
            NetworkError: If a bundle cannot be downloaded.
            FileSystemError: If extraction or the lock-file write fails.
        """
        started = time.monotonic()
        progress = on_progress or (lambda stage, message: None)
        name, version = parse_identifier(identifier)

        progress("query-registry", f"Looking up {identifier}")
        lock = LockFile.load(self._lock_path)

        progress("resolve-dependencies", f"Resolving dependencies of {identifier}")
        resolver = DependencyResolver(self._registry, lock_file=lock, max_depth=self._max_depth)
        tree = await resolver.resolve(name, version)

        _check_versions(tree)
        pending = self._plan(tree.flat_list, lock, force)
        if not pending:
            progress("complete", f"{tree.root.identifier} is already installed")
            return InstallResult([], 0, 0, time.monotonic() - started)

        blobs: dict[str, bytes] = {}
        for node in pending:
            if not node.content_id:
                raise RegistryError(
                    f"Registry entry {node.identifier} has no content id",
                    code=RegistryErrorCode.INVALID_STRUCTURE,
                )
            progress("download-bundle", f"Downloading {node.identifier}")
            blobs[node.name] = await self._store.download(node.content_id)

        progress("extract-bundle", f"Extracting {len(pending)} bundle(s)")
        self._extract_all(pending, blobs)

        progress("update-lock-file", f"Updating {self._lock_path}")
        updated = self._updated_lock(lock, tree.edges(), pending)
        updated.save(self._lock_path)

        installed = [n.identifier for n in pending]
        result = InstallResult(
            installed_skills=installed,
            dependency_count=sum(1 for n in pending if n.name != tree.root.name),
            total_size=sum(len(b) for b in blobs.values()),
            elapsed_time=time.monotonic() - started,
        )
        progress("complete", f"Installed {', '.join(installed)}")
        _logger.info("Installed %s into %s", ", ".join(installed), self._install_root)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _plan(
        self, nodes: tuple[DependencyNode, ...], lock: LockFile, force: bool
    ) -> list[DependencyNode]:
        """Unique nodes (by name) that need downloading, in resolution order."""
        pending: dict[str, DependencyNode] = {}
        for node in nodes:
            if node.name in pending:
                continue
            on_disk = (self._install_root / node.name).is_dir()
            if not force and on_disk and lock.is_installed(node.name, node.version):
                _logger.debug("Skipping %s (already installed)", node.identifier)
                continue
            pending[node.name] = node
        return list(pending.values())

    def _extract_all(self, nodes: list[DependencyNode], blobs: dict[str, bytes]) -> None:
        try:
            self._install_root.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self._install_root))
        except OSError as exc:
            raise FileSystemError(
                f"Install directory is not writable: {exc.strerror}",
                path=str(self._install_root),
                solution="Check permissions or choose another install location",
            ) from exc
        try:
            for node in nodes:
                extract_bundle(blobs[node.name], staging / node.name)
            for node in nodes:
                target = self._install_root / node.name
                if target.exists():
                    shutil.rmtree(target)
                (staging / node.name).replace(target)
        except OSError as exc:
            raise FileSystemError(
                f"Cannot move bundle into place: {exc.strerror}",
                path=str(exc.filename or self._install_root),
                solution="Check permissions of the install directory",
            ) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _updated_lock(
        self,
        lock: LockFile,
        edges: Iterable[tuple[DependencyNode, DependencyNode]],
        pending: list[DependencyNode],
    ) -> LockFile:
        updated = lock.copy()
        now = self._clock()
        for node in pending:
            previous = lock.get(node.name)
            dependents = previous.depended_on_by if previous else frozenset()
            updated.set(node.name, LockEntry(node.version, node.content_id, now, dependents))
        for parent, child in edges:
            entry = updated.get(child.name)
            if entry is not None and entry.version == child.version:
                updated.set(child.name, entry.with_dependent(parent.name))
        return updated
