"""Transitive dependency resolution.

:class:`DependencyResolver` walks a skill's dependency graph through a
:class:`~permaskills_core.RegistryClient` and returns an immutable
:class:`DependencyTree`:

* Traversal is breadth-first.  Dependencies are visited in manifest
  declaration order, and the tree's ``flat_list`` is a pre-order
  flattening (parent before children, children left to right).
* Cycles are detected against the path of ``(name, version)`` pairs
  from the root to the current node and fail with a
  :class:`~permaskills_core.DependencyError` whose ``path`` spells out
  the cycle, e.g. ``["a", "b", "c", "a"]``.
* A package reachable along two paths appears as two nodes unless the
  resolver is created with ``deduplicate=True``, in which case the
  first node built for a ``(name, version)`` pair is shared.  Linking a
  shared node that leads back onto the current path is a cycle too.

:func:`render_tree` draws the tree the way ``npm ls`` does::

    report-writer@2.0.0
    ├── pdf-tools@1.2.0 ✓
    │   └── font-kit@0.3.1
    └── charts@1.0.0
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field

from permaskills_core.exceptions import DependencyError, SkillNotFoundError
from permaskills_core.lockfile import LockFile
from permaskills_core.manifest import ANY_VERSION
from permaskills_core.registry import RegistryClient, SkillMetadata

_logger = logging.getLogger(__name__)

#: Default maximum distance from the root before resolution gives up.
DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class DependencyNode:
    """One resolved skill in a dependency tree."""

    name: str
    version: str
    content_id: str
    depth: int
    is_installed: bool
    children: tuple[DependencyNode, ...] = ()

    @property
    def identifier(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class DependencyTree:
    """A resolved dependency tree with derived statistics."""

    root: DependencyNode
    flat_list: tuple[DependencyNode, ...]
    max_depth: int
    total_count: int
    installed_count: int

    @classmethod
    def from_root(cls, root: DependencyNode) -> DependencyTree:
        flat = tuple(_preorder(root))
        return cls(
            root=root,
            flat_list=flat,
            max_depth=max(n.depth for n in flat),
            total_count=len(flat),
            installed_count=sum(1 for n in flat if n.is_installed),
        )

    def edges(self) -> Iterator[tuple[DependencyNode, DependencyNode]]:
        """Yield ``(dependent, dependency)`` pairs in pre-order."""
        for node in self.flat_list:
            for child in node.children:
                yield node, child


def _preorder(root: DependencyNode) -> Iterator[DependencyNode]:
    seen: set[int] = set()
    stack = [root]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node
        stack.extend(reversed(node.children))


@dataclass
class _Draft:
    meta: SkillMetadata
    depth: int
    children: list[_Draft] = field(default_factory=list)


def _route_to(draft: _Draft, targets: set[tuple[str, str]]) -> list[_Draft] | None:
    """Return the drafts from *draft* down to the first one keyed in *targets*."""
    if (draft.meta.name, draft.meta.version) in targets:
        return [draft]
    for child in draft.children:
        route = _route_to(child, targets)
        if route is not None:
            return [draft, *route]
    return None


class DependencyResolver:
    """Resolve the full dependency tree of a skill.

    Args:
        registry: Where skill metadata is looked up.
        lock_file: Snapshot of installed skills used to set
            ``is_installed`` on each node.  Defaults to empty.
        max_depth: Deepest allowed node depth (root is depth 0).
        deduplicate: Share a single node per ``(name, version)`` pair.

    Example::

        resolver = DependencyResolver(registry, lock_file=LockFile.load(lock_path))
        tree = await resolver.resolve("report-writer")
        print(render_tree(tree))
    """

    def __init__(
        self,
        registry: RegistryClient,
        *,
        lock_file: LockFile | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        deduplicate: bool = False,
    ) -> None:
        self._registry = registry
        self._lock_file = lock_file or LockFile()
        self._max_depth = max_depth
        self._deduplicate = deduplicate

    async def resolve(self, name: str, version: str | None = None) -> DependencyTree:
        """Resolve *name* (at *version*, or the latest) and all its dependencies.

        Raises:
            SkillNotFoundError: If the root skill does not exist.
            DependencyError: On a cycle, a missing dependency, or a
                tree deeper than ``max_depth``.
        """
        metadata: dict[tuple[str, str | None], SkillMetadata] = {}

        async def lookup(dep_name: str, dep_version: str | None, path: list[str]) -> SkillMetadata:
            key = (dep_name, dep_version)
            if key not in metadata:
                try:
                    metadata[key] = await self._registry.get_skill(dep_name, dep_version)
                except SkillNotFoundError:
                    if not path:
                        raise
                    chain = [*path, dep_name]
                    raise DependencyError(
                        f"Dependency '{dep_name}' not found in registry "
                        f"(required by: {' → '.join(path)})",
                        dependency_name=dep_name,
                        path=chain,
                        solution="Publish the dependency first or fix its name in SKILL.md",
                    ) from None
            return metadata[key]

        root = _Draft(await lookup(name, version, []), depth=0)
        visited: dict[tuple[str, str], _Draft] = {(root.meta.name, root.meta.version): root}
        queue: deque[tuple[_Draft, tuple[tuple[str, str], ...]]] = deque(
            [(root, ((root.meta.name, root.meta.version),))]
        )

        while queue:
            draft, path = queue.popleft()
            names = [n for n, _ in path]
            for dep in draft.meta.dependencies:
                depth = len(path)
                if depth > self._max_depth:
                    raise DependencyError(
                        f"Maximum dependency depth ({self._max_depth}) exceeded",
                        dependency_name=dep.name,
                        path=[*names, dep.name],
                        solution="Flatten the dependency chain",
                    )
                meta = await lookup(
                    dep.name, dep.version if dep.version != ANY_VERSION else None, names
                )
                key = (meta.name, meta.version)
                if key in path:
                    cycle = [*names, meta.name]
                    raise DependencyError(
                        f"Circular dependency detected: {' → '.join(cycle)}",
                        dependency_name=meta.name,
                        path=cycle,
                        solution="Remove one of the dependencies that forms the cycle",
                    )
                if self._deduplicate and key in visited:
                    shared = visited[key]
                    route = _route_to(shared, set(path))
                    if route is not None:
                        start = path.index((route[-1].meta.name, route[-1].meta.version))
                        cycle = [*names[start:], *(d.meta.name for d in route)]
                        raise DependencyError(
                            f"Circular dependency detected: {' → '.join(cycle)}",
                            dependency_name=meta.name,
                            path=cycle,
                            solution="Remove one of the dependencies that forms the cycle",
                        )
                    draft.children.append(shared)
                    continue
                child = _Draft(meta, depth=depth)
                visited.setdefault(key, child)
                draft.children.append(child)
                queue.append((child, (*path, key)))

        tree = DependencyTree.from_root(self._freeze(root, {}))
        _logger.debug(
            "Resolved %s: %d nodes, depth %d",
            tree.root.identifier,
            tree.total_count,
            tree.max_depth,
        )
        return tree

    def _freeze(self, draft: _Draft, done: dict[int, DependencyNode]) -> DependencyNode:
        if id(draft) in done:
            return done[id(draft)]
        node = DependencyNode(
            name=draft.meta.name,
            version=draft.meta.version,
            content_id=draft.meta.content_id,
            depth=draft.depth,
            is_installed=self._lock_file.is_installed(draft.meta.name, draft.meta.version),
            children=tuple(self._freeze(c, done) for c in draft.children),
        )
        done[id(draft)] = node
        return node


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def render_tree(
    tree: DependencyTree, *, show_installed: bool = True, show_depth: bool = False
) -> str:
    """Render *tree* as an ASCII tree, one node per line."""

    def label(node: DependencyNode) -> str:
        text = node.identifier
        if show_installed and node.is_installed:
            text += " ✓"
        if show_depth:
            text += f" (depth: {node.depth})"
        return text

    lines = [label(tree.root)]

    def walk(node: DependencyNode, prefix: str) -> None:
        for i, child in enumerate(node.children):
            last = i == len(node.children) - 1
            lines.append(f"{prefix}{'└── ' if last else '├── '}{label(child)}")
            walk(child, prefix + ("    " if last else "│   "))

    walk(tree.root, "")
    return "\n".join(lines)
