"""Skill manifests: the structured form of a ``SKILL.md`` header.

:func:`parse_manifest` reads a ``SKILL.md`` from disk and returns an
immutable :class:`SkillManifest`.  Parsing only fails on problems that
make the file unusable (missing file, no frontmatter, broken YAML, a
``tags`` or ``dependencies`` value of the wrong shape).  Field-level
rules such as the name pattern are checked separately by
:func:`~permaskills_core.validate_manifest`, which reports every
violation at once.

:func:`dump_manifest` is the inverse of parsing: it renders a manifest
(and an optional body) back to ``SKILL.md`` text.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from permaskills_core.exceptions import FileSystemError, ParseError
from permaskills_core.parsing import split_frontmatter

#: File name of the manifest inside a skill directory.
MANIFEST_FILENAME = "SKILL.md"

#: Version placeholder meaning "resolve the latest published version".
ANY_VERSION = "*"

REQUIRED_FIELDS: tuple[str, ...] = ("name", "version", "description", "author")
OPTIONAL_FIELDS: tuple[str, ...] = ("tags", "dependencies", "license", "changelog", "mcpServers")


@dataclass(frozen=True)
class DependencyRef:
    """A dependency edge: a skill name and an exact version (or ``*``)."""

    name: str
    version: str = ANY_VERSION

    @property
    def is_pinned(self) -> bool:
        return self.version != ANY_VERSION

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"

    @classmethod
    def from_value(cls, value: Any) -> DependencyRef:
        """Build a reference from a frontmatter list entry.

        Accepts a bare name (``"pdf-tools"``), a ``"name@version"``
        string, or a ``{name, version}`` mapping.

        Raises:
            ParseError: If *value* has none of those shapes.
        """
        if isinstance(value, str):
            name, sep, version = value.strip().partition("@")
            return cls(name=name, version=version if sep and version else ANY_VERSION)
        if isinstance(value, Mapping) and "name" in value:
            version = value.get("version")
            return cls(
                name=str(value["name"]),
                version=str(version) if version not in (None, "") else ANY_VERSION,
            )
        raise ParseError(
            f"Invalid dependency entry: {value!r}",
            snippet=repr(value),
            solution="List dependencies as names or as {name, version} mappings",
        )


@dataclass(frozen=True)
class SkillManifest:
    """Immutable descriptor of one skill version.

    Attributes:
        name: Skill name (lowercase alphanumerics and hyphens).
        version: Semantic version ``x.y.z``.
        description: Short description, at most 1024 characters.
        author: Author display name.
        tags: Unique tags in declaration order.
        dependencies: Dependency edges in declaration order.
        license: Optional license identifier.
        changelog: Optional free-form changelog for this version.
        mcp_servers: Optional MCP server names the skill expects.
        extra: Frontmatter keys that are not part of the manifest
            schema.  Kept so validation can report them.
    """

    name: str
    version: str
    description: str
    author: str
    tags: tuple[str, ...] = ()
    dependencies: tuple[DependencyRef, ...] = ()
    license: str | None = None
    changelog: str | None = None
    mcp_servers: tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        return f"{self.name}@{self.version}"

    @classmethod
    def from_frontmatter(cls, data: Mapping[str, Any]) -> SkillManifest:
        """Build a manifest from a parsed frontmatter mapping.

        ``null`` or absent ``tags``/``dependencies`` become empty.

        Raises:
            ParseError: If ``tags``, ``dependencies`` or ``mcpServers``
                is present but is not a list.
        """
        known = set(REQUIRED_FIELDS) | set(OPTIONAL_FIELDS)
        return cls(
            name=_as_text(data.get("name")),
            version=_as_text(data.get("version")),
            description=_as_text(data.get("description")),
            author=_as_text(data.get("author")),
            tags=tuple(dict.fromkeys(str(t) for t in _as_list(data, "tags"))),
            dependencies=tuple(
                DependencyRef.from_value(d) for d in _as_list(data, "dependencies")
            ),
            license=_as_optional_text(data.get("license")),
            changelog=_as_optional_text(data.get("changelog")),
            mcp_servers=tuple(str(s) for s in _as_list(data, "mcpServers")),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_frontmatter(self) -> dict[str, Any]:
        """Return the manifest as a frontmatter mapping (inverse of :meth:`from_frontmatter`)."""
        data: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
        }
        if self.tags:
            data["tags"] = list(self.tags)
        if self.dependencies:
            data["dependencies"] = [
                {"name": d.name, "version": d.version} for d in self.dependencies
            ]
        if self.license is not None:
            data["license"] = self.license
        if self.changelog is not None:
            data["changelog"] = self.changelog
        if self.mcp_servers:
            data["mcpServers"] = list(self.mcp_servers)
        data.update(self.extra)
        return data


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_optional_text(value: Any) -> str | None:
    return None if value is None else _as_text(value)


def _as_list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(
            f"Field '{key}' must be a list, got {type(value).__name__}",
            snippet=repr(value),
            solution=f"Write '{key}' as a YAML list",
        )
    return value


# ------------------------------------------------------------------
# Reading and writing SKILL.md
# ------------------------------------------------------------------


def parse_manifest_text(raw: str) -> tuple[SkillManifest, str]:
    """Parse ``SKILL.md`` text into a manifest and its markdown body."""
    frontmatter, body = split_frontmatter(raw)
    return SkillManifest.from_frontmatter(frontmatter), body


def parse_manifest(path: Path | str) -> SkillManifest:
    """Read and parse a ``SKILL.md``.

    Args:
        path: The ``SKILL.md`` file, or the skill directory holding it.

    Raises:
        FileSystemError: If the file does not exist or cannot be read.
        ParseError: If the content is empty or the frontmatter is
            missing or malformed.
    """
    path = Path(path)
    if path.is_dir():
        path = path / MANIFEST_FILENAME
    if not path.is_file():
        raise FileSystemError(
            f"{MANIFEST_FILENAME} not found",
            path=str(path),
            solution=f"Create a {MANIFEST_FILENAME} file in the skill directory",
        )
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(
            f"{MANIFEST_FILENAME} is not valid UTF-8",
            solution="Save the file with UTF-8 encoding",
        ) from exc
    except OSError as exc:
        raise FileSystemError(
            f"Cannot read {MANIFEST_FILENAME}: {exc.strerror}",
            path=str(path),
            solution="Check the file permissions",
        ) from exc
    manifest, _ = parse_manifest_text(raw)
    return manifest


def dump_manifest(manifest: SkillManifest, body: str = "") -> str:
    """Render *manifest* and *body* as ``SKILL.md`` text."""
    fm_text = yaml.safe_dump(
        manifest.to_frontmatter(), sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    text = f"---\n{fm_text}---\n"
    if body:
        text += f"\n{body.strip()}\n"
    return text
