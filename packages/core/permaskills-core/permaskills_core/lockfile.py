"""The ``skills-lock.json`` record of installed skills.

The lock file maps each installed skill name to the exact version and
content id that was installed, when, and which other installed skills
depend on it::

    {
      "pdf-tools": {
        "version": "1.2.0",
        "contentId": "kX9...",
        "installedAt": 1730000000000,
        "dependedOnBy": ["report-writer"]
      }
    }

:meth:`LockFile.load` treats a missing file as empty.  :meth:`LockFile.save`
writes to a temporary file in the same directory and renames it over the
target, so a crash mid-write never leaves a truncated lock file behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from permaskills_core.exceptions import FileSystemError

_logger = logging.getLogger(__name__)

LOCK_FILENAME = "skills-lock.json"


@dataclass(frozen=True)
class LockEntry:
    """One installed skill."""

    version: str
    content_id: str
    installed_at: int
    depended_on_by: frozenset[str] = field(default_factory=frozenset)

    def with_dependent(self, name: str) -> LockEntry:
        return replace(self, depended_on_by=self.depended_on_by | {name})

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "contentId": self.content_id,
            "installedAt": self.installed_at,
            "dependedOnBy": sorted(self.depended_on_by),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LockEntry:
        return cls(
            version=str(data["version"]),
            content_id=str(data["contentId"]),
            installed_at=int(data.get("installedAt") or 0),
            depended_on_by=frozenset(str(n) for n in data.get("dependedOnBy") or ()),
        )


class LockFile:
    """In-memory view of a lock file.

    Example::

        lock = LockFile.load(lock_path_for(install_root))
        if lock.is_installed("pdf-tools", "1.2.0"):
            ...
        lock.set("pdf-tools", LockEntry("1.2.0", "kX9...", now_ms))
        lock.save(lock_path_for(install_root))
    """

    def __init__(self, entries: Mapping[str, LockEntry] | None = None) -> None:
        self._entries: dict[str, LockEntry] = dict(entries or {})

    # ------------------------------------------------------------------
    # Mapping-style access
    # ------------------------------------------------------------------

    def get(self, name: str) -> LockEntry | None:
        return self._entries.get(name)

    def set(self, name: str, entry: LockEntry) -> None:
        self._entries[name] = entry

    def is_installed(self, name: str, version: str) -> bool:
        entry = self._entries.get(name)
        return entry is not None and entry.version == version

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LockFile):
            return NotImplemented
        return self._entries == other._entries

    def copy(self) -> LockFile:
        return LockFile(self._entries)

    def dangling_dependents(self) -> list[str]:
        """Names listed in some ``dependedOnBy`` that have no entry of their own."""
        return sorted(
            {n for e in self._entries.values() for n in e.depended_on_by} - self._entries.keys()
        )

    def to_dict(self) -> dict[str, Any]:
        return {name: self._entries[name].to_dict() for name in sorted(self._entries)}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path) -> LockFile:
        """Read the lock file at *path*.

        A missing file yields an empty lock file, as does a file that is
        not valid lock-file JSON (a warning is logged).

        Raises:
            FileSystemError: If the file exists but cannot be read.
        """
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cls()
        except OSError as exc:
            raise FileSystemError(
                f"Cannot read lock file: {exc.strerror}",
                path=str(path),
                solution="Check the permissions of the install directory",
            ) from exc

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("top level is not an object")
            entries = {str(name): LockEntry.from_dict(e) for name, e in data.items()}
        except (ValueError, KeyError, TypeError) as exc:
            _logger.warning("Ignoring malformed lock file %s: %s", path, exc)
            return cls()
        return cls(entries)

    def save(self, path: Path) -> None:
        """Atomically write the lock file to *path*.

        Raises:
            FileSystemError: If the directory is not writable or the
                disk is full.  The previous lock file is left intact.
        """
        payload = json.dumps(self.to_dict(), indent=2) + "\n"
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise FileSystemError(
                f"Cannot write lock file: {exc.strerror}",
                path=str(path),
                solution="Check write permissions and free disk space",
            ) from exc
        _logger.debug("Wrote %d lock entries to %s", len(self), path)


def lock_path_for(install_root: Path) -> Path:
    """Return the lock file location for skills installed under *install_root*.

    The lock file sits next to the install directory, e.g.
    ``~/.claude/skills-lock.json`` for ``~/.claude/skills``.
    """
    return install_root.parent / LOCK_FILENAME
