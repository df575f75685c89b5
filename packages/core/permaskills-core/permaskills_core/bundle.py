"""Deterministic skill bundles.

:class:`BundleBuilder` archives a skill directory into a gzip-compressed
tar.  The same directory contents always produce byte-identical output:
entries are sorted, and timestamps, owners and permission bits are
normalized, so the blob's content id depends only on what the skill
contains.  The source directory is never modified.

:func:`extract_bundle` is the install-side counterpart.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import shutil
import tarfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from permaskills_core.exceptions import FileSystemError
from permaskills_core.manifest import MANIFEST_FILENAME

_logger = logging.getLogger(__name__)

#: Bundles above this size are flagged with ``exceeded_limit``.
MAX_BUNDLE_BYTES: int = 10 * 1024 * 1024

EXCLUDED_NAMES: frozenset[str] = frozenset(
    {".git", "node_modules", "__pycache__", ".DS_Store", "Thumbs.db"}
)
ALLOWED_HIDDEN: frozenset[str] = frozenset({".skillsrc"})


@dataclass(frozen=True)
class Bundle:
    """A built bundle.

    Attributes:
        blob: The compressed archive.
        size: Length of *blob* in bytes.
        files: Archived paths, relative and POSIX-style, in archive order.
        exceeded_limit: ``True`` when *size* is above :data:`MAX_BUNDLE_BYTES`.
    """

    blob: bytes
    size: int
    files: tuple[str, ...]
    exceeded_limit: bool = False

    @property
    def file_count(self) -> int:
        return len(self.files)


def format_size(size: int) -> str:
    """Human-readable byte count (``"512 B"``, ``"1.50 KB"``, ``"2.00 MB"``)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def _is_excluded(name: str) -> bool:
    if name in EXCLUDED_NAMES:
        return True
    return name.startswith(".") and name not in ALLOWED_HIDDEN


class BundleBuilder:
    """Build deterministic ``.tar.gz`` bundles from skill directories.

    Args:
        max_bytes: Size above which a bundle is flagged.
        compresslevel: gzip compression level.
    """

    def __init__(self, *, max_bytes: int = MAX_BUNDLE_BYTES, compresslevel: int = 9) -> None:
        self._max_bytes = max_bytes
        self._compresslevel = compresslevel

    def collect(self, directory: Path) -> list[Path]:
        """Return the files to archive, sorted by relative POSIX path."""
        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(directory):
            dirnames[:] = sorted(d for d in dirnames if not _is_excluded(d))
            for filename in filenames:
                if _is_excluded(filename):
                    continue
                path = Path(dirpath) / filename
                if path.is_symlink() and not path.resolve().is_relative_to(directory.resolve()):
                    _logger.warning("Skipping symlink outside the skill directory: %s", path)
                    continue
                files.append(path)
        return sorted(files, key=lambda p: p.relative_to(directory).as_posix())

    def build(self, directory: Path | str) -> Bundle:
        """Archive *directory* into a bundle.

        Raises:
            FileSystemError: If *directory* or its ``SKILL.md`` is
                missing, or a file cannot be read.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileSystemError(
                "Skill directory not found",
                path=str(directory),
                solution="Pass the path of a directory that contains SKILL.md",
            )
        if not (directory / MANIFEST_FILENAME).is_file():
            raise FileSystemError(
                f"{MANIFEST_FILENAME} not found",
                path=str(directory / MANIFEST_FILENAME),
                solution=f"Create a {MANIFEST_FILENAME} file in the skill directory",
            )

        files = self.collect(directory)
        names: list[str] = []
        tar_buffer = io.BytesIO()
        try:
            with tarfile.open(fileobj=tar_buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for path in files:
                    arcname = path.relative_to(directory).as_posix()
                    data = path.read_bytes()
                    info = tarfile.TarInfo(arcname)
                    info.size = len(data)
                    info.mtime = 0
                    info.uid = info.gid = 0
                    info.uname = info.gname = ""
                    info.mode = 0o755 if os.access(path, os.X_OK) else 0o644
                    tar.addfile(info, io.BytesIO(data))
                    names.append(arcname)
        except OSError as exc:
            raise FileSystemError(
                f"Cannot read skill files: {exc.strerror}",
                path=str(exc.filename or directory),
                solution="Check file permissions in the skill directory",
            ) from exc

        gz_buffer = io.BytesIO()
        # filename="" and mtime=0 keep the gzip header stable.
        with gzip.GzipFile(
            filename="", mode="wb", fileobj=gz_buffer, mtime=0, compresslevel=self._compresslevel
        ) as gz:
            gz.write(tar_buffer.getvalue())
        blob = gz_buffer.getvalue()

        bundle = Bundle(
            blob=blob,
            size=len(blob),
            files=tuple(names),
            exceeded_limit=len(blob) > self._max_bytes,
        )
        _logger.debug(
            "Bundled %s: %d files, %s", directory, bundle.file_count, format_size(bundle.size)
        )
        return bundle


def extract_bundle(blob: bytes, target: Path, *, force: bool = False) -> list[str]:
    """Extract *blob* into *target*.

    Members with absolute paths, ``..`` components or link types are
    rejected before anything is written.

    Args:
        blob: A bundle produced by :class:`BundleBuilder`.
        target: Directory to extract into (created if missing).
        force: Replace *target* if it already exists.

    Returns:
        The extracted relative paths.

    Raises:
        FileSystemError: If *target* exists and *force* is false, the
            archive is corrupt or unsafe, or writing fails.
    """
    if target.exists() and not force:
        raise FileSystemError(
            "Install directory already exists",
            path=str(target),
            solution="Use force to overwrite the existing installation",
        )
    try:
        with tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz") as tar:
            members = tar.getmembers()
            for member in members:
                rel = PurePosixPath(member.name)
                unsafe = rel.is_absolute() or ".." in rel.parts
                if unsafe or not (member.isfile() or member.isdir()):
                    raise FileSystemError(
                        f"Unsafe entry in bundle: {member.name}",
                        path=str(target),
                        solution="Do not install this bundle; it may be malicious",
                    )
            if target.exists():
                shutil.rmtree(target)
            target.mkdir(parents=True)
            for member in members:
                dest = target.joinpath(*PurePosixPath(member.name).parts)
                if member.isdir():
                    dest.mkdir(parents=True, exist_ok=True)
                    continue
                source = tar.extractfile(member)
                assert source is not None
                dest.parent.mkdir(parents=True, exist_ok=True)
                dest.write_bytes(source.read())
                dest.chmod(member.mode & 0o755)
            return [m.name for m in members if m.isfile()]
    except (tarfile.TarError, EOFError, gzip.BadGzipFile) as exc:
        raise FileSystemError(
            f"Bundle is corrupt: {exc}",
            path=str(target),
            solution="Retry the download; the content may be damaged",
        ) from exc
    except OSError as exc:
        raise FileSystemError(
            f"Cannot extract bundle: {exc.strerror}",
            path=str(exc.filename or target),
            solution="Check write permissions and free disk space",
        ) from exc
