"""Core library for publishing and installing permanent skill bundles.

This package holds everything that does not depend on a particular
registry or storage network:

* :func:`parse_manifest` / :func:`validate_manifest` -- the ``SKILL.md``
  contract.
* :class:`DependencyResolver` -- transitive resolution with cycle
  detection, and :func:`render_tree` for display.
* :class:`LockFile` -- the ``skills-lock.json`` record of installs.
* :class:`CacheStore` and :class:`RetryPolicy` -- building blocks for
  registry clients.
* :class:`BundleBuilder` -- deterministic ``.tar.gz`` bundles.
* :class:`PublishPipeline` and :class:`InstallPipeline` -- the two
  public entry points.
* :class:`RegistryClient`, :class:`ObjectStore` and
  :class:`SigningProvider` -- abstract collaborators implemented by
  ``permaskills-ao`` and ``permaskills-arweave``.
* :class:`PermaskillsError` -- base class for all library exceptions.

Install::

    pip install permaskills-core
"""

from permaskills_core.bundle import Bundle, BundleBuilder, extract_bundle, format_size
from permaskills_core.cache import CacheStore
from permaskills_core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DependencyError,
    ExitCode,
    FileSystemError,
    NetworkError,
    ParseError,
    PermaskillsError,
    RegistryError,
    RegistryErrorCode,
    SkillNotFoundError,
    ValidationError,
    exit_code_for,
    format_error,
    redact_secrets,
)
from permaskills_core.install import (
    InstallPipeline,
    InstallResult,
    parse_identifier,
    resolve_install_location,
)
from permaskills_core.lockfile import LockEntry, LockFile, lock_path_for
from permaskills_core.manifest import (
    DependencyRef,
    SkillManifest,
    dump_manifest,
    parse_manifest,
    parse_manifest_text,
)
from permaskills_core.parsing import split_frontmatter
from permaskills_core.publish import PublishPipeline, PublishResult
from permaskills_core.registry import (
    DownloadStats,
    RegistryClient,
    RegistryInfo,
    SkillMetadata,
    SkillPage,
    SkillVersions,
)
from permaskills_core.resolver import (
    DependencyNode,
    DependencyResolver,
    DependencyTree,
    render_tree,
)
from permaskills_core.retry import RetryPolicy, is_retryable
from permaskills_core.search import SearchService
from permaskills_core.signing import DataItemSigner, SignedDataItem, SigningProvider
from permaskills_core.store import ObjectStore, UploadResult
from permaskills_core.validation import ValidationResult, validate_manifest

__all__ = [
    "AuthorizationError",
    "Bundle",
    "BundleBuilder",
    "CacheStore",
    "ConfigurationError",
    "DataItemSigner",
    "DependencyError",
    "DependencyNode",
    "DependencyRef",
    "DependencyResolver",
    "DependencyTree",
    "DownloadStats",
    "ExitCode",
    "FileSystemError",
    "InstallPipeline",
    "InstallResult",
    "LockEntry",
    "LockFile",
    "NetworkError",
    "ObjectStore",
    "ParseError",
    "PermaskillsError",
    "PublishPipeline",
    "PublishResult",
    "RegistryClient",
    "RegistryError",
    "RegistryErrorCode",
    "RegistryInfo",
    "RetryPolicy",
    "SearchService",
    "SignedDataItem",
    "SigningProvider",
    "SkillManifest",
    "SkillMetadata",
    "SkillNotFoundError",
    "SkillPage",
    "SkillVersions",
    "UploadResult",
    "ValidationError",
    "ValidationResult",
    "dump_manifest",
    "exit_code_for",
    "extract_bundle",
    "format_error",
    "format_size",
    "is_retryable",
    "lock_path_for",
    "parse_identifier",
    "parse_manifest",
    "parse_manifest_text",
    "redact_secrets",
    "render_tree",
    "resolve_install_location",
    "split_frontmatter",
    "validate_manifest",
]
