"""Validate skill manifests before they are published.

The primary entry-point is :func:`validate_manifest`, a pure function
that accepts a :class:`~permaskills_core.SkillManifest` and returns a
:class:`ValidationResult`.  It never raises: every violated rule is
collected so the author can fix them all at once, and every message is
actionable (``"<problem> → Solution: <fix>"``).

Rules:

* ``name``, ``version``, ``description`` and ``author`` are present and
  non-empty.
* ``name`` -- 1-64 characters of ``[a-z0-9-]``.
* ``version`` -- semantic ``MAJOR.MINOR.PATCH``.
* ``description`` -- at most 1024 characters.
* each dependency name follows the ``name`` rule, and its version is
  either an exact semantic version or ``*``.
* no frontmatter keys outside the manifest schema.

Example::

    from permaskills_core import parse_manifest, validate_manifest

    result = validate_manifest(parse_manifest(Path("my-skill")))
    if not result.valid:
        for msg in result.errors:
            print(f"  - {msg}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from permaskills_core.manifest import ANY_VERSION, MANIFEST_FILENAME, REQUIRED_FIELDS, SkillManifest

NAME_RE = re.compile(r"^[a-z0-9-]{1,64}$")
VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")

_NAME_MAX_LEN = 64
_DESCRIPTION_MAX_LEN = 1024


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of :func:`validate_manifest`."""

    valid: bool
    errors: list[str] = field(default_factory=list)


def missing_field_error(field_name: str) -> str:
    return (
        f"Missing required field: {field_name} → Solution: Add '{field_name}' "
        f"to {MANIFEST_FILENAME} frontmatter"
    )


def validate_manifest(manifest: SkillManifest) -> ValidationResult:
    """Check *manifest* against every manifest rule.

    Args:
        manifest: The manifest to check.

    Returns:
        A :class:`ValidationResult` whose ``errors`` list is empty when
        the manifest is valid.
    """
    errors: list[str] = []

    for field_name in REQUIRED_FIELDS:
        value = getattr(manifest, field_name)
        if not value or not value.strip():
            errors.append(missing_field_error(field_name))

    # name
    if manifest.name:
        if len(manifest.name) > _NAME_MAX_LEN:
            errors.append(
                f"Field name exceeds maximum length of {_NAME_MAX_LEN} characters "
                f"→ Solution: Shorten the name to {_NAME_MAX_LEN} characters or fewer"
            )
        elif not NAME_RE.match(manifest.name):
            errors.append(
                "Invalid name format → Solution: Use only lowercase letters, numbers, "
                "and hyphens (e.g., 'my-skill-name')"
            )

    # version
    if manifest.version and not VERSION_RE.match(manifest.version):
        errors.append(
            "Invalid version format → Solution: Use semantic versioning "
            "(e.g., '1.0.0', '2.3.15')"
        )

    # description
    if len(manifest.description) > _DESCRIPTION_MAX_LEN:
        errors.append(
            f"Field description exceeds maximum length of {_DESCRIPTION_MAX_LEN} characters "
            f"→ Solution: Shorten the description to {_DESCRIPTION_MAX_LEN} characters or fewer"
        )

    # dependencies
    for dep in manifest.dependencies:
        if not NAME_RE.match(dep.name):
            errors.append(
                f"Invalid dependency name: '{dep.name}' → Solution: Use only lowercase "
                f"letters, numbers, and hyphens"
            )
        if dep.version != ANY_VERSION and not VERSION_RE.match(dep.version):
            errors.append(
                f"Invalid version for dependency '{dep.name}': '{dep.version}' "
                f"→ Solution: Use an exact semantic version (e.g., '1.0.0') or '*'"
            )

    # unknown keys
    for key in manifest.extra:
        errors.append(
            f"Unexpected field: {key} → Solution: Remove '{key}' from "
            f"{MANIFEST_FILENAME} frontmatter (not a valid field)"
        )

    return ValidationResult(valid=not errors, errors=errors)
