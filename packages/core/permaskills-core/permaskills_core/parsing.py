"""Frontmatter parsing for ``SKILL.md`` files.

A ``SKILL.md`` starts with a YAML block delimited by ``---`` lines,
followed by a free-form markdown body.  :func:`split_frontmatter` is
strict: anything that is not a well-formed mapping raises
:class:`~permaskills_core.ParseError` instead of being silently
treated as body text.
"""

from __future__ import annotations

from typing import Any

import yaml

from permaskills_core.exceptions import ParseError

_DELIMITER = "---"


def split_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    """Split ``SKILL.md`` content into YAML frontmatter and markdown body.

    Args:
        raw: Full text content of a ``SKILL.md`` file.

    Returns:
        A ``(frontmatter_dict, body_str)`` tuple.

    Raises:
        ParseError: If *raw* is empty, has no ``---`` delimited block,
            or the block is not a YAML mapping.

    Example::

        meta, body = split_frontmatter(Path("SKILL.md").read_text())
        print(meta["name"])
    """
    if not raw.strip():
        raise ParseError(
            "SKILL.md is empty",
            solution="Add YAML frontmatter with required fields "
            "(name, version, description, author)",
        )

    text = raw.lstrip("\ufeff")
    lines = text.splitlines()
    if not lines or lines[0].strip() != _DELIMITER:
        raise ParseError(
            "SKILL.md missing frontmatter",
            snippet=text,
            solution="Add YAML frontmatter between --- delimiters at the top of the file",
        )

    try:
        end = next(i for i in range(1, len(lines)) if lines[i].strip() == _DELIMITER)
    except StopIteration:
        raise ParseError(
            "SKILL.md frontmatter is not closed",
            snippet=text,
            solution="Add a closing --- line after the frontmatter fields",
        ) from None

    fm_text = "\n".join(lines[1:end])
    body = "\n".join(lines[end + 1 :]).strip()

    try:
        metadata = yaml.safe_load(fm_text)
    except yaml.YAMLError as exc:
        raise ParseError(
            "YAML frontmatter is malformed",
            snippet=fm_text,
            solution="Check YAML syntax (indentation, colons, quotes)",
        ) from exc

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ParseError(
            "YAML frontmatter must be a mapping of fields",
            snippet=fm_text,
            solution="Write the frontmatter as 'key: value' lines",
        )
    return {str(k): v for k, v in metadata.items()}, body
