"""Relevance-ranked skill search on top of a registry client."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from permaskills_core.registry import RegistryClient, SkillMetadata

_logger = logging.getLogger(__name__)

#: Searches slower than this (seconds) are logged as warnings.
SLOW_SEARCH_SECONDS = 2.0


def relevance(skill: SkillMetadata, query: str) -> int:
    """Score how well *skill* matches *query* (higher is better).

    Exact name 5, name prefix 4, name substring 3, description
    substring 2, tag substring 1, otherwise 0.
    """
    q = query.strip().lower()
    if not q:
        return 0
    name = skill.name.lower()
    if name == q:
        return 5
    if name.startswith(q):
        return 4
    if q in name:
        return 3
    if q in skill.description.lower():
        return 2
    if any(q in tag.lower() for tag in skill.tags):
        return 1
    return 0


class SearchService:
    """Search the registry, filter by tags and sort by relevance.

    Example::

        service = SearchService(registry)
        for skill in await service.search("pdf", tags=["documents"]):
            print(skill.identifier, skill.description)
    """

    def __init__(self, registry: RegistryClient) -> None:
        self._registry = registry

    async def search(self, query: str, *, tags: Sequence[str] = ()) -> list[SkillMetadata]:
        """Return skills matching *query* that carry every tag in *tags*.

        Tag filtering is case-insensitive.  Results are ordered by
        :func:`relevance`, then by name.
        """
        started = time.monotonic()
        results = await self._registry.search_skills(query)

        wanted = {t.lower() for t in tags}
        if wanted:
            results = [s for s in results if wanted <= {t.lower() for t in s.tags}]

        results.sort(key=lambda s: (-relevance(s, query), s.name))

        elapsed = time.monotonic() - started
        if elapsed > SLOW_SEARCH_SECONDS:
            _logger.warning("Search for %r took %.1fs", query, elapsed)
        return results
