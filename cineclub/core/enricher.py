from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from cachetools import TTLCache

from catalog.tmdb_client import TMDBClient
from cineclub.core.schemas import Candidate
from cineclub.core.titles import normalize_title

logger = logging.getLogger(__name__)

# Keyed by (normalized title, year). A cached None means "catalog has no match".
CATALOG_LOOKUP_CACHE: TTLCache[Tuple[str, str], Optional["CatalogMatch"]] = TTLCache(
    maxsize=1000, ttl=300
)


@dataclass(frozen=True)
class CatalogMatch:
    tmdb_id: int
    title: Optional[str] = None
    year: Optional[str] = None
    poster_url: Optional[str] = None


def match_from_movie(movie: Dict[str, Any]) -> Optional[CatalogMatch]:
    tmdb_id = movie.get("id")
    if isinstance(tmdb_id, bool) or not isinstance(tmdb_id, int) or tmdb_id <= 0:
        return None
    title = movie.get("title")
    return CatalogMatch(
        tmdb_id=tmdb_id,
        title=title if isinstance(title, str) and title.strip() else None,
        year=TMDBClient.release_year(movie),
        poster_url=TMDBClient.poster_url(movie.get("poster_path")),
    )


class CatalogEnricher:
    """Resolves free-text titles to catalog ids. Never raises on lookup failures."""

    def __init__(self, tmdb_client: TMDBClient, *, concurrency: int = 5):
        self._tmdb = tmdb_client
        self._concurrency = max(1, concurrency)

    async def lookup(
        self, title: str | None, year: str | int | None = None
    ) -> Optional[CatalogMatch]:
        key = normalize_title(title)
        if not key:
            return None
        year_key = str(year).strip() if year is not None else ""
        cache_key = (key, year_key)
        if cache_key in CATALOG_LOOKUP_CACHE:
            return CATALOG_LOOKUP_CACHE[cache_key]

        try:
            results = await self._tmdb.search_movie(str(title).strip(), year_key or None)
        except httpx.HTTPError as exc:
            logger.warning("Catalog search failed for '%s': %s", title, exc)
            return None

        match = None
        for movie in results:
            if isinstance(movie, dict):
                match = match_from_movie(movie)
                if match is not None:
                    break
        CATALOG_LOOKUP_CACHE[cache_key] = match
        return match

    async def resolve(
        self, title: str | None, year: str | int | None = None
    ) -> Optional[int]:
        match = await self.lookup(title, year)
        return match.tmdb_id if match else None

    async def enrich(self, candidates: Sequence[Candidate]) -> List[Candidate]:
        """Attach catalog id and poster to every candidate, keeping input order.

        A catalog hit replaces any id the model guessed. Misses leave the
        candidate untouched.
        """
        if not candidates:
            return []
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(candidate: Candidate) -> Candidate:
            async with semaphore:
                match = await self.lookup(candidate.title, candidate.year)
            if match is None:
                return candidate
            return candidate.with_catalog(match.tmdb_id, match.poster_url)

        return list(await asyncio.gather(*(_one(c) for c in candidates)))
