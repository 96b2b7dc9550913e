from __future__ import annotations

from typing import Iterable, List, Set, Tuple

from cineclub.config import DEFAULT_MAX_ITEMS, MAX_ITEMS_LIMIT
from cineclub.core.schemas import Candidate, Recommendation
from cineclub.core.titles import normalize_title


def resolve_max_items(value: int | None) -> int:
    if value is None or value <= 0:
        return DEFAULT_MAX_ITEMS
    return min(value, MAX_ITEMS_LIMIT)


def _identity(candidate: Candidate) -> Tuple[str, object] | None:
    if candidate.tmdb_id is not None:
        return ("id", candidate.tmdb_id)
    key = normalize_title(candidate.title)
    return ("title", key) if key else None


def assemble(candidates: Iterable[Candidate], max_items: int) -> List[Recommendation]:
    """Dedup (first occurrence wins) and truncate to ``max_items``."""
    limit = resolve_max_items(max_items)
    seen: Set[Tuple[str, object]] = set()
    seen_titles: Set[str] = set()
    result: List[Recommendation] = []
    for candidate in candidates:
        if len(result) >= limit:
            break
        identity = _identity(candidate)
        title = (candidate.title or "").strip()
        reason = (candidate.reason or "").strip()
        if identity is None or not title or not reason:
            continue
        # A repeated normalized title is a duplicate whichever side carries an id.
        title_key = normalize_title(title)
        if identity in seen or title_key in seen_titles:
            continue
        seen.add(identity)
        seen_titles.add(title_key)
        result.append(
            Recommendation(
                tmdb_id=candidate.tmdb_id,
                title=title,
                reason=reason,
                poster_url=candidate.poster_url,
            )
        )
    return result
