from __future__ import annotations

from typing import Iterable, List, Sequence

from cineclub.core.schemas import FACETS, Candidate, ChatMessage, RatedItem

NO_RATINGS_TEXT = "The user has not rated any movies yet."


def _format_score(value: float) -> str:
    return f"{value:g}/10"


def _format_rating(item: RatedItem) -> str:
    if item.title and item.title.strip():
        name = f"{item.title.strip()} ({item.year or '?'})"
    else:
        name = f"Movie with tmdbId={item.tmdb_id}"
    parts = [
        f"{facet} {_format_score(item.scores[facet])}"
        for facet in FACETS
        if facet in item.scores
    ]
    if not parts:
        return f"- {name}"
    return f"- {name}: " + ", ".join(parts)


def summarize_ratings(ratings: Sequence[RatedItem], limit: int = 80) -> str:
    """Render at most ``limit`` ratings, in the caller's order, one per line."""
    subset = list(ratings)[: max(0, limit)]
    if not subset:
        return NO_RATINGS_TEXT
    return "\n".join(_format_rating(item) for item in subset)


def summarize_blocked_titles(titles: Iterable[str], limit: int = 200) -> str:
    ordered: List[str] = sorted(t for t in titles if t)
    if not ordered:
        return ""
    return "\n".join(f"- {title}" for title in ordered[: max(0, limit)])


def summarize_conversation(messages: Sequence[ChatMessage], limit: int = 10) -> str:
    recent = list(messages)[-limit:] if limit > 0 else []
    lines = []
    for message in recent:
        speaker = "User" if message.role == "user" else "Assistant"
        lines.append(f"{speaker}: {message.content.strip()}")
    return "\n".join(lines)


def summarize_catalog_candidates(candidates: Sequence[Candidate], limit: int = 40) -> str:
    lines = []
    for candidate in list(candidates)[: max(0, limit)]:
        year = f" ({candidate.year})" if candidate.year else ""
        lines.append(f"- {candidate.title}{year} [tmdbId={candidate.tmdb_id}]")
    return "\n".join(lines)
