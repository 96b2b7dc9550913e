from __future__ import annotations

import logging
from typing import Iterable, List

from cineclub.core.blocklist import BlockedSet
from cineclub.core.schemas import Candidate
from cineclub.core.titles import normalize_title

logger = logging.getLogger(__name__)


def rejection_reason(
    candidate: Candidate, blocked: BlockedSet, *, require_reason: bool = False
) -> str | None:
    """Return why ``candidate`` must be dropped, or None when it is acceptable."""
    key = normalize_title(candidate.title)
    if not key:
        return "missing title"
    if key in blocked.normalized_titles:
        return "title already seen or queued"
    if blocked.has_id(candidate.tmdb_id):
        return "id already seen or queued"
    if require_reason and not (candidate.reason or "").strip():
        return "missing reason"
    return None


def is_blocked(candidate: Candidate, blocked: BlockedSet) -> bool:
    return rejection_reason(candidate, blocked) is not None


def filter_candidates(
    candidates: Iterable[Candidate],
    blocked: BlockedSet,
    *,
    require_reason: bool = False,
) -> List[Candidate]:
    kept: List[Candidate] = []
    for candidate in candidates:
        reason = rejection_reason(candidate, blocked, require_reason=require_reason)
        if reason is None:
            kept.append(candidate)
        else:
            logger.debug("Dropping candidate '%s': %s", candidate.title, reason)
    return kept
