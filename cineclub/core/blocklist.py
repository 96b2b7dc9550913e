from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Set

from cineclub.core.schemas import PendingItem, RatedItem
from cineclub.core.titles import normalize_title

logger = logging.getLogger(__name__)

TitleResolver = Callable[[str, Optional[str]], Awaitable[Optional[int]]]


@dataclass
class BlockedSet:
    ids: Set[int] = field(default_factory=set)
    normalized_titles: Set[str] = field(default_factory=set)

    def has_id(self, tmdb_id: int | None) -> bool:
        return tmdb_id is not None and tmdb_id in self.ids

    def has_title(self, title: str | None) -> bool:
        key = normalize_title(title)
        return bool(key) and key in self.normalized_titles

    def add_title(self, title: str | None) -> None:
        key = normalize_title(title)
        if key:
            self.normalized_titles.add(key)


async def build_blocked_set(
    rated: Sequence[RatedItem],
    pending: Sequence[PendingItem],
    resolver: TitleResolver | None = None,
    *,
    extra_ids: Iterable[int] = (),
    concurrency: int = 5,
) -> BlockedSet:
    """Union everything the user has rated or queued into one exclusion set.

    When ``resolver`` is given, pending items that only carry a title are
    looked up in the catalog so id-only collisions are caught too. Lookups are
    best effort: a failing resolver never fails the build.
    """
    blocked = BlockedSet()
    for item in list(rated) + list(pending):
        if item.tmdb_id is not None:
            blocked.ids.add(item.tmdb_id)
        blocked.add_title(item.title)
    blocked.ids.update(iid for iid in extra_ids if iid is not None)

    if resolver is None:
        return blocked

    unresolved = [
        item
        for item in pending
        if item.tmdb_id is None and normalize_title(item.title)
    ]
    if not unresolved:
        return blocked

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _resolve(item: PendingItem) -> Optional[int]:
        async with semaphore:
            try:
                return await resolver(item.title or "", item.year)
            except Exception:
                logger.warning(
                    "Could not resolve pending title '%s'; blocking by title only.",
                    item.title,
                    exc_info=True,
                )
                return None

    resolved = await asyncio.gather(*(_resolve(item) for item in unresolved))
    found = [iid for iid in resolved if iid is not None]
    blocked.ids.update(found)
    logger.debug(
        "Resolved %d of %d pending titles to catalog ids.", len(found), len(unresolved)
    )
    return blocked
