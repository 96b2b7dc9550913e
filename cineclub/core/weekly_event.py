"""Weekly themed event: rank the club's ratings, ask for a theme, enrich, persist."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog.tmdb_client import TMDBClient
from cineclub.config import (
    CATALOG_CONCURRENCY,
    REASON_LANGUAGE,
    WEEKLY_EVENT_CANDIDATES,
    WEEKLY_EVENT_VOTE_DAYS,
)
from cineclub.core.blocklist import BlockedSet
from cineclub.core.candidate_filter import filter_candidates
from cineclub.core.enricher import CatalogEnricher, CatalogMatch, match_from_movie
from cineclub.core.errors import ConfigurationError, GenerationError, WeeklyEventError
from cineclub.core.extractor import ExtractFailure, candidate_from_entry, extract_object
from cineclub.core.generation import GenerationClient
from cineclub.core.prompts import system_prompt
from cineclub.core.schemas import (
    Candidate,
    RatingIn,
    WeeklyEventCandidate,
    WeeklyEventOut,
)
from cineclub.db.models import CommunityRating, WeeklyEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedMovie:
    tmdb_id: int
    title: Optional[str]
    average: float
    votes: int


def rank_community_ratings(
    rows: Iterable[Tuple[int, Optional[str], float]],
    *,
    min_votes: int = 2,
    limit: int = 80,
) -> List[RankedMovie]:
    """Average ``overall`` per movie, best first, ignoring thinly voted movies."""
    totals: Dict[int, List[float]] = defaultdict(list)
    titles: Dict[int, str] = {}
    for tmdb_id, title, overall in rows:
        if isinstance(tmdb_id, bool) or not isinstance(tmdb_id, int) or tmdb_id <= 0:
            continue
        if overall is None:
            continue
        totals[tmdb_id].append(float(overall))
        if title and tmdb_id not in titles:
            titles[tmdb_id] = title

    ranked = [
        RankedMovie(tmdb_id, titles.get(tmdb_id), sum(scores) / len(scores), len(scores))
        for tmdb_id, scores in totals.items()
        if len(scores) >= min_votes
    ]
    ranked.sort(key=lambda movie: (-movie.average, -movie.votes, movie.tmdb_id))
    return ranked[: max(0, limit)]


def load_rating_rows(db: Session) -> List[Tuple[int, Optional[str], float]]:
    stmt = select(CommunityRating.tmdb_id, CommunityRating.title, CommunityRating.overall)
    return [tuple(row) for row in db.execute(stmt).all()]


def record_rating(db: Session, rating: RatingIn) -> None:
    existing = db.execute(
        select(CommunityRating).where(
            CommunityRating.user_id == rating.uid,
            CommunityRating.tmdb_id == rating.tmdb_id,
        )
    ).scalar_one_or_none()
    if existing is None:
        db.add(
            CommunityRating(
                user_id=rating.uid,
                tmdb_id=rating.tmdb_id,
                title=rating.title,
                overall=rating.overall,
            )
        )
    else:
        existing.overall = rating.overall
        if rating.title:
            existing.title = rating.title
    db.commit()


def event_id_for(moment: datetime) -> str:
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-w{iso_week:02d}"


class WeeklyEventGenerator:
    def __init__(
        self,
        generator: Optional[GenerationClient],
        catalog: Optional[TMDBClient],
        *,
        candidate_count: int = WEEKLY_EVENT_CANDIDATES,
        vote_days: int = WEEKLY_EVENT_VOTE_DAYS,
        concurrency: int = CATALOG_CONCURRENCY,
        language: str = REASON_LANGUAGE,
    ):
        self._generator = generator
        self._catalog = catalog
        self._enricher = (
            CatalogEnricher(catalog, concurrency=concurrency) if catalog else None
        )
        self._candidate_count = max(1, candidate_count)
        self._vote_days = vote_days
        self._concurrency = max(1, concurrency)
        self._language = language

    async def generate(
        self, ranked: Sequence[RankedMovie], now: datetime | None = None
    ) -> WeeklyEventOut:
        if self._generator is None:
            raise ConfigurationError("Generative service is not configured.")
        if self._enricher is None:
            raise ConfigurationError("Catalog service is not configured.")
        if not ranked:
            raise WeeklyEventError("Not enough rated movies to build a ranking.")

        blocked = BlockedSet(ids={movie.tmdb_id for movie in ranked})
        for movie in ranked:
            blocked.add_title(movie.title)

        try:
            raw = await self._generator.generate(
                system_prompt(
                    "weekly_event",
                    language=self._language,
                    candidate_count=self._candidate_count,
                ),
                _ranking_prompt(ranked),
            )
        except GenerationError as exc:
            raise WeeklyEventError(f"Generation failed: {exc}") from exc

        payload = extract_object(raw)
        if isinstance(payload, ExtractFailure):
            raise WeeklyEventError(f"Generated event is invalid: {payload.reason}")

        theme = _clean(payload.get("theme"))
        intro = _clean(payload.get("intro"))
        entries = payload.get("candidates")
        if not theme or not intro or not isinstance(entries, list) or not entries:
            raise WeeklyEventError("Generated event is incomplete (theme/intro/candidates).")

        proposals = [
            c
            for c in (_proposal(entry) for entry in entries[: self._candidate_count])
            if c is not None
        ]
        proposals = filter_candidates(proposals, blocked, require_reason=True)
        picks = await self._resolve(proposals, blocked)
        if not picks:
            raise WeeklyEventError("No proposed movie is both new to the club and in the catalog.")

        created = now or datetime.now(timezone.utc)
        return WeeklyEventOut(
            event_id=event_id_for(created),
            created_at=created,
            start_vote_date=created,
            end_vote_date=created + timedelta(days=self._vote_days),
            status="voting",
            theme=theme,
            intro=intro,
            candidates=picks,
        )

    async def _resolve(
        self, proposals: Sequence[Candidate], blocked: BlockedSet
    ) -> List[WeeklyEventCandidate]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _lookup(candidate: Candidate):
            async with semaphore:
                return await self._enricher.lookup(candidate.title, candidate.year)

        async def _details(match: CatalogMatch) -> CatalogMatch:
            async with semaphore:
                try:
                    movie = await self._catalog.movie_details(match.tmdb_id)
                except httpx.HTTPError as exc:
                    logger.warning(
                        "Catalog details failed for tmdb_id=%s: %s", match.tmdb_id, exc
                    )
                    return match
            detailed = match_from_movie(movie) if isinstance(movie, dict) else None
            if detailed is None:
                return match
            return CatalogMatch(
                tmdb_id=match.tmdb_id,
                title=detailed.title or match.title,
                year=detailed.year or match.year,
                poster_url=detailed.poster_url or match.poster_url,
            )

        matches = await asyncio.gather(*(_lookup(c) for c in proposals))
        accepted: List[Tuple[Candidate, CatalogMatch]] = []
        chosen = set()
        for candidate, match in zip(proposals, matches):
            if match is None:
                logger.info(
                    "Weekly event proposal '%s' not found in the catalog; skipping.",
                    candidate.title,
                )
                continue
            if blocked.has_id(match.tmdb_id) or match.tmdb_id in chosen:
                logger.warning(
                    "Weekly event proposal '%s' (tmdb_id=%s) is already ranked; skipping.",
                    candidate.title,
                    match.tmdb_id,
                )
                continue
            chosen.add(match.tmdb_id)
            accepted.append((candidate, match))

        details = await asyncio.gather(*(_details(m) for _, m in accepted))
        return [
            WeeklyEventCandidate(
                tmdb_id=detail.tmdb_id,
                title=detail.title or candidate.title,
                year=detail.year or candidate.year,
                poster_url=detail.poster_url,
                pitch=candidate.reason or "",
            )
            for (candidate, _), detail in zip(accepted, details)
        ]


def save_event(db: Session, event: WeeklyEventOut) -> None:
    db.merge(
        WeeklyEvent(
            event_id=event.event_id,
            created_at=event.created_at,
            start_vote_date=event.start_vote_date,
            end_vote_date=event.end_vote_date,
            status=event.status,
            theme=event.theme,
            intro=event.intro,
            candidates=[
                c.model_dump(mode="json", by_alias=True) for c in event.candidates
            ],
        )
    )
    db.commit()


def latest_event(db: Session) -> Optional[WeeklyEventOut]:
    row = db.execute(
        select(WeeklyEvent).order_by(WeeklyEvent.start_vote_date.desc()).limit(1)
    ).scalar_one_or_none()
    if row is None:
        return None
    return WeeklyEventOut(
        event_id=row.event_id,
        created_at=row.created_at,
        start_vote_date=row.start_vote_date,
        end_vote_date=row.end_vote_date,
        status=row.status,
        theme=row.theme,
        intro=row.intro,
        candidates=[WeeklyEventCandidate.model_validate(c) for c in row.candidates or []],
    )


def _ranking_prompt(ranked: Sequence[RankedMovie]) -> str:
    lines = [
        f"#{position} {movie.title or 'tmdbId=' + str(movie.tmdb_id)} | "
        f"average={movie.average:.2f} | votes={movie.votes}"
        for position, movie in enumerate(ranked, start=1)
    ]
    return (
        f"This is the club's global ranking (top {len(ranked)}):\n\n"
        + "\n".join(lines)
        + "\n\nEvery movie above is already part of the ranking: do NOT propose any "
        "of them, use them only to understand the club's taste."
    )


def _proposal(entry: Any) -> Optional[Candidate]:
    if isinstance(entry, dict) and "pitch" not in entry and "aiPitch" in entry:
        entry = {**entry, "pitch": entry["aiPitch"]}
    return candidate_from_entry(entry, "pitch")


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
