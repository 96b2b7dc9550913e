"""Tiered recommendation pipeline.

The pipeline tries, in order, the generative service, the catalog's
"related movies" graph seeded by the user's favourites, and finally the
user's own top-rated movies. The first tier that produces at least one
usable recommendation wins; every hand-off is logged with its cause.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

import httpx

from catalog.tmdb_client import TMDBClient
from cineclub.config import (
    CATALOG_CANDIDATE_POOL,
    CATALOG_CONCURRENCY,
    CATALOG_NEIGHBOR_SEEDS,
    PROMPT_BLOCKED_TITLES_LIMIT,
    PROMPT_RATINGS_LIMIT,
    REASON_LANGUAGE,
    RECOMMEND_REQUIRE_AI,
)
from cineclub.core.assembler import assemble, resolve_max_items
from cineclub.core.blocklist import BlockedSet, build_blocked_set
from cineclub.core.candidate_filter import filter_candidates, is_blocked
from cineclub.core.context import (
    summarize_blocked_titles,
    summarize_catalog_candidates,
    summarize_ratings,
)
from cineclub.core.enricher import CatalogEnricher, match_from_movie
from cineclub.core.errors import ConfigurationError, GenerationError
from cineclub.core.extractor import ExtractFailure, extract_candidates
from cineclub.core.generation import GenerationClient
from cineclub.core.prompts import system_prompt
from cineclub.core.schemas import (
    Candidate,
    RatedItem,
    Recommendation,
    RecommendRequest,
    RecommendResponse,
)
from cineclub.core.titles import normalize_title

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    GENERATIVE = "generative"
    CATALOG_NEIGHBOR = "catalog_neighbor"
    LOCAL_HEURISTIC = "local_heuristic"
    EXHAUSTED = "exhausted"


_NEXT_TIER = {
    Tier.GENERATIVE: Tier.CATALOG_NEIGHBOR,
    Tier.CATALOG_NEIGHBOR: Tier.LOCAL_HEURISTIC,
    Tier.LOCAL_HEURISTIC: Tier.EXHAUSTED,
}

_TIER_INFO = {
    Tier.GENERATIVE: "Recommendations generated by the AI service, excluding movies you rated or queued.",
    Tier.CATALOG_NEIGHBOR: "Degraded result: catalog movies related to your top-rated ones, excluding movies you rated or queued.",
    Tier.LOCAL_HEURISTIC: "Degraded result: no new movies could be found, these are your own top-rated movies.",
    Tier.EXHAUSTED: "Degraded result: no recommendations are available right now.",
}
NO_RATINGS_INFO = "User has no ratings yet."


@dataclass
class TierOutcome:
    candidates: List[Candidate] = field(default_factory=list)
    reason: str = ""


@dataclass
class PipelineResult:
    tier: Tier
    recommendations: List[Recommendation]
    info: str

    @property
    def degraded(self) -> bool:
        return self.tier is not Tier.GENERATIVE

    def to_response(self) -> RecommendResponse:
        return RecommendResponse(
            recommendations=self.recommendations,
            info=self.info,
            tier=self.tier.value,
            degraded=self.degraded,
        )


@dataclass
class _Run:
    request: RecommendRequest
    max_items: int
    blocked: BlockedSet
    # Filled once per run and shared by the generative prompt and the neighbor tier.
    neighbors: Optional[TierOutcome] = None


class RecommendationPipeline:
    def __init__(
        self,
        generator: Optional[GenerationClient] = None,
        catalog: Optional[TMDBClient] = None,
        *,
        require_generation: bool = RECOMMEND_REQUIRE_AI,
        concurrency: int = CATALOG_CONCURRENCY,
        neighbor_seeds: int = CATALOG_NEIGHBOR_SEEDS,
        neighbor_relation: str = "recommendations",
        candidate_pool: int = CATALOG_CANDIDATE_POOL,
        ratings_limit: int = PROMPT_RATINGS_LIMIT,
        blocked_titles_limit: int = PROMPT_BLOCKED_TITLES_LIMIT,
        language: str = REASON_LANGUAGE,
    ):
        self._generator = generator
        self._catalog = catalog
        self._enricher = (
            CatalogEnricher(catalog, concurrency=concurrency) if catalog else None
        )
        self._require_generation = require_generation
        self._concurrency = concurrency
        self._neighbor_seeds = neighbor_seeds
        self._neighbor_relation = neighbor_relation
        self._candidate_pool = max(0, candidate_pool)
        self._ratings_limit = ratings_limit
        self._blocked_titles_limit = blocked_titles_limit
        self._language = language
        self._tiers: Dict[Tier, Callable[[_Run], Awaitable[TierOutcome]]] = {
            Tier.GENERATIVE: self._generative,
            Tier.CATALOG_NEIGHBOR: self._catalog_neighbors,
            Tier.LOCAL_HEURISTIC: self._local_heuristic,
        }

    async def run(self, request: RecommendRequest) -> PipelineResult:
        if not request.ratings:
            return PipelineResult(Tier.EXHAUSTED, [], NO_RATINGS_INFO)
        if self._generator is None and self._require_generation:
            raise ConfigurationError("Generative service is not configured.")

        resolver = self._enricher.resolve if self._enricher else None
        blocked = await build_blocked_set(
            request.ratings,
            request.pending,
            resolver,
            extra_ids=request.pending_tmdb_ids,
            concurrency=self._concurrency,
        )
        run = _Run(request, resolve_max_items(request.max_items), blocked)
        logger.debug(
            "Recommendation run uid=%s max_items=%d blocked_ids=%d blocked_titles=%d",
            request.uid,
            run.max_items,
            len(blocked.ids),
            len(blocked.normalized_titles),
        )

        skipped: List[str] = []
        tier = Tier.GENERATIVE
        while tier is not Tier.EXHAUSTED:
            outcome = await self._tiers[tier](run)
            recommendations = assemble(outcome.candidates, run.max_items)
            if recommendations:
                logger.info(
                    "Recommendation tier %s produced %d items for uid=%s.",
                    tier.value,
                    len(recommendations),
                    request.uid,
                )
                return PipelineResult(tier, recommendations, _info(tier, skipped))
            reason = outcome.reason or "no usable candidates"
            next_tier = _NEXT_TIER[tier]
            logger.info(
                "Recommendation tier %s yielded nothing for uid=%s (%s); advancing to %s.",
                tier.value,
                request.uid,
                reason,
                next_tier.value,
            )
            skipped.append(f"{tier.value}: {reason}")
            tier = next_tier
        return PipelineResult(Tier.EXHAUSTED, [], _info(Tier.EXHAUSTED, skipped))

    async def _generative(self, run: _Run) -> TierOutcome:
        if self._generator is None:
            return TierOutcome(reason="generative service not configured")
        grounding = await self._neighbors(run)
        try:
            raw = await self._generator.generate(
                system_prompt("recommendations", language=self._language),
                self._user_prompt(run, grounding.candidates),
            )
        except GenerationError as exc:
            return TierOutcome(reason=str(exc))

        extracted = extract_candidates(raw, "recommendations", "reason")
        if isinstance(extracted, ExtractFailure):
            return TierOutcome(reason=extracted.reason)
        if not extracted:
            return TierOutcome(reason="no candidates in payload")

        survivors = filter_candidates(extracted, run.blocked, require_reason=True)
        if survivors and self._enricher is not None:
            enriched = await self._enricher.enrich(survivors)
            survivors = filter_candidates(enriched, run.blocked, require_reason=True)
        if not survivors:
            return TierOutcome(reason="every candidate was blocked or invalid")
        return TierOutcome(survivors)

    async def _catalog_neighbors(self, run: _Run) -> TierOutcome:
        return await self._neighbors(run)

    async def _neighbors(self, run: _Run) -> TierOutcome:
        if run.neighbors is None:
            run.neighbors = await self._collect_neighbors(run)
        return run.neighbors

    async def _collect_neighbors(self, run: _Run) -> TierOutcome:
        """Unblocked catalog movies related to the user's top-rated seeds."""
        if self._catalog is None:
            return TierOutcome(reason="catalog service not configured")
        seeds = _top_rated([r for r in run.request.ratings if r.tmdb_id])
        seeds = seeds[: self._neighbor_seeds]
        if not seeds:
            return TierOutcome(reason="no rated movies with catalog ids")

        limit = max(run.max_items, self._candidate_pool)
        chosen: List[Candidate] = []
        chosen_ids: Set[int] = set()
        chosen_titles: Set[str] = set()
        for seed in seeds:
            if len(chosen) >= limit:
                break
            try:
                related = await self._catalog.related_movies(
                    seed.tmdb_id, self._neighbor_relation
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "Related movies lookup failed for tmdb_id=%s: %s", seed.tmdb_id, exc
                )
                continue
            for movie in related:
                if len(chosen) >= limit:
                    break
                candidate = _neighbor_candidate(movie, seed)
                if candidate is None or is_blocked(candidate, run.blocked):
                    continue
                key = normalize_title(candidate.title)
                if candidate.tmdb_id in chosen_ids or key in chosen_titles:
                    continue
                chosen.append(candidate)
                chosen_ids.add(candidate.tmdb_id)
                chosen_titles.add(key)
        if not chosen:
            return TierOutcome(reason="no related movies found")
        return TierOutcome(chosen)

    async def _local_heuristic(self, run: _Run) -> TierOutcome:
        # Ignores the blocked set: every item here is already seen.
        candidates = [
            Candidate(
                title=item.display_title,
                year=item.year,
                tmdb_id=item.tmdb_id,
                reason=f"You rated it {item.overall:g}/10, one of your favourites so far.",
            )
            for item in _top_rated(run.request.ratings)
        ]
        if not candidates:
            return TierOutcome(reason="user has no rated movies")
        return TierOutcome(candidates)

    def _user_prompt(self, run: _Run, grounding: Sequence[Candidate] = ()) -> str:
        request = run.request
        parts = [
            f"User uid={request.uid}.",
            f"Some of their ratings (at most {self._ratings_limit}):\n"
            + summarize_ratings(request.ratings, self._ratings_limit),
        ]
        blocked_titles = summarize_blocked_titles(
            run.blocked.normalized_titles, self._blocked_titles_limit
        )
        if blocked_titles:
            parts.append(
                "Movies the user has already seen or queued (excluded, never recommend them):\n"
                + blocked_titles
            )
        if grounding:
            parts.append(
                "Catalog candidates related to the user's favourites. Choose your "
                "recommendations from this list and copy its \"tmdbId\" and \"title\"; "
                "only go outside it if fewer than the requested number fit:\n"
                + summarize_catalog_candidates(grounding)
            )
        parts.append(
            f"Return up to {run.max_items} varied recommendations with \"tmdbId\" "
            "when you know it, \"title\" and a clear \"reason\". When in doubt, "
            "suggest movies similar to the ones the user rated highest."
        )
        return "\n\n".join(parts)


def _top_rated(ratings: List[RatedItem]) -> List[RatedItem]:
    return sorted(ratings, key=lambda item: item.overall, reverse=True)


def _neighbor_candidate(movie: Any, seed: RatedItem) -> Optional[Candidate]:
    if not isinstance(movie, dict):
        return None
    match = match_from_movie(movie)
    if match is None or not match.title:
        return None
    return Candidate(
        title=match.title,
        year=match.year,
        tmdb_id=match.tmdb_id,
        poster_url=match.poster_url,
        reason=(
            f"Related to {seed.display_title}, which you rated {seed.overall:g}/10."
        ),
    )


def _info(tier: Tier, skipped: List[str]) -> str:
    info = _TIER_INFO[tier]
    if skipped:
        info = f"{info} Skipped tiers: {'; '.join(skipped)}."
    return info
