from __future__ import annotations

import logging
from typing import List, Optional

from catalog.tmdb_client import TMDBClient
from cineclub.config import (
    CATALOG_CONCURRENCY,
    PROMPT_BLOCKED_TITLES_LIMIT,
    PROMPT_RATINGS_LIMIT,
    REASON_LANGUAGE,
)
from cineclub.core.blocklist import build_blocked_set
from cineclub.core.candidate_filter import filter_candidates
from cineclub.core.context import (
    summarize_blocked_titles,
    summarize_conversation,
    summarize_ratings,
)
from cineclub.core.enricher import CatalogEnricher
from cineclub.core.errors import ConfigurationError, GenerationError
from cineclub.core.extractor import ExtractFailure, candidate_from_entry, extract_object
from cineclub.core.generation import GenerationClient
from cineclub.core.prompts import system_prompt
from cineclub.core.schemas import Candidate, ChatMovie, ChatRequest, ChatResponse
from cineclub.core.titles import normalize_title

logger = logging.getLogger(__name__)

CHAT_HISTORY_LIMIT = 10
FALLBACK_REPLY = (
    "There was a problem understanding the answer. Ask me something else about movies."
)
_INFO = "Reply generated by the movie chat, excluding movies you rated or queued."
_DEGRADED_INFO = "Degraded reply: the movie chat could not produce an answer ({reason})."


class MovieChat:
    """Single-tier variant of the recommendation pipeline for free conversation."""

    def __init__(
        self,
        generator: Optional[GenerationClient],
        catalog: Optional[TMDBClient] = None,
        *,
        concurrency: int = CATALOG_CONCURRENCY,
        language: str = REASON_LANGUAGE,
    ):
        self._generator = generator
        self._enricher = (
            CatalogEnricher(catalog, concurrency=concurrency) if catalog else None
        )
        self._concurrency = concurrency
        self._language = language

    async def reply(self, request: ChatRequest) -> ChatResponse:
        if self._generator is None:
            raise ConfigurationError("Generative service is not configured.")

        blocked = await build_blocked_set(
            request.ratings,
            request.pending,
            self._enricher.resolve if self._enricher else None,
            extra_ids=request.pending_tmdb_ids,
            concurrency=self._concurrency,
        )

        user_prompt = "\n\n".join(
            [
                "User ratings:\n"
                + summarize_ratings(request.ratings, PROMPT_RATINGS_LIMIT),
                "Movies already seen or queued (never recommend them):\n"
                + (
                    summarize_blocked_titles(
                        blocked.normalized_titles, PROMPT_BLOCKED_TITLES_LIMIT
                    )
                    or "- none"
                ),
                "Conversation so far:\n"
                + summarize_conversation(request.messages, CHAT_HISTORY_LIMIT),
                "Answer the user's LAST message now, following every rule above.",
            ]
        )
        try:
            raw = await self._generator.generate(
                system_prompt("chat", language=self._language), user_prompt
            )
        except GenerationError as exc:
            logger.warning("Movie chat generation failed for uid=%s: %s", request.uid, exc)
            return _degraded(str(exc))

        payload = extract_object(raw)
        if isinstance(payload, ExtractFailure):
            return _degraded(payload.reason)

        reply = payload.get("reply")
        reply = reply.strip() if isinstance(reply, str) and reply.strip() else FALLBACK_REPLY
        entries = payload.get("movies")
        raw_movies = entries if isinstance(entries, list) else []
        candidates = [
            c
            for c in (candidate_from_entry(e, "comment") for e in raw_movies)
            if c is not None
        ]
        movies = filter_candidates(candidates, blocked)
        if movies and self._enricher is not None:
            movies = filter_candidates(await self._enricher.enrich(movies), blocked)

        return ChatResponse(
            reply=reply,
            movies=[
                ChatMovie(
                    tmdb_id=m.tmdb_id,
                    title=m.title,
                    year=m.year,
                    comment=m.reason or "",
                    poster_url=m.poster_url,
                )
                for m in _unique(movies)
            ],
            info=_INFO,
        )


def _unique(movies: List[Candidate]) -> List[Candidate]:
    seen = set()
    result: List[Candidate] = []
    for movie in movies:
        key = movie.tmdb_id if movie.tmdb_id is not None else normalize_title(movie.title)
        if key in seen:
            continue
        seen.add(key)
        result.append(movie)
    return result


def _degraded(reason: str) -> ChatResponse:
    return ChatResponse(
        reply=FALLBACK_REPLY,
        movies=[],
        info=_DEGRADED_INFO.format(reason=reason),
        degraded=True,
    )
