from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FACETS = ("overall", "writing", "direction", "acting", "soundtrack", "enjoyment")
SCORE_MIN = 0.0
SCORE_MAX = 10.0

# Facet names sent by the mobile app.
_FACET_ALIASES = {
    "guion": "writing",
    "direccion": "direction",
    "actuacion": "acting",
    "bso": "soundtrack",
    "disfrute": "enjoyment",
    "score_music": "soundtrack",
    "music": "soundtrack",
}


def _canonical_facet(name: str) -> str:
    key = str(name).strip().lower()
    return _FACET_ALIASES.get(key, key)


def _year_as_text(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(int(value))
    if isinstance(value, str):
        return value.strip() or None
    return value


def _lenient_id(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        iid = int(value)
    except (TypeError, ValueError):
        return None
    return iid if iid > 0 else None


@dataclass(frozen=True)
class Candidate:
    """A proposed movie before validation, from any tier."""

    title: str
    year: Optional[str] = None
    reason: Optional[str] = None
    tmdb_id: Optional[int] = None
    poster_url: Optional[str] = None

    def with_catalog(
        self, tmdb_id: Optional[int], poster_url: Optional[str] = None
    ) -> "Candidate":
        return replace(
            self,
            tmdb_id=tmdb_id if tmdb_id is not None else self.tmdb_id,
            poster_url=poster_url or self.poster_url,
        )


class RatedItem(BaseModel):
    """A movie the user has already rated."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tmdb_id: Optional[int] = Field(None, alias="tmdbId", gt=0)
    scores: Dict[str, float] = Field(default_factory=dict)
    title: Optional[str] = None
    year: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _collect_facets(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        nested = data.get("scores")
        if nested is not None and not isinstance(nested, dict):
            return data
        scores = {_canonical_facet(k): v for k, v in (nested or {}).items()}
        for key in list(data):
            facet = _canonical_facet(key)
            if facet in FACETS:
                scores.setdefault(facet, data.pop(key))
        data["scores"] = scores
        return data

    @field_validator("scores")
    @classmethod
    def _check_bounds(cls, value: Dict[str, float]) -> Dict[str, float]:
        for facet, score in value.items():
            if not SCORE_MIN <= score <= SCORE_MAX:
                raise ValueError(
                    f"score '{facet}' must be between {SCORE_MIN:g} and {SCORE_MAX:g}"
                )
        return value

    @field_validator("year", mode="before")
    @classmethod
    def _year(cls, value: Any) -> Any:
        return _year_as_text(value)

    @property
    def overall(self) -> float:
        return float(self.scores.get("overall", 0.0))

    @property
    def display_title(self) -> str:
        if self.title and self.title.strip():
            return self.title.strip()
        return f"Movie {self.tmdb_id}" if self.tmdb_id else "Untitled movie"


class PendingItem(BaseModel):
    """A queued-but-unwatched movie. Needs an id or a title to block anything."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tmdb_id: Optional[int] = Field(None, alias="tmdbId")
    title: Optional[str] = None
    year: Optional[str] = None

    @field_validator("tmdb_id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Optional[int]:
        return _lenient_id(value)

    @field_validator("year", mode="before")
    @classmethod
    def _year(cls, value: Any) -> Any:
        return _year_as_text(value)


class _UserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(..., min_length=1)
    pending: List[PendingItem] = Field(default_factory=list)
    pending_tmdb_ids: List[int] = Field(default_factory=list, alias="pendingTmdbIds")

    @field_validator("uid", mode="before")
    @classmethod
    def _strip_uid(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("pending", "pending_tmdb_ids", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("pending_tmdb_ids", mode="before")
    @classmethod
    def _valid_ids(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [iid for iid in (_lenient_id(v) for v in value) if iid is not None]


class RecommendRequest(_UserRequest):
    ratings: List[RatedItem]
    max_items: Optional[int] = Field(None, alias="maxItems")

    @field_validator("max_items", mode="before")
    @classmethod
    def _max_items(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)


class Recommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: Optional[int] = Field(None, alias="tmdbId")
    title: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    poster_url: Optional[str] = Field(None, alias="posterUrl")


class RecommendResponse(BaseModel):
    recommendations: List[Recommendation]
    info: str
    tier: str
    degraded: bool


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(_UserRequest):
    messages: List[ChatMessage]
    ratings: List[RatedItem] = Field(default_factory=list)

    @field_validator("ratings", mode="before")
    @classmethod
    def _ratings_default(cls, value: Any) -> Any:
        return [] if value is None else value


class ChatMovie(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: Optional[int] = Field(None, alias="tmdbId")
    title: str
    year: Optional[str] = None
    comment: str = ""
    poster_url: Optional[str] = Field(None, alias="posterUrl")


class ChatResponse(BaseModel):
    reply: str
    movies: List[ChatMovie]
    info: str
    degraded: bool = False


class RatingIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(..., min_length=1)
    tmdb_id: int = Field(..., alias="tmdbId", gt=0)
    title: Optional[str] = None
    overall: float = Field(..., ge=SCORE_MIN, le=SCORE_MAX)


class WeeklyEventCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: int = Field(..., alias="tmdbId")
    title: str
    year: Optional[str] = None
    poster_url: Optional[str] = Field(None, alias="posterUrl")
    pitch: str = Field(..., alias="aiPitch")


class WeeklyEventOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(..., alias="eventId")
    created_at: datetime = Field(..., alias="createdAt")
    start_vote_date: datetime = Field(..., alias="startVoteDate")
    end_vote_date: datetime = Field(..., alias="endVoteDate")
    status: Literal["voting", "chosen", "finished"] = "voting"
    theme: str
    intro: str = Field(..., alias="aiIntro")
    candidates: List[WeeklyEventCandidate]
