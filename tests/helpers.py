from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cineclub.db.models import Base


class FakeGenerator:
    """Stands in for GenerationClient. Queued items are returned or raised in order."""

    def __init__(self, *responses: Any):
        self._responses = list(responses)
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if not self._responses:
            raise AssertionError("FakeGenerator ran out of responses")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response)
        return response

    async def aclose(self):
        self.closed = True


def movie(tmdb_id: int, title: str, year: str | None = None, poster: str | None = None):
    data: Dict[str, Any] = {"id": tmdb_id, "title": title}
    if year:
        data["release_date"] = f"{year}-01-01"
    if poster:
        data["poster_path"] = poster
    return data


class FakeCatalog:
    """Stands in for TMDBClient with canned search, details and related results."""

    def __init__(
        self,
        search: Optional[Dict[str, Sequence[Dict[str, Any]]]] = None,
        related: Optional[Dict[int, Sequence[Dict[str, Any]]]] = None,
        details: Optional[Dict[int, Dict[str, Any]]] = None,
        fail_search: bool = False,
        fail_related: bool = False,
        fail_details: bool = False,
    ):
        self._search = {k.lower(): list(v) for k, v in (search or {}).items()}
        self._related = {k: list(v) for k, v in (related or {}).items()}
        self._details = dict(details or {})
        self._fail_search = fail_search
        self._fail_related = fail_related
        self._fail_details = fail_details
        self.search_calls: List[Tuple[str, Any]] = []
        self.related_calls: List[Tuple[int, str]] = []
        self.details_calls: List[int] = []
        self.closed = False

    @staticmethod
    def _error(path: str) -> httpx.HTTPError:
        request = httpx.Request("GET", f"https://api.test{path}")
        return httpx.HTTPStatusError(
            "boom", request=request, response=httpx.Response(500, request=request)
        )

    async def search_movie(self, title: str, year=None):
        self.search_calls.append((title, year))
        if self._fail_search:
            raise self._error("/search/movie")
        return list(self._search.get(title.lower(), []))

    async def related_movies(self, tmdb_id: int, relation: str = "recommendations"):
        self.related_calls.append((tmdb_id, relation))
        if self._fail_related:
            raise self._error(f"/movie/{tmdb_id}/{relation}")
        return list(self._related.get(tmdb_id, []))

    async def movie_details(self, tmdb_id: int):
        self.details_calls.append(tmdb_id)
        if self._fail_details:
            raise self._error(f"/movie/{tmdb_id}")
        return dict(self._details.get(tmdb_id, {"id": tmdb_id}))

    async def aclose(self):
        self.closed = True

    @property
    def calls(self) -> int:
        return len(self.search_calls) + len(self.related_calls) + len(self.details_calls)


def sqlite_session() -> Session:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, future=True)()
