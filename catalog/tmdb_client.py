from __future__ import annotations
import asyncio
import time
from typing import Any, Dict, List, Optional
import httpx

TMDB_BASE = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p/w500"
RELATIONS = ("recommendations", "similar")


class CatalogResponseError(httpx.HTTPError):
    """TMDB answered 2xx with a body that is not a JSON object."""


class TMDBClient:
    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        rate_per_sec: float = 20.0,
        language: str = "es-ES",
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.rate = rate_per_sec
        self.language = language
        self._last = 0.0
        self._throttle_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def _throttle(self):
        async with self._throttle_lock:
            dt = time.time() - self._last
            min_gap = 1.0 / max(self.rate, 1e-6)
            if dt < min_gap:
                await asyncio.sleep(min_gap - dt)
            self._last = time.time()

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        await self._throttle()
        q = dict(params)
        q["api_key"] = self.api_key
        r = await self._client.get(f"{TMDB_BASE}{path}", params=q)
        r.raise_for_status()
        try:
            data = r.json()
        except ValueError as exc:
            raise CatalogResponseError(f"Non-JSON response from TMDB {path}") from exc
        if not isinstance(data, dict):
            raise CatalogResponseError(
                f"Unexpected {type(data).__name__} response from TMDB {path}"
            )
        return data

    async def search_movie(
        self, title: str, year: str | int | None = None
    ) -> List[Dict[str, Any]]:
        """Best matches first, as ranked by TMDB."""
        params: Dict[str, Any] = {
            "query": title,
            "language": self.language,
            "page": 1,
            "include_adult": "false",
        }
        if year is not None and str(year).strip():
            params["year"] = str(year).strip()
        data = await self._get("/search/movie", params)
        results = data.get("results")
        return results if isinstance(results, list) else []

    async def movie_details(self, tmdb_id: int) -> Dict[str, Any]:
        return await self._get(f"/movie/{tmdb_id}", {"language": self.language})

    async def related_movies(
        self, tmdb_id: int, relation: str = "recommendations"
    ) -> List[Dict[str, Any]]:
        """
        relation in {"recommendations","similar"}; first page only.
        """
        if relation not in RELATIONS:
            raise ValueError(f"Unsupported relation '{relation}'")
        data = await self._get(
            f"/movie/{tmdb_id}/{relation}", {"language": self.language, "page": 1}
        )
        results = data.get("results")
        return results if isinstance(results, list) else []

    @staticmethod
    def poster_url(poster_path: Optional[str]) -> Optional[str]:
        if not poster_path:
            return None
        return f"{TMDB_IMAGE_BASE}{poster_path}"

    @staticmethod
    def release_year(movie: Dict[str, Any]) -> Optional[str]:
        release_date = movie.get("release_date")
        if isinstance(release_date, str) and len(release_date) >= 4:
            return release_date[:4]
        return None

    async def aclose(self):
        await self._client.aclose()
