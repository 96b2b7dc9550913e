from __future__ import annotations

import asyncio

import httpx

from catalog.tmdb_client import TMDBClient
from cineclub.core.enricher import CATALOG_LOOKUP_CACHE, CatalogEnricher, match_from_movie
from cineclub.core.schemas import Candidate
from tests.helpers import FakeCatalog, movie


def test_match_from_movie_reads_catalog_fields():
    match = match_from_movie(movie(603, "Matrix", "1999", "/m.jpg"))
    assert match.tmdb_id == 603
    assert match.year == "1999"
    assert match.poster_url == "https://image.tmdb.org/t/p/w500/m.jpg"
    assert match_from_movie({"id": "603"}) is None


def test_lookup_caches_hits_and_misses():
    async def scenario():
        catalog = FakeCatalog(search={"Gamma": [movie(3, "Gamma")]})
        enricher = CatalogEnricher(catalog)

        assert (await enricher.resolve("Gamma")) == 3
        assert (await enricher.resolve("gamma (2001)")) == 3
        assert (await enricher.lookup("Nowhere")) is None
        assert (await enricher.lookup("Nowhere")) is None

        assert catalog.search_calls == [("Gamma", None), ("Nowhere", None)]
        assert ("nowhere", "") in CATALOG_LOOKUP_CACHE

    asyncio.run(scenario())


def test_lookup_failures_are_not_cached():
    async def scenario():
        catalog = FakeCatalog(fail_search=True)
        enricher = CatalogEnricher(catalog)

        assert (await enricher.lookup("Gamma")) is None
        assert (await enricher.lookup("Gamma")) is None
        assert len(catalog.search_calls) == 2
        assert len(CATALOG_LOOKUP_CACHE) == 0

    asyncio.run(scenario())


def test_enrich_replaces_guessed_id_and_keeps_order():
    async def scenario():
        catalog = FakeCatalog(
            search={"Gamma": [movie(33, "Gamma", poster="/g.jpg")]},
        )
        enricher = CatalogEnricher(catalog, concurrency=2)

        enriched = await enricher.enrich(
            [Candidate("Gamma", reason="r", tmdb_id=999), Candidate("Unknown", reason="u", tmdb_id=4)]
        )
        assert [(c.title, c.tmdb_id) for c in enriched] == [("Gamma", 33), ("Unknown", 4)]
        assert enriched[0].poster_url.endswith("/g.jpg")

    asyncio.run(scenario())


def test_maintenance_page_from_catalog_is_a_miss():
    async def scenario():
        client = TMDBClient("secret", rate_per_sec=1000.0)
        client._client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>maintenance</html>")
            )
        )
        enricher = CatalogEnricher(client)

        assert (await enricher.resolve("Gamma")) is None
        assert len(CATALOG_LOOKUP_CACHE) == 0
        await client.aclose()

    asyncio.run(scenario())
