from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from cineclub.core.errors import ConfigurationError, GenerationError, WeeklyEventError
from cineclub.core.schemas import RatingIn
from cineclub.core.weekly_event import (
    RankedMovie,
    WeeklyEventGenerator,
    event_id_for,
    latest_event,
    load_rating_rows,
    rank_community_ratings,
    record_rating,
    save_event,
)
from tests.helpers import FakeCatalog, FakeGenerator, movie, sqlite_session

NOW = datetime(2025, 2, 12, 18, 0, tzinfo=timezone.utc)
RANKED = [RankedMovie(100, "Alpha", 9.0, 3), RankedMovie(101, "Beta", 8.0, 2)]


def test_rank_requires_min_votes_and_sorts_by_average():
    rows = [
        (1, "One", 9.0),
        (1, None, 7.0),
        (2, "Two", 10.0),
        (3, "Three", 9.5),
        (3, "Three", 9.5),
        (4, "Four", 6.0),
        (4, "Four", 6.0),
        (4, "Four", 6.0),
        (0, "Bad", 10.0),
    ]

    ranked = rank_community_ratings(rows, min_votes=2, limit=2)

    assert [(m.tmdb_id, m.title, m.average, m.votes) for m in ranked] == [
        (3, "Three", 9.5, 2),
        (1, "One", 8.0, 2),
    ]


def test_event_id_uses_iso_week():
    assert event_id_for(NOW) == "2025-w07"
    assert event_id_for(datetime(2021, 1, 2)) == "2020-w53"


def _event_payload(*candidates):
    return {
        "theme": "Slow-burn week",
        "intro": "Vote for your favourite!",
        "candidates": list(candidates),
    }


def test_generate_builds_event_from_catalog_details():
    async def scenario():
        generator = FakeGenerator(
            _event_payload(
                {"title": "Alpha", "year": 2001, "pitch": "already ranked"},
                {"title": "Gamma", "year": 2004, "pitch": "moody"},
                {"title": "Delta", "aiPitch": "tense"},
            )
        )
        catalog = FakeCatalog(
            search={"Gamma": [movie(300, "Gamma")], "Delta": [movie(400, "Delta")]},
            details={300: movie(300, "Gamma: El regreso", "2004", "/g.jpg")},
        )
        event = await WeeklyEventGenerator(generator, catalog).generate(RANKED, now=NOW)
        return event, generator, catalog

    event, generator, catalog = asyncio.run(scenario())

    assert event.event_id == "2025-w07"
    assert event.status == "voting"
    assert event.end_vote_date - event.start_vote_date == timedelta(days=4)
    assert event.theme == "Slow-burn week"
    assert [(c.tmdb_id, c.title, c.year, c.pitch) for c in event.candidates] == [
        (300, "Gamma: El regreso", "2004", "moody"),
        (400, "Delta", None, "tense"),
    ]
    assert event.candidates[0].poster_url.endswith("/g.jpg")
    assert sorted(catalog.details_calls) == [300, 400]
    system_prompt, user_prompt = generator.calls[0]
    assert "Propose 3 REAL movies" in system_prompt
    assert "#1 Alpha | average=9.00 | votes=3" in user_prompt


def test_generate_rejects_catalog_ids_from_the_ranking():
    async def scenario():
        generator = FakeGenerator(
            _event_payload({"title": "Alpha Redux", "pitch": "same movie"})
        )
        catalog = FakeCatalog(search={"Alpha Redux": [movie(100, "Alpha")]})
        await WeeklyEventGenerator(generator, catalog).generate(RANKED, now=NOW)

    with pytest.raises(WeeklyEventError, match="No proposed movie"):
        asyncio.run(scenario())


def test_details_failure_keeps_search_values():
    async def scenario():
        generator = FakeGenerator(_event_payload({"title": "Gamma", "pitch": "p"}))
        catalog = FakeCatalog(
            search={"Gamma": [movie(300, "Gamma", "2004")]}, fail_details=True
        )
        return await WeeklyEventGenerator(generator, catalog).generate(RANKED, now=NOW)

    event = asyncio.run(scenario())
    assert [(c.tmdb_id, c.title, c.year) for c in event.candidates] == [(300, "Gamma", "2004")]


def test_candidate_count_caps_proposals():
    async def scenario():
        generator = FakeGenerator(
            _event_payload(
                {"title": "Gamma", "pitch": "g"},
                {"title": "Delta", "pitch": "d"},
            )
        )
        catalog = FakeCatalog(
            search={"Gamma": [movie(300, "Gamma")], "Delta": [movie(400, "Delta")]}
        )
        return await WeeklyEventGenerator(generator, catalog, candidate_count=1).generate(
            RANKED, now=NOW
        )

    event = asyncio.run(scenario())
    assert [c.title for c in event.candidates] == ["Gamma"]


@pytest.mark.parametrize(
    "response",
    [
        GenerationError("timeout"),
        "not json",
        {"theme": "x", "candidates": [{"title": "Gamma", "pitch": "p"}]},
        {"theme": "x", "intro": "y", "candidates": []},
    ],
)
def test_generate_failures_raise_weekly_event_error(response):
    async def scenario():
        generator = FakeGenerator(response)
        catalog = FakeCatalog(search={"Gamma": [movie(300, "Gamma")]})
        await WeeklyEventGenerator(generator, catalog).generate(RANKED, now=NOW)

    with pytest.raises(WeeklyEventError):
        asyncio.run(scenario())


def test_generate_requires_services_and_ranking():
    with pytest.raises(ConfigurationError):
        asyncio.run(WeeklyEventGenerator(None, FakeCatalog()).generate(RANKED))
    with pytest.raises(ConfigurationError):
        asyncio.run(WeeklyEventGenerator(FakeGenerator(), None).generate(RANKED))
    with pytest.raises(WeeklyEventError):
        asyncio.run(WeeklyEventGenerator(FakeGenerator(), FakeCatalog()).generate([]))


def test_ratings_are_upserted_and_loaded():
    db = sqlite_session()
    record_rating(db, RatingIn(uid="u1", tmdb_id=100, title="Alpha", overall=7))
    record_rating(db, RatingIn(uid="u1", tmdb_id=100, overall=9))
    record_rating(db, RatingIn(uid="u2", tmdb_id=100, overall=8))

    rows = sorted(load_rating_rows(db), key=lambda row: row[2])

    assert rows == [(100, None, 8.0), (100, "Alpha", 9.0)]
    ranked = rank_community_ratings(rows, min_votes=2)
    assert ranked[0].average == 8.5
    assert ranked[0].title == "Alpha"
    db.close()


def test_save_event_upserts_and_latest_returns_newest():
    async def build(theme, now):
        generator = FakeGenerator(
            {"theme": theme, "intro": "i", "candidates": [{"title": "Gamma", "pitch": "p"}]}
        )
        catalog = FakeCatalog(search={"Gamma": [movie(300, "Gamma")]})
        return await WeeklyEventGenerator(generator, catalog).generate(RANKED, now=now)

    db = sqlite_session()
    assert latest_event(db) is None

    save_event(db, asyncio.run(build("First", NOW)))
    save_event(db, asyncio.run(build("First, regenerated", NOW)))
    save_event(db, asyncio.run(build("Next", NOW + timedelta(days=7))))

    event = latest_event(db)
    assert event.event_id == "2025-w08"
    assert event.theme == "Next"
    assert event.candidates[0].tmdb_id == 300
    assert event.candidates[0].pitch == "p"
    db.close()
