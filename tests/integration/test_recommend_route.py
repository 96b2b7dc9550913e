from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cineclub.core.errors import GenerationError
from cineclub.main import app
from tests.helpers import FakeCatalog, FakeGenerator, movie


@pytest.fixture(autouse=True)
def _disable_startup(monkeypatch):
    monkeypatch.setattr("cineclub.main.init_engine", lambda: None)
    monkeypatch.setattr("cineclub.main.get_sessionmaker", lambda: None)
    monkeypatch.setattr("cineclub.main.TMDB_API_KEY", "")
    monkeypatch.setattr("cineclub.main.build_generation_client", lambda: None)


BODY = {
    "uid": "u1",
    "ratings": [{"tmdbId": 100, "title": "Alpha", "overall": 9}],
    "pending": [{"title": "Beta"}],
}


def _post(body, generator=None, catalog=None):
    with TestClient(app) as client:
        app.state.generation_client = generator
        app.state.tmdb_client = catalog
        return client.post("/recommendations", json=body)


def test_generative_recommendations_are_returned():
    generator = FakeGenerator(
        {"recommendations": [{"title": "Gamma", "reason": "great pick"}]}
    )
    catalog = FakeCatalog(search={"Gamma": [movie(300, "Gamma", poster="/g.jpg")]})

    resp = _post(BODY, generator, catalog)

    assert resp.status_code == 200
    data = resp.json()
    assert data["tier"] == "generative"
    assert data["degraded"] is False
    assert data["recommendations"] == [
        {
            "tmdbId": 300,
            "title": "Gamma",
            "reason": "great pick",
            "posterUrl": "https://image.tmdb.org/t/p/w500/g.jpg",
        }
    ]
    assert generator.closed is True


def test_empty_ratings_returns_empty_list_without_calls():
    generator = FakeGenerator()

    resp = _post({"uid": "u1", "ratings": []}, generator)

    assert resp.status_code == 200
    assert resp.json()["recommendations"] == []
    assert resp.json()["info"] == "User has no ratings yet."
    assert generator.calls == []


def test_generation_failure_is_degraded_not_an_error():
    resp = _post(BODY, FakeGenerator(GenerationError("Gemini API responded with status 500")))

    assert resp.status_code == 200
    data = resp.json()
    assert data["tier"] == "local_heuristic"
    assert data["degraded"] is True
    assert [r["title"] for r in data["recommendations"]] == ["Alpha"]


@pytest.mark.parametrize(
    "body",
    [
        {"uid": "u1"},
        {"uid": "u1", "ratings": "Alpha"},
        {"ratings": []},
        {"uid": "u1", "ratings": [{"title": "Alpha", "overall": 42}]},
    ],
)
def test_invalid_requests_are_rejected(body):
    generator = FakeGenerator()

    resp = _post(body, generator)

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert generator.calls == []


def test_non_json_body_is_rejected():
    with TestClient(app) as client:
        resp = client.post(
            "/recommendations",
            content="not json",
            headers={"Content-Type": "application/json"},
        )
    assert resp.status_code == 400


def test_required_generation_without_key_is_503(monkeypatch):
    monkeypatch.setattr("cineclub.routes.recommend.RECOMMEND_REQUIRE_AI", True)

    resp = _post(BODY)

    assert resp.status_code == 503
    assert set(resp.json()) == {"error", "info"}


def test_unexpected_failure_is_500(monkeypatch):
    async def explode(self, request):
        raise RuntimeError("boom")

    monkeypatch.setattr("cineclub.routes.recommend.RecommendationPipeline.run", explode)

    resp = _post(BODY, FakeGenerator())

    assert resp.status_code == 500
    assert resp.json()["error"].startswith("Internal error")
