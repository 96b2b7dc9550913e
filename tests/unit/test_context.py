from __future__ import annotations

from cineclub.core.context import (
    NO_RATINGS_TEXT,
    summarize_blocked_titles,
    summarize_conversation,
    summarize_ratings,
)
from cineclub.core.schemas import ChatMessage, RatedItem


def test_ratings_digest_keeps_order_and_facets():
    ratings = [
        RatedItem.model_validate({"title": "Alpha", "year": 2001, "overall": 9, "guion": 8}),
        RatedItem.model_validate({"tmdbId": 12, "overall": 6.5}),
    ]

    text = summarize_ratings(ratings)

    assert text.splitlines() == [
        "- Alpha (2001): overall 9/10, writing 8/10",
        "- Movie with tmdbId=12: overall 6.5/10",
    ]


def test_ratings_digest_respects_limit_and_empty_input():
    ratings = [RatedItem.model_validate({"title": f"M{i}", "overall": 5}) for i in range(5)]
    assert len(summarize_ratings(ratings, limit=2).splitlines()) == 2
    assert summarize_ratings([]) == NO_RATINGS_TEXT


def test_blocked_titles_are_sorted_and_capped():
    assert summarize_blocked_titles({"zeta", "alpha", "mu"}, limit=2) == "- alpha\n- mu"
    assert summarize_blocked_titles(set()) == ""


def test_conversation_keeps_last_turns():
    messages = [
        ChatMessage(role="user", content=f"q{i}") if i % 2 == 0
        else ChatMessage(role="assistant", content=f"a{i} ")
        for i in range(6)
    ]
    assert summarize_conversation(messages, limit=2) == "User: q4\nAssistant: a5"
