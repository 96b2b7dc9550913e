from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from cineclub import config
from cineclub.core.errors import ConfigurationError, WeeklyEventError
from cineclub.core.schemas import WeeklyEventOut
from cineclub.core.weekly_event import (
    WeeklyEventGenerator,
    latest_event,
    load_rating_rows,
    rank_community_ratings,
    save_event,
)
from cineclub.db.session import get_db
from cineclub.routes.recommend import error_response, read_json

router = APIRouter(prefix="/weekly-event", tags=["weekly-event"])
logger = logging.getLogger(__name__)


def _secret_matches(provided: Optional[str]) -> bool:
    expected = config.WEEKLY_EVENT_SECRET
    if not expected or not isinstance(provided, str):
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


@router.post("/generate", response_model=WeeklyEventOut)
async def generate_weekly_event(
    request: Request,
    secret: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    if secret is None:
        payload = await read_json(request)
        if isinstance(payload, dict):
            secret = payload.get("secret")
    if not _secret_matches(secret):
        return error_response(401, "Unauthorized.")

    ranked = rank_community_ratings(
        load_rating_rows(db),
        min_votes=config.WEEKLY_EVENT_MIN_VOTES,
        limit=config.WEEKLY_EVENT_RANKING_LIMIT,
    )
    if not ranked:
        return error_response(
            400,
            "Not enough rated movies to build a ranking.",
            f"Movies need at least {config.WEEKLY_EVENT_MIN_VOTES} votes.",
        )

    generator = WeeklyEventGenerator(
        getattr(request.app.state, "generation_client", None),
        getattr(request.app.state, "tmdb_client", None),
    )
    try:
        event = await generator.generate(ranked)
    except ConfigurationError as exc:
        return error_response(503, str(exc))
    except WeeklyEventError as exc:
        logger.warning("Weekly event generation failed: %s", exc)
        return error_response(500, "Could not generate the weekly event.", str(exc))

    save_event(db, event)
    logger.info(
        "Weekly event %s saved with %d candidates.", event.event_id, len(event.candidates)
    )
    return event.model_dump(mode="json", by_alias=True)


@router.get("", response_model=WeeklyEventOut)
def get_weekly_event(db: Session = Depends(get_db)):
    event = latest_event(db)
    if event is None:
        return error_response(404, "No weekly event yet.")
    return event.model_dump(mode="json", by_alias=True)
