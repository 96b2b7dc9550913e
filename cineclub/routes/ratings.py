from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cineclub.core.schemas import RatingIn
from cineclub.core.weekly_event import record_rating
from cineclub.db.session import get_db

router = APIRouter(tags=["ratings"])


@router.post("/ratings")
def post_rating(rating: RatingIn, db: Session = Depends(get_db)):
    """Record or update one member's overall score for a movie."""
    record_rating(db, rating)
    return {"ok": True}
