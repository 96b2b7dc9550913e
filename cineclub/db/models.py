from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import (
    Integer,
    String,
    Text,
    DateTime,
    Float,
    JSON,
    UniqueConstraint,
    func,
)


class Base(DeclarativeBase):
    pass


class CommunityRating(Base):
    __tablename__ = "community_ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "tmdb_id", name="uq_community_rating_user_movie"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    overall: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class WeeklyEvent(Base):
    __tablename__ = "weekly_events"

    event_id: Mapped[str] = mapped_column(String(16), primary_key=True)  # 2025-w07
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_vote_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    end_vote_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="voting")
    theme: Mapped[str] = mapped_column(Text, nullable=False)
    intro: Mapped[str] = mapped_column(Text, nullable=False)
    candidates: Mapped[list] = mapped_column(JSON, nullable=False)
