import logging
import os
import time
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import Session, sessionmaker

load_dotenv()

DEFAULT_DATABASE_URL = "postgresql+psycopg2://app:app@db:5432/cineclub"

_engine = None
_SessionLocal = None
_sql_logger = logging.getLogger("cineclub.db.sql")


def _summarize(statement: str, limit: int = 120) -> str:
    condensed = " ".join((statement or "").split())
    return condensed if len(condensed) <= limit else condensed[: limit - 1] + "…"


def _start_timer(conn, cursor, statement, parameters, context, executemany):
    context._cineclub_started = time.perf_counter()


def _log_query(conn, cursor, statement, parameters, context, executemany):
    if not _sql_logger.isEnabledFor(logging.DEBUG):
        return
    started = getattr(context, "_cineclub_started", None)
    elapsed = (time.perf_counter() - started) * 1000.0 if started else -1.0
    _sql_logger.debug("%.1f ms | %s", elapsed, _summarize(statement))


def _log_error(context):
    _sql_logger.warning(
        "SQL error during '%s': %s",
        _summarize(getattr(context, "statement", "") or ""),
        context.original_exception,
    )


def _instrument(engine) -> None:
    try:
        event.listen(engine, "before_cursor_execute", _start_timer)
        event.listen(engine, "after_cursor_execute", _log_query)
        event.listen(engine, "handle_error", _log_error)
    except InvalidRequestError:
        # Tests hand in placeholder engines that cannot carry listeners.
        pass


def init_engine():
    global _engine, _SessionLocal
    db_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    _engine = create_engine(
        db_url, pool_pre_ping=True, future=True, connect_args=connect_args
    )
    _instrument(_engine)
    _SessionLocal = sessionmaker(
        bind=_engine, autoflush=False, autocommit=False, future=True
    )


def get_engine():
    if _engine is None:
        init_engine()
    return _engine


def get_sessionmaker():
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db() -> Iterator[Session]:
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
