import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog.tmdb_client import TMDBClient
from cineclub.config import TMDB_API_KEY, TMDB_LANGUAGE, TMDB_TIMEOUT
from cineclub.core.generation import build_generation_client
from cineclub.db.session import get_db, get_sessionmaker, init_engine
from cineclub.routes.chat import router as chat_router
from cineclub.routes.health import router as health_router
from cineclub.routes.ratings import router as ratings_router
from cineclub.routes.recommend import router as recommend_router
from cineclub.routes.weekly_event import router as weekly_event_router

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logging.getLogger("cineclub.core.fallback").setLevel(logging.DEBUG)
# Reduce noise from other modules
logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.INFO)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    _initialise_application(app)
    app.state.tmdb_client = (
        TMDBClient(TMDB_API_KEY, timeout=TMDB_TIMEOUT, language=TMDB_LANGUAGE)
        if TMDB_API_KEY
        else None
    )
    app.state.generation_client = build_generation_client()
    yield
    for name in ("tmdb_client", "generation_client"):
        client = getattr(app.state, name, None)
        if client is not None:
            await client.aclose()
            setattr(app.state, name, None)


app = FastAPI(title="Cineclub", version="0.1.0", lifespan=app_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(recommend_router)
app.include_router(chat_router)
app.include_router(weekly_event_router)
app.include_router(ratings_router)


def _initialise_application(app: FastAPI) -> None:
    # When tests override get_db we skip touching the real database.
    if get_db in app.dependency_overrides:
        return
    init_engine()
    get_sessionmaker()


def on_startup() -> None:
    _initialise_application(app)
