from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "generation": getattr(state, "generation_client", None) is not None,
        "catalog": getattr(state, "tmdb_client", None) is not None,
    }
