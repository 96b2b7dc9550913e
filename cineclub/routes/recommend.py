from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from cineclub.config import RECOMMEND_REQUIRE_AI
from cineclub.core.errors import ConfigurationError
from cineclub.core.fallback import RecommendationPipeline
from cineclub.core.schemas import RecommendRequest, RecommendResponse

router = APIRouter(tags=["recommend"])
logger = logging.getLogger(__name__)


def error_response(status_code: int, error: str, info: str | None = None) -> JSONResponse:
    body = {"error": error}
    if info:
        body["info"] = info
    return JSONResponse(status_code=status_code, content=body)


def validation_info(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )


async def read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/recommendations", response_model=RecommendResponse)
async def recommend(request: Request):
    payload = await read_json(request)
    if not isinstance(payload, dict):
        return error_response(400, "Request body must be a JSON object.")
    if not isinstance(payload.get("ratings"), list):
        return error_response(400, "Missing uid or ratings in the request body.")
    try:
        body = RecommendRequest.model_validate(payload)
    except ValidationError as exc:
        return error_response(400, "Invalid recommendation request.", validation_info(exc))

    pipeline = RecommendationPipeline(
        getattr(request.app.state, "generation_client", None),
        getattr(request.app.state, "tmdb_client", None),
        require_generation=RECOMMEND_REQUIRE_AI,
    )
    try:
        result = await pipeline.run(body)
    except ConfigurationError as exc:
        return error_response(
            503, str(exc), "Set GENERATION_API_KEY or disable RECOMMEND_REQUIRE_AI."
        )
    except Exception:
        logger.exception("Unexpected failure while recommending for uid=%s", body.uid)
        return error_response(
            500, "Internal error while generating recommendations.", "Try again later."
        )
    return result.to_response().model_dump(by_alias=True)
