from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import ValidationError

from cineclub.core.chat import MovieChat
from cineclub.core.errors import ConfigurationError
from cineclub.core.schemas import ChatRequest, ChatResponse
from cineclub.routes.recommend import error_response, read_json, validation_info

router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat-movies", response_model=ChatResponse)
async def chat_movies(request: Request):
    payload = await read_json(request)
    if not isinstance(payload, dict) or not isinstance(payload.get("messages"), list):
        return error_response(400, "Missing uid or messages in the request body.")
    try:
        body = ChatRequest.model_validate(payload)
    except ValidationError as exc:
        return error_response(400, "Invalid chat request.", validation_info(exc))
    if not body.messages:
        return error_response(400, "At least one message is required.")

    chat = MovieChat(
        getattr(request.app.state, "generation_client", None),
        getattr(request.app.state, "tmdb_client", None),
    )
    try:
        response = await chat.reply(body)
    except ConfigurationError as exc:
        return error_response(503, str(exc), "Set GENERATION_API_KEY to enable the chat.")
    except Exception:
        logger.exception("Unexpected failure in movie chat for uid=%s", body.uid)
        return error_response(500, "Internal error in the movie chat.", "Try again later.")
    return response.model_dump(by_alias=True)
