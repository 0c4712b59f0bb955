from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from chat_ai_orx.errors import ChatServiceError, InternalError, InvalidInputError
from chat_ai_orx.parsing import json_object, text_field
from chat_ai_orx.service import ChatService

logger = logging.getLogger(__name__)

RouteResult = dict[str, Any] | JSONResponse

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def build_router(service: ChatService) -> APIRouter:
    router = APIRouter()

    @router.post("/register-user", response_model=None)
    async def register_user(request: Request) -> RouteResult:
        try:
            body = await read_body(request)
            identity = await service.register(
                name=text_field(body, "name"),
                email=text_field(body, "email"),
            )
        except ChatServiceError as exc:
            return error_response(exc, route="register-user")
        except Exception:
            logger.exception("unexpected_route_error route=register-user")
            return error_response(_internal_error(), route="register-user")
        return identity.to_dict()

    @router.post("/chat", response_model=None)
    async def chat(request: Request) -> RouteResult:
        try:
            body = await read_body(request)
            reply = await service.submit_turn(
                user_id=text_field(body, "userId"),
                message=text_field(body, "message"),
            )
        except ChatServiceError as exc:
            return error_response(exc, route="chat")
        except Exception:
            logger.exception("unexpected_route_error route=chat")
            return error_response(_internal_error(), route="chat")
        return {"reply": reply}

    @router.post("/get-messages", response_model=None)
    async def get_messages(request: Request) -> RouteResult:
        try:
            body = await read_body(request)
            turns = await service.list_turns(user_id=text_field(body, "userId"))
        except ChatServiceError as exc:
            return error_response(exc, route="get-messages")
        except Exception:
            logger.exception("unexpected_route_error route=get-messages")
            return error_response(_internal_error(), route="get-messages")
        return {"messages": [turn.to_dict() for turn in turns]}

    return router


async def read_body(request: Request) -> dict[str, Any]:
    """Decode a JSON or form-encoded request body into a flat mapping."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items()}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json_object(await request.json())
    except ValueError as exc:
        raise InvalidInputError("Request body must be valid JSON") from exc


def error_response(exc: ChatServiceError, *, route: str) -> JSONResponse:
    if exc.status_code < 500:
        logger.info("request_rejected route=%s kind=%s", route, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def _internal_error() -> InternalError:
    return InternalError("Internal Server Error")
