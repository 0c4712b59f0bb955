from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_ai_orx.api import build_router
from chat_ai_orx.config import Settings
from chat_ai_orx.conversation_store import create_store
from chat_ai_orx.openai_client import OpenAIChatClient
from chat_ai_orx.service import ChatService
from chat_ai_orx.stream_client import StreamChatClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    owns_http_client = http_client is None
    shared_http_client = http_client or httpx.AsyncClient()
    conversation_store = create_store(
        settings.database_url, echo=settings.database_echo
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await conversation_store.create_schema()
        logger.info("conversation_store_ready")
        yield
        await conversation_store.close()
        if owns_http_client:
            await shared_http_client.aclose()

    app = FastAPI(title="chat-ai-orx", version="1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    stream_client = StreamChatClient(
        api_key=settings.stream_api_key,
        api_secret=settings.stream_api_secret,
        http_client=shared_http_client,
        base_url=settings.stream_base_url,
        timeout_seconds=settings.stream_timeout_seconds,
        channel_cache_ttl_seconds=settings.stream_channel_cache_ttl_seconds,
    )
    openai_client = OpenAIChatClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        http_client=shared_http_client,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.openai_timeout_seconds,
        max_output_tokens=settings.openai_max_output_tokens,
        temperature=settings.openai_temperature,
    )
    service = ChatService(
        identity_store=stream_client,
        conversation_store=conversation_store,
        completion_engine=openai_client,
        delivery_channel=stream_client,
    )

    app.include_router(build_router(service))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = Settings.from_env()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
