from __future__ import annotations

import logging

from chat_ai_orx.collaborators import (
    CompletionEngine,
    ConversationStore,
    DeliveryChannel,
    IdentityStore,
)
from chat_ai_orx.context_window import (
    HISTORY_TURN_LIMIT,
    build_context_window,
    oldest_first,
)
from chat_ai_orx.errors import (
    CompletionError,
    DeliveryError,
    InternalError,
    InvalidInputError,
    NotRegisteredError,
    PersistenceError,
)
from chat_ai_orx.types import Turn, UserIdentity, channel_id_for_user, derive_user_id

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "No response from AI"
SYSTEM_SENDER_ID = "ai_bot"
IDENTITY_ROLE = "user"


class ChatService:
    def __init__(
        self,
        *,
        identity_store: IdentityStore,
        conversation_store: ConversationStore,
        completion_engine: CompletionEngine,
        delivery_channel: DeliveryChannel,
    ) -> None:
        self._identity_store = identity_store
        self._conversation_store = conversation_store
        self._completion_engine = completion_engine
        self._delivery_channel = delivery_channel

    async def register(self, *, name: str | None, email: str | None) -> UserIdentity:
        if not name or not email:
            raise InvalidInputError("Name and email are required")

        identity = UserIdentity(user_id=derive_user_id(email), name=name, email=email)

        # The two stores are checked independently; a failure in the second
        # leaves the first one written, and the next call fills the gap.
        try:
            existing = await self._identity_store.query_user(identity.user_id)
            if existing is None:
                await self._identity_store.upsert_user(identity, role=IDENTITY_ROLE)
                logger.info("identity_created user_id=%s", identity.user_id)
        except Exception as exc:
            logger.exception(
                "identity_registration_failed user_id=%s", identity.user_id
            )
            raise InternalError("Internal Server Error") from exc

        try:
            stored = await self._conversation_store.find_user(identity.user_id)
            if stored is None:
                logger.info(
                    "store_user_missing user_id=%s creating=true", identity.user_id
                )
                await self._conversation_store.insert_user(identity)
        except Exception as exc:
            logger.exception("store_registration_failed user_id=%s", identity.user_id)
            raise InternalError("Internal Server Error") from exc

        return identity

    async def submit_turn(self, *, user_id: str | None, message: str | None) -> str:
        if not message or not user_id:
            raise InvalidInputError("Message and user are required")

        await self._require_registered(user_id)

        try:
            recent = await self._conversation_store.list_turns(
                user_id,
                limit=HISTORY_TURN_LIMIT,
                newest_first=True,
            )
        except Exception as exc:
            logger.exception("history_load_failed user_id=%s", user_id)
            raise InternalError("Internal Server Error") from exc

        context = build_context_window(history=oldest_first(recent), message=message)
        reply = await self._generate_reply(user_id, context)

        try:
            await self._conversation_store.insert_turn(
                user_id=user_id,
                message=message,
                reply=reply,
            )
        except Exception as exc:
            logger.exception("turn_persist_failed user_id=%s", user_id)
            raise PersistenceError("Failed to save chat message.", reply=reply) from exc

        channel_id = channel_id_for_user(user_id)
        try:
            await self._delivery_channel.ensure_channel(
                channel_id, created_by_id=SYSTEM_SENDER_ID
            )
            await self._delivery_channel.publish(
                channel_id, text=reply, sender_id=SYSTEM_SENDER_ID
            )
        except Exception as exc:
            logger.exception(
                "reply_delivery_failed user_id=%s channel_id=%s", user_id, channel_id
            )
            raise DeliveryError("Failed to deliver chat reply.", reply=reply) from exc

        logger.info(
            "turn_completed user_id=%s history_turns=%d", user_id, len(recent)
        )
        return reply

    async def list_turns(self, *, user_id: str | None) -> list[Turn]:
        if not user_id:
            raise InvalidInputError("User ID is required")

        try:
            return await self._conversation_store.list_turns(user_id)
        except Exception as exc:
            logger.exception("history_fetch_failed user_id=%s", user_id)
            raise InternalError("Internal Server Error") from exc

    async def _require_registered(self, user_id: str) -> None:
        try:
            identity = await self._identity_store.query_user(user_id)
        except Exception as exc:
            logger.exception("identity_lookup_failed user_id=%s", user_id)
            raise InternalError("Internal Server Error") from exc

        if identity is None:
            logger.info("turn_rejected user_id=%s layer=identity", user_id)
            raise NotRegisteredError(
                "User not found. Please register first.", layer="identity"
            )

        try:
            stored = await self._conversation_store.find_user(user_id)
        except Exception as exc:
            logger.exception("store_lookup_failed user_id=%s", user_id)
            raise InternalError("Internal Server Error") from exc

        if stored is None:
            logger.info("turn_rejected user_id=%s layer=store", user_id)
            raise NotRegisteredError(
                "User not found in database. Please register first.", layer="store"
            )

    async def _generate_reply(
        self, user_id: str, context: list[dict[str, str]]
    ) -> str:
        try:
            reply = await self._completion_engine.generate_reply(context)
        except CompletionError as exc:
            logger.warning(
                "completion_failed user_id=%s status_code=%s detail=%s",
                user_id,
                exc.upstream_status_code,
                exc,
            )
            raise
        except Exception as exc:
            logger.exception("completion_unexpected_error user_id=%s", user_id)
            raise CompletionError("Completion service failed unexpectedly.") from exc

        if not reply or not reply.strip():
            logger.warning("completion_empty user_id=%s using_fallback=true", user_id)
            return FALLBACK_REPLY
        return reply
