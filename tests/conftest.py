from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, cast

import pytest

from chat_ai_orx.service import ChatService
from chat_ai_orx.types import Turn, UserIdentity

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeIdentityStore:
    def __init__(self, *, fail: bool = False) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.queries: list[str] = []
        self.upserts: list[tuple[UserIdentity, str]] = []
        self.fail = fail

    async def query_user(self, user_id: str) -> dict[str, Any] | None:
        self.queries.append(user_id)
        if self.fail:
            raise RuntimeError("identity store unavailable")
        return self.users.get(user_id)

    async def upsert_user(self, identity: UserIdentity, *, role: str) -> None:
        if self.fail:
            raise RuntimeError("identity store unavailable")
        self.upserts.append((identity, role))
        self.users[identity.user_id] = {
            "id": identity.user_id,
            "name": identity.name,
            "role": role,
        }


class _FakeConversationStore:
    def __init__(self) -> None:
        self.users: dict[str, UserIdentity] = {}
        self.turns: list[Turn] = []
        self.user_inserts: list[UserIdentity] = []
        self.list_calls: list[tuple[str, int | None, bool]] = []
        self.fail_insert_user = False
        self.fail_insert_turn = False
        self.fail_reads = False

    async def find_user(self, user_id: str) -> UserIdentity | None:
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        return self.users.get(user_id)

    async def insert_user(self, identity: UserIdentity) -> None:
        if self.fail_insert_user:
            raise RuntimeError("insert failed")
        self.user_inserts.append(identity)
        self.users[identity.user_id] = identity

    async def insert_turn(self, *, user_id: str, message: str, reply: str) -> Turn:
        if self.fail_insert_turn:
            raise RuntimeError("insert failed")
        turn_id = len(self.turns) + 1
        turn = Turn(
            id=turn_id,
            user_id=user_id,
            message=message,
            reply=reply,
            created_at=BASE_TIME + timedelta(seconds=turn_id),
        )
        self.turns.append(turn)
        return turn

    async def list_turns(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[Turn]:
        self.list_calls.append((user_id, limit, newest_first))
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        turns = sorted(
            (turn for turn in self.turns if turn.user_id == user_id),
            key=lambda turn: (turn.created_at, turn.id),
            reverse=newest_first,
        )
        if limit is not None:
            turns = turns[:limit]
        return turns


class _FakeCompletionEngine:
    def __init__(self, *, reply: str | None = "chat-response") -> None:
        self.reply = reply
        self.error: Exception | None = None
        self.seen_messages: list[list[dict[str, str]]] = []

    async def generate_reply(self, messages: list[dict[str, str]]) -> str | None:
        self.seen_messages.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


class _FakeDeliveryChannel:
    def __init__(self) -> None:
        self.ensured: list[tuple[str, str]] = []
        self.published: list[tuple[str, str, str]] = []
        self.fail_publish = False

    async def ensure_channel(self, channel_id: str, *, created_by_id: str) -> None:
        self.ensured.append((channel_id, created_by_id))

    async def publish(self, channel_id: str, *, text: str, sender_id: str) -> None:
        if self.fail_publish:
            raise RuntimeError("publish failed")
        self.published.append((channel_id, text, sender_id))


@pytest.fixture
def identity_store() -> _FakeIdentityStore:
    return _FakeIdentityStore()


@pytest.fixture
def conversation_store() -> _FakeConversationStore:
    return _FakeConversationStore()


@pytest.fixture
def completion_engine() -> _FakeCompletionEngine:
    return _FakeCompletionEngine()


@pytest.fixture
def delivery_channel() -> _FakeDeliveryChannel:
    return _FakeDeliveryChannel()


@pytest.fixture
def chat_service(
    identity_store: _FakeIdentityStore,
    conversation_store: _FakeConversationStore,
    completion_engine: _FakeCompletionEngine,
    delivery_channel: _FakeDeliveryChannel,
) -> ChatService:
    return ChatService(
        identity_store=cast(Any, identity_store),
        conversation_store=cast(Any, conversation_store),
        completion_engine=cast(Any, completion_engine),
        delivery_channel=cast(Any, delivery_channel),
    )
