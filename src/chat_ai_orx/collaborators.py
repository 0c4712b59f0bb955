from __future__ import annotations

from typing import Any, Protocol

from chat_ai_orx.types import Turn, UserIdentity


class IdentityStore(Protocol):
    async def query_user(self, user_id: str) -> dict[str, Any] | None: ...

    async def upsert_user(self, identity: UserIdentity, *, role: str) -> None: ...


class ConversationStore(Protocol):
    async def find_user(self, user_id: str) -> UserIdentity | None: ...

    async def insert_user(self, identity: UserIdentity) -> None: ...

    async def insert_turn(self, *, user_id: str, message: str, reply: str) -> Turn: ...

    async def list_turns(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[Turn]: ...


class CompletionEngine(Protocol):
    async def generate_reply(self, messages: list[dict[str, str]]) -> str | None: ...


class DeliveryChannel(Protocol):
    async def ensure_channel(self, channel_id: str, *, created_by_id: str) -> None: ...

    async def publish(self, channel_id: str, *, text: str, sender_id: str) -> None: ...
