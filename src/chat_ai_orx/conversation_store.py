"""SQL-backed conversation store.

Holds the store-level user table and the append-only log of chat turns.
Turns are never updated or deleted; `created_at` is assigned by the database
on insert and ties are broken by the serial `id`.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from chat_ai_orx.types import Turn, UserIdentity

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(Text)
    email: Mapped[str] = mapped_column(Text)


class ChatRecord(Base):
    __tablename__ = "chats"
    __table_args__ = (Index("ix_chats_user_id_created_at", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"))
    message: Mapped[str] = mapped_column(Text)
    reply: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SqlConversationStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def find_user(self, user_id: str) -> UserIdentity | None:
        async with self._sessions() as session:
            record = await session.get(UserRecord, user_id)
        if record is None:
            return None
        return UserIdentity(
            user_id=record.user_id, name=record.name, email=record.email
        )

    async def insert_user(self, identity: UserIdentity) -> None:
        async with self._sessions() as session:
            session.add(
                UserRecord(
                    user_id=identity.user_id,
                    name=identity.name,
                    email=identity.email,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent registration inserted the same id first.
                await session.rollback()
                logger.info("store_user_exists user_id=%s", identity.user_id)

    async def insert_turn(self, *, user_id: str, message: str, reply: str) -> Turn:
        record = ChatRecord(user_id=user_id, message=message, reply=reply)
        async with self._sessions() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return _to_turn(record)

    async def list_turns(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[Turn]:
        if newest_first:
            ordering = (ChatRecord.created_at.desc(), ChatRecord.id.desc())
        else:
            ordering = (ChatRecord.created_at.asc(), ChatRecord.id.asc())

        statement = (
            select(ChatRecord).where(ChatRecord.user_id == user_id).order_by(*ordering)
        )
        if limit is not None:
            statement = statement.limit(limit)

        async with self._sessions() as session:
            result = await session.scalars(statement)
            records = result.all()
        return [_to_turn(record) for record in records]

    async def close(self) -> None:
        await self._engine.dispose()


def create_store(database_url: str, *, echo: bool = False) -> SqlConversationStore:
    engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
    return SqlConversationStore(engine)


def _to_turn(record: ChatRecord) -> Turn:
    return Turn(
        id=record.id,
        user_id=record.user_id,
        message=record.message,
        reply=record.reply,
        created_at=record.created_at,
    )
