from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pdf_chat.logger import GLOBAL_LOGGER as log

from .models import ChatTurn

ROLES = ("human", "ai")


class ChatRepository:
    """
    Append-only transcript store: ChatTurn rows per (user, document).

    Every append is followed by a change notification on the transcript
    feed, which powers live subscriptions.
    """

    def __init__(self, feed=None):
        self.feed = feed

    async def add_turn(
        self, db: AsyncSession, user_id: str, document_id: str, role: str, message: str
    ) -> ChatTurn:
        if role not in ROLES:
            raise ValueError(f"Unknown chat role {role!r}")

        turn = ChatTurn(
            user_id=user_id, document_id=document_id, role=role, message=message
        )
        db.add(turn)
        await db.commit()
        await db.refresh(turn)

        log.info(
            "Chat turn persisted | document_id=%s | role=%s | turn_id=%s",
            document_id,
            role,
            turn.id,
        )

        if self.feed is not None:
            await self.feed.publish(user_id, document_id)
        return turn

    async def get_history(
        self,
        db: AsyncSession,
        user_id: str,
        document_id: str,
        limit: Optional[int] = None,
    ) -> list[ChatTurn]:
        """
        Most recent `limit` turns (all when None), returned in chronological order.
        """
        stmt = (
            select(ChatTurn)
            .where(ChatTurn.user_id == user_id, ChatTurn.document_id == document_id)
            .order_by(ChatTurn.created_at.desc(), ChatTurn.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        out = await db.execute(stmt)
        # restore chronological order
        rows = list(reversed(out.scalars().all()))
        log.info(
            "Loaded history | document_id=%s | count=%d",
            document_id,
            len(rows),
        )
        return rows

    async def count_turns(
        self,
        db: AsyncSession,
        user_id: str,
        document_id: str,
        role: Optional[str] = None,
    ) -> int:
        stmt = select(func.count(ChatTurn.id)).where(
            ChatTurn.user_id == user_id, ChatTurn.document_id == document_id
        )
        if role is not None:
            stmt = stmt.where(ChatTurn.role == role)
        out = await db.execute(stmt)
        return int(out.scalar_one())
