from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pdf_chat.logger import GLOBAL_LOGGER as log

from .models import Document


class DocumentRepository:
    """
    Repository for uploaded Document records. Every read is scoped to the owner.
    """

    async def create_document(
        self,
        db: AsyncSession,
        *,
        document_id: str,
        user_id: str,
        name: str,
        size: int,
        content_type: str,
        download_url: str,
        storage_path: str,
    ) -> Document:
        doc = Document(
            id=document_id,
            user_id=user_id,
            name=name,
            size=size,
            content_type=content_type,
            download_url=download_url,
            storage_path=storage_path,
        )
        db.add(doc)
        await db.commit()
        await db.refresh(doc)
        log.info("Document saved | document_id=%s | user_id=%s", doc.id, user_id)
        return doc

    async def get_document(
        self, db: AsyncSession, user_id: str, document_id: str
    ) -> Optional[Document]:
        out = await db.execute(
            select(Document).where(
                Document.id == document_id, Document.user_id == user_id
            )
        )
        doc = out.scalar_one_or_none()
        log.info(
            "Document lookup | document_id=%s | found=%s", document_id, doc is not None
        )
        return doc

    async def list_documents(self, db: AsyncSession, user_id: str) -> list[Document]:
        """Most recent uploads first."""
        q = await db.execute(
            select(Document)
            .where(Document.user_id == user_id)
            .order_by(Document.created_at.desc())
        )
        docs = list(q.scalars().all())
        log.info("Listing documents | user_id=%s | count=%d", user_id, len(docs))
        return docs
