from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pdf_chat.exception.custom_exception import NotFound, Unauthenticated, ValidationFailure
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.utils.keyed_lock import KeyedLock
from pdf_chat.utils.thread_pool import run_sync


@dataclass
class VectorStoreHandle:
    namespace: str
    store: Any
    created: bool = False


class EmbeddingProvisioner:
    """
    Makes sure a document has a populated vector namespace (namespace == document id).

    The existence check and the population run under a per-document lock,
    so two first-time questions in the same process ingest once. Processes
    do not share the lock; two workers can still race on a brand new
    document and the later write wins.
    """

    def __init__(self, vector_index, ingestor, document_repo, locks: Optional[KeyedLock] = None):
        self.vector_index = vector_index
        self.ingestor = ingestor
        self.document_repo = document_repo
        self.locks = locks or KeyedLock()

    async def ensure_embeddings(
        self, db: AsyncSession, user_id: Optional[str], document_id: str
    ) -> VectorStoreHandle:
        if not user_id:
            raise Unauthenticated("User not found!")
        if not document_id:
            raise ValidationFailure("No namespace value provided.")

        document = await self.document_repo.get_document(db, user_id, document_id)
        if document is None:
            raise NotFound(f"Document {document_id} not found")

        async with self.locks.hold(document_id):
            if await run_sync(self.vector_index.namespace_exists, document_id):
                log.info(
                    "--- Namespace %s already exists, reusing existing embeddings ---",
                    document_id,
                )
                store = await run_sync(self.vector_index.open_namespace, document_id)
                return VectorStoreHandle(namespace=document_id, store=store, created=False)

            # namespace missing: fetch the PDF via its download URL, chunk and embed it
            chunks = await self.ingestor.ingest(document)

            log.info(
                "--- Storing %d embeddings in namespace %s ---", len(chunks), document_id
            )
            await run_sync(
                self.vector_index.create_or_append_namespace, document_id, chunks
            )
            store = await run_sync(self.vector_index.open_namespace, document_id)
            return VectorStoreHandle(namespace=document_id, store=store, created=True)
