from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Callable, List

from langchain_community.document_loaders import PyPDFLoader
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from pdf_chat.exception.custom_exception import (
    NotFound,
    PdfChatException,
    UpstreamFailure,
    ValidationFailure,
)
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.src.document_storage.local_storage import LocalDocumentStorage
from pdf_chat.utils.thread_pool import run_sync


class DocumentIngestor:
    """
    Turn a stored PDF into retrieval chunks.

    - fetch the document bytes from its download URL
    - write them to a temp file and extract page text with PyPDFLoader
    - split into bounded-size overlapping chunks
    - tag every chunk with document_id / source / page and a stable id
    """

    def __init__(
        self,
        storage: LocalDocumentStorage,
        temp_base: str | Path = "data/tmp",
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        loader_cls: Callable[[str], Any] = PyPDFLoader,
    ):
        self.storage = storage
        self.temp_base = Path(temp_base)
        self.temp_base.mkdir(parents=True, exist_ok=True)
        self.loader_cls = loader_cls

        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )

        log.info(
            "DocumentIngestor initialized | chunk_size=%d | chunk_overlap=%d",
            chunk_size,
            chunk_overlap,
        )

    def _load_pages(self, document_id: str, data: bytes) -> List[Document]:
        tmp_path = self.temp_base / f"{document_id}_{uuid.uuid4().hex[:5]}.pdf"
        tmp_path.write_bytes(data)
        try:
            loader = self.loader_cls(str(tmp_path))
            return loader.load()
        finally:
            tmp_path.unlink(missing_ok=True)

    def _split(self, document: Any, pages: List[Document]) -> List[Document]:
        chunks = self.splitter.split_documents(pages)

        out: List[Document] = []
        for idx, chunk in enumerate(c for c in chunks if c.page_content.strip()):
            md = dict(chunk.metadata or {})
            md.update(
                {
                    "id": f"{document.id}__{idx}",
                    "document_id": document.id,
                    "source": document.name,
                    "page": md.get("page", 0),
                }
            )
            chunk.metadata = md
            out.append(chunk)
        return out

    async def ingest(self, document: Any) -> List[Document]:
        download_url = getattr(document, "download_url", None)
        if not download_url:
            raise NotFound("Download URL not found")

        log.info("-- fetching the document bytes | document_id=%s --", document.id)
        data = await run_sync(self.storage.fetch_bytes, download_url)

        log.info("-- Loading PDF document | document_id=%s --", document.id)
        try:
            pages = await run_sync(self._load_pages, document.id, data)
        except PdfChatException:
            raise
        except Exception as e:
            log.error("PDF text extraction failed | document_id=%s | error=%s", document.id, str(e))
            raise UpstreamFailure("Failed to extract text from document", e) from e

        log.info("--- Splitting the document into smaller parts... ---")
        chunks = self._split(document, pages)
        if not chunks:
            raise ValidationFailure(f"No extractable text in document {document.id}")

        log.info(
            "--- Split into %d parts | document_id=%s | pages=%d ---",
            len(chunks),
            document.id,
            len(pages),
        )
        return chunks
