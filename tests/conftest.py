"""Shared pytest fixtures and fakes for all test suites."""

import asyncio
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from langchain_core.documents import Document
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from api.auth import Authenticator
from api.container import AppContainer, assemble_container
from db.database import build_session_factory
from db.document_repository import DocumentRepository
from db.models import Base
from pdf_chat.src.document_storage.local_storage import LocalDocumentStorage
from redis_cache.transcript_feed import LocalTranscriptFeed

TEST_CONFIG = {
    "retriever": {"search_type": "similarity", "top_k": 2},
    "history": {"max_turns": 10},
    "limits": {"max_questions_per_document": 100},
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeVectorIndex:
    """In-memory stand-in for FaissVectorIndex that records every call."""

    def __init__(self):
        self.namespaces: dict[str, list[Document]] = {}
        self.population_events: list[str] = []
        self.embedded_queries: list[str] = []
        self.queries: list[tuple[str, list[float], int]] = []

    def describe_namespace_stats(self) -> dict[str, dict[str, Any]]:
        return {ns: {"vector_count": len(d)} for ns, d in self.namespaces.items() if d}

    def namespace_exists(self, namespace: str) -> bool:
        return bool(self.namespaces.get(namespace))

    def create_or_append_namespace(self, namespace: str, chunks: list[Document]) -> int:
        self.population_events.append(namespace)
        self.namespaces.setdefault(namespace, []).extend(chunks)
        return len(self.namespaces[namespace])

    def open_namespace(self, namespace: str):
        return self.namespaces[namespace]

    def embed_query(self, text: str) -> list[float]:
        self.embedded_queries.append(text)
        return [float(len(text)), 1.0]

    def query_namespace(self, namespace, query_vector, k=4, **kwargs) -> list[Document]:
        self.queries.append((namespace, query_vector, k))
        return self.namespaces.get(namespace, [])[:k]


class FakeIngestor:
    """Returns canned chunks and counts how often ingestion ran."""

    def __init__(self, text: str = "Refunds are accepted within 30 days of purchase.", delay: float = 0.0):
        self.text = text
        self.delay = delay
        self.calls: list[str] = []

    async def ingest(self, document) -> list[Document]:
        self.calls.append(document.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        return [
            Document(
                page_content=self.text,
                metadata={"id": f"{document.id}__0", "document_id": document.id, "page": 0},
            )
        ]


class RecordingChatModel(FakeListChatModel):
    """FakeListChatModel that keeps every prompt it was called with."""

    received: list = []

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        self.received.append(list(messages))
        return super()._call(messages, stop=stop, run_manager=run_manager, **kwargs)


class FailingChatModel(FakeListChatModel):
    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        raise RuntimeError("completion service unavailable")


class FakeDocumentRepo:
    """Document lookups without a database, for lock/concurrency tests."""

    def __init__(self, *document_ids: str, user_id: str = "user_1"):
        self.docs = {
            (user_id, d): SimpleNamespace(id=d, user_id=user_id, name=f"{d}.pdf", download_url=f"file:///tmp/{d}")
            for d in document_ids
        }

    async def get_document(self, db, user_id, document_id):
        return self.docs.get((user_id, document_id))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed SQLite so every connection sees the same tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def document(db):
    """A stored document owned by user_1."""
    return await DocumentRepository().create_document(
        db,
        document_id="doc1",
        user_id="user_1",
        name="policy.pdf",
        size=1234,
        content_type="application/pdf",
        download_url="file:///tmp/policy.pdf",
        storage_path="users/user_1/files/doc1",
    )


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------
@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def ingestor() -> FakeIngestor:
    return FakeIngestor()


@pytest.fixture
def feed() -> LocalTranscriptFeed:
    return LocalTranscriptFeed()


@pytest.fixture
def llm() -> RecordingChatModel:
    return RecordingChatModel(
        responses=["Refunds are accepted within 30 days of purchase."],
        received=[],
    )


def make_container(session_factory, tmp_path, vector_index, ingestor, feed, llm, api_key=None, config=None) -> AppContainer:
    return assemble_container(
        session_factory=session_factory,
        authenticator=Authenticator(api_key=api_key),
        storage=LocalDocumentStorage(tmp_path / "storage"),
        feed=feed,
        vector_index=vector_index,
        ingestor=ingestor,
        llm=llm,
        config=config or TEST_CONFIG,
    )


@pytest.fixture
def container(session_factory, tmp_path, vector_index, ingestor, feed, llm) -> AppContainer:
    return make_container(session_factory, tmp_path, vector_index, ingestor, feed, llm)


@pytest.fixture
def container_factory(session_factory, tmp_path, vector_index, ingestor, feed):
    """Build a container with a different LLM / auth / config than the default."""

    def _factory(llm, api_key=None, config=None) -> AppContainer:
        return make_container(
            session_factory, tmp_path, vector_index, ingestor, feed, llm, api_key=api_key, config=config
        )

    return _factory


@pytest.fixture
def failing_llm() -> FailingChatModel:
    return FailingChatModel(responses=["never returned"])


@pytest.fixture
def recording_llm_factory():
    def _factory(*responses: str) -> RecordingChatModel:
        return RecordingChatModel(responses=list(responses), received=[])

    return _factory


@pytest.fixture
def fake_document_repo():
    return FakeDocumentRepo


@pytest.fixture
def ingestor_factory():
    return FakeIngestor
