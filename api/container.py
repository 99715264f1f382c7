from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from api.auth import Authenticator
from db.chat_repository import ChatRepository
from db.database import build_engine, build_session_factory, init_db
from db.document_repository import DocumentRepository
from pdf_chat.chat.ask_service import ChatService
from pdf_chat.graph.orchestrator import RetrievalOrchestrator
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.src.document_chat.retrieval import RetrieverWrapper
from pdf_chat.src.document_ingestion.data_ingestion import DocumentIngestor
from pdf_chat.src.document_ingestion.embedding_provisioner import EmbeddingProvisioner
from pdf_chat.src.document_storage.local_storage import LocalDocumentStorage
from pdf_chat.src.vector_index.faiss_index import FaissVectorIndex
from pdf_chat.utils.config_loader import load_config
from pdf_chat.utils.model_loader import ModelLoader
from pdf_chat.utils.settings import Settings
from redis_cache.transcript_feed import LocalTranscriptFeed, RedisTranscriptFeed


@dataclass
class AppContainer:
    """Every long-lived client of the process, built once at startup."""

    session_factory: Any
    authenticator: Authenticator
    storage: LocalDocumentStorage
    feed: Any
    document_repo: DocumentRepository
    chat_repo: ChatRepository
    vector_index: Any
    provisioner: EmbeddingProvisioner
    orchestrator: RetrievalOrchestrator
    chat_service: ChatService
    engine: Optional[AsyncEngine] = None

    async def aclose(self) -> None:
        await self.feed.close()
        if self.engine is not None:
            await self.engine.dispose()


def assemble_container(
    *,
    session_factory,
    authenticator: Authenticator,
    storage: LocalDocumentStorage,
    feed,
    vector_index,
    ingestor,
    llm,
    config: dict,
    engine: Optional[AsyncEngine] = None,
) -> AppContainer:
    """Wire components together from already-built clients."""
    document_repo = DocumentRepository()
    chat_repo = ChatRepository(feed=feed)

    provisioner = EmbeddingProvisioner(
        vector_index=vector_index, ingestor=ingestor, document_repo=document_repo
    )
    retriever = RetrieverWrapper(vector_index, config.get("retriever", {}))
    orchestrator = RetrievalOrchestrator(
        provisioner=provisioner,
        chat_repo=chat_repo,
        retriever=retriever,
        llm=llm,
        history_max_turns=config.get("history", {}).get("max_turns", 10),
    )
    chat_service = ChatService(
        chat_repo=chat_repo,
        document_repo=document_repo,
        orchestrator=orchestrator,
        question_limit=config.get("limits", {}).get("max_questions_per_document"),
    )

    return AppContainer(
        session_factory=session_factory,
        authenticator=authenticator,
        storage=storage,
        feed=feed,
        document_repo=document_repo,
        chat_repo=chat_repo,
        vector_index=vector_index,
        provisioner=provisioner,
        orchestrator=orchestrator,
        chat_service=chat_service,
        engine=engine,
    )


async def build_container(settings: Settings) -> AppContainer:
    """Production wiring: database, feed, storage, models and FAISS from settings."""
    config = load_config(settings.config_path)

    engine = build_engine(settings.database_url)
    await init_db(engine)

    if settings.redis_url:
        feed = RedisTranscriptFeed.from_url(settings.redis_url)
        log.info("Transcript feed: redis")
    else:
        feed = LocalTranscriptFeed()
        log.info("Transcript feed: in-process")

    model_loader = ModelLoader(config)
    cache_cfg = config.get("vector_cache", {})
    vector_index = FaissVectorIndex(
        settings.faiss_dir,
        model_loader.load_embeddings(),
        cache_maxsize=cache_cfg.get("maxsize", 128),
        cache_ttl=cache_cfg.get("ttl", 3600),
    )

    storage = LocalDocumentStorage(settings.storage_dir)
    chunk_cfg = config.get("chunking", {})
    ingestor = DocumentIngestor(
        storage,
        temp_base=settings.temp_dir,
        chunk_size=chunk_cfg.get("chunk_size", 1000),
        chunk_overlap=chunk_cfg.get("chunk_overlap", 200),
    )

    return assemble_container(
        session_factory=build_session_factory(engine),
        authenticator=Authenticator(api_key=settings.api_key),
        storage=storage,
        feed=feed,
        vector_index=vector_index,
        ingestor=ingestor,
        llm=model_loader.load_llm("rag"),
        config=config,
        engine=engine,
    )
