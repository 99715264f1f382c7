from typing import List, Optional

from langchain_core.documents import Document
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.output_parsers import StrOutputParser
from sqlalchemy.ext.asyncio import AsyncSession

from pdf_chat.exception.custom_exception import (
    PdfChatException,
    UpstreamFailure,
    ValidationFailure,
)
from pdf_chat.graph.builder import build_graph
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.prompts.prompt_library import PROMPT_REGISTRY
from pdf_chat.src.document_chat.retrieval import RetrieverWrapper
from pdf_chat.utils.thread_pool import run_sync

DEFAULT_HISTORY_TURNS = 10


def to_chat_history(turns) -> List[BaseMessage]:
    """Map stored transcript turns to LangChain messages; same-role runs are kept as-is."""
    return [
        HumanMessage(t.message) if t.role == "human" else AIMessage(t.message)
        for t in turns
    ]


def format_context(docs: List[Document]) -> str:
    return "\n\n".join(getattr(d, "page_content", str(d)) for d in docs)


class RetrievalOrchestrator:
    """
    History-aware retrieval + grounded answer generation for one document.

      - ensures the document's vector namespace exists (EmbeddingProvisioner)
      - loads a window of the transcript as chat history
      - rewrites the question into a standalone search query
      - retrieves chunks from the namespace
      - answers the ORIGINAL question from those chunks

    Nothing is persisted here; the chat service owns the transcript writes.
    """

    def __init__(
        self,
        provisioner,
        chat_repo,
        retriever: RetrieverWrapper,
        llm,
        history_max_turns: int = DEFAULT_HISTORY_TURNS,
    ):
        self.provisioner = provisioner
        self.chat_repo = chat_repo
        self.retriever = retriever
        self.llm = llm
        self.history_max_turns = history_max_turns

        self.contextualize_prompt = PROMPT_REGISTRY["contextualize_question"]
        self.qa_prompt = PROMPT_REGISTRY["context_qa"]

        # compile the graph once at initialization
        self.graph = build_graph()

        log.info(
            "RetrievalOrchestrator initialized | history_max_turns=%d",
            history_max_turns,
        )

    # ------------------------------------------------------------------
    # prompt construction
    # ------------------------------------------------------------------
    def build_rewrite_messages(
        self, question: str, chat_history: List[BaseMessage]
    ) -> List[BaseMessage]:
        return self.contextualize_prompt.format_messages(
            input=question, chat_history=chat_history
        )

    def build_answer_messages(
        self, question: str, chat_history: List[BaseMessage], docs: List[Document]
    ) -> List[BaseMessage]:
        return self.qa_prompt.format_messages(
            input=question, chat_history=chat_history, context=format_context(docs)
        )

    # ------------------------------------------------------------------
    # steps (called from graph nodes)
    # ------------------------------------------------------------------
    async def load_chat_history(
        self,
        db: AsyncSession,
        user_id: str,
        document_id: str,
        exclude_turn_id: Optional[int] = None,
    ) -> List[BaseMessage]:
        # one extra row so dropping the excluded turn still leaves a full window
        limit = self.history_max_turns + (1 if exclude_turn_id is not None else 0)
        turns = await self.chat_repo.get_history(db, user_id, document_id, limit=limit)

        if exclude_turn_id is not None:
            turns = [t for t in turns if t.id != exclude_turn_id]
        turns = turns[-self.history_max_turns :] if self.history_max_turns else []

        log.info(
            "Chat history loaded | document_id=%s | turns=%d", document_id, len(turns)
        )
        return to_chat_history(turns)

    async def rewrite_query(self, question: str, chat_history: List[BaseMessage]) -> str:
        if not chat_history:
            log.info("no chat_history passing default user input query")
            return question

        chain = self.llm | StrOutputParser()
        messages = self.build_rewrite_messages(question, chat_history)
        try:
            rewritten = await run_sync(chain.invoke, messages)
        except Exception as e:
            log.error("Query rewrite failed | error=%s", str(e))
            raise UpstreamFailure("Query rewrite failed", e) from e

        rewritten = rewritten.strip() or question
        log.info("Query rewritten from chat history | rewritten_query=%s", rewritten)
        return rewritten

    async def retrieve(self, namespace: str, search_query: str) -> List[Document]:
        return await run_sync(self.retriever.retrieve, namespace, search_query)

    async def generate(
        self, question: str, chat_history: List[BaseMessage], docs: List[Document]
    ) -> str:
        log.info("Generating answer | docs=%d | history=%d", len(docs), len(chat_history))

        qa_chain = self.llm | StrOutputParser()
        messages = self.build_answer_messages(question, chat_history, docs)
        try:
            answer = await run_sync(qa_chain.invoke, messages)
        except Exception as e:
            log.error("Answer generation failed | error=%s", str(e))
            raise UpstreamFailure("Answer generation failed", e) from e
        return answer

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    async def answer(
        self,
        db: AsyncSession,
        user_id: str,
        document_id: str,
        question: str,
        exclude_turn_id: Optional[int] = None,
    ) -> str:
        if not question or not question.strip():
            raise ValidationFailure("Question must not be empty")

        state = {
            "orchestrator": self,
            "db": db,
            "user_id": user_id,
            "document_id": document_id,
            "question": question,
            "exclude_turn_id": exclude_turn_id,
            "steps": [],
        }

        try:
            result = await self.graph.ainvoke(state)
        except PdfChatException:
            raise
        except Exception as e:
            log.error("RAG pipeline failed | document_id=%s | error=%s", document_id, str(e))
            raise UpstreamFailure("RAG pipeline failed", e) from e

        log.info(
            "Answer generated | document_id=%s | steps=%s",
            document_id,
            result.get("steps"),
        )
        return result["output"]
