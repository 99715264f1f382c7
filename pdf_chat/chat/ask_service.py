from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pdf_chat.exception.custom_exception import (
    LimitExceeded,
    NotFound,
    Unauthenticated,
    ValidationFailure,
)
from pdf_chat.logger import GLOBAL_LOGGER as log

DEFAULT_QUESTION_LIMIT = 100


@dataclass
class AskResult:
    answer: str
    human_turn_id: int
    ai_turn_id: int


@dataclass
class Usage:
    questions_asked: int
    question_limit: Optional[int]

    @property
    def remaining(self) -> Optional[int]:
        if self.question_limit is None:
            return None
        return max(0, self.question_limit - self.questions_asked)


class ChatService:
    """
    Server side of a chat exchange about one document.

    Persists the user's question, asks the orchestrator, then persists the
    answer. A failed answer leaves the question in the transcript with no
    reply after it; no AI turn is written for the failed attempt.
    """

    def __init__(
        self,
        chat_repo,
        document_repo,
        orchestrator,
        question_limit: Optional[int] = DEFAULT_QUESTION_LIMIT,
    ):
        self.chat_repo = chat_repo
        self.document_repo = document_repo
        self.orchestrator = orchestrator
        self.question_limit = question_limit

    async def usage(self, db: AsyncSession, user_id: str, document_id: str) -> Usage:
        asked = await self.chat_repo.count_turns(db, user_id, document_id, role="human")
        return Usage(questions_asked=asked, question_limit=self.question_limit)

    async def ask_question(
        self, db: AsyncSession, user_id: Optional[str], document_id: str, question: str
    ) -> AskResult:
        if not user_id:
            raise Unauthenticated("User not found!")
        if not question or not question.strip():
            raise ValidationFailure("Question must not be empty")

        if await self.document_repo.get_document(db, user_id, document_id) is None:
            raise NotFound(f"Document {document_id} not found")

        # check how many questions were already asked about this document
        usage = await self.usage(db, user_id, document_id)
        if usage.question_limit is not None and usage.remaining == 0:
            log.info(
                "Question limit reached | document_id=%s | asked=%d",
                document_id,
                usage.questions_asked,
            )
            raise LimitExceeded(
                f"Question limit of {usage.question_limit} reached for this document"
            )

        human_turn = await self.chat_repo.add_turn(
            db, user_id, document_id, "human", question
        )

        # Generate AI response; failures propagate and no AI turn is stored
        reply = await self.orchestrator.answer(
            db, user_id, document_id, question, exclude_turn_id=human_turn.id
        )

        ai_turn = await self.chat_repo.add_turn(db, user_id, document_id, "ai", reply)

        log.info(
            "Chat completed | document_id=%s | human_turn=%s | ai_turn=%s",
            document_id,
            human_turn.id,
            ai_turn.id,
        )
        return AskResult(answer=reply, human_turn_id=human_turn.id, ai_turn_id=ai_turn.id)
