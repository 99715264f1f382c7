from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from api.auth import require_user
from db.database import get_db
from pdf_chat.logger import GLOBAL_LOGGER as log

router = APIRouter()


class ChatRequest(BaseModel):
    question: str


class ChatResponse(BaseModel):
    success: bool = True
    answer: str
    human_turn_id: int
    ai_turn_id: int


class UsageResponse(BaseModel):
    questions_asked: int
    question_limit: Optional[int]
    remaining: Optional[int]


@router.post("/documents/{document_id}/chat", response_model=ChatResponse)
async def chat(
    document_id: str,
    req: ChatRequest,
    request: Request,
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    """
    Main chat endpoint.

    Pipeline:
      1. Persist the question as a human turn
      2. Ensure embeddings for the document (first question ingests it)
      3. Load chat history, rewrite the question into a search query
      4. Retrieve chunks and answer the original question
      5. Persist the answer as an ai turn
    """
    log.info("Chat request received | document_id=%s", document_id)

    result = await request.app.state.container.chat_service.ask_question(
        db, user_id, document_id, req.question
    )
    return ChatResponse(
        answer=result.answer,
        human_turn_id=result.human_turn_id,
        ai_turn_id=result.ai_turn_id,
    )


@router.get("/documents/{document_id}/usage", response_model=UsageResponse)
async def usage(
    document_id: str,
    request: Request,
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    u = await request.app.state.container.chat_service.usage(db, user_id, document_id)
    return UsageResponse(
        questions_asked=u.questions_asked,
        question_limit=u.question_limit,
        remaining=u.remaining,
    )
