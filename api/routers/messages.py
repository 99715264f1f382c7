import json
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from api.auth import require_user
from db.database import get_db
from pdf_chat.exception.custom_exception import NotFound
from pdf_chat.logger import GLOBAL_LOGGER as log

router = APIRouter()


class TurnOut(BaseModel):
    id: int
    role: str
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


async def _load_turns(container, db, user_id: str, document_id: str) -> list[TurnOut]:
    turns = await container.chat_repo.get_history(db, user_id, document_id)
    return [TurnOut.model_validate(t) for t in turns]


async def _require_document(container, db, user_id: str, document_id: str) -> None:
    if await container.document_repo.get_document(db, user_id, document_id) is None:
        raise NotFound(f"Document {document_id} not found")


@router.get("/documents/{document_id}/messages", response_model=list[TurnOut])
async def get_messages(
    document_id: str,
    request: Request,
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    container = request.app.state.container
    await _require_document(container, db, user_id, document_id)
    return await _load_turns(container, db, user_id, document_id)


def _sse(turns: list[TurnOut]) -> str:
    payload = json.dumps([t.model_dump(mode="json") for t in turns])
    return f"event: snapshot\ndata: {payload}\n\n"


@router.get("/documents/{document_id}/messages/stream")
async def stream_messages(
    document_id: str,
    request: Request,
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    """
    Live transcript subscription as Server-Sent Events.

    Sends the ordered transcript immediately, then a fresh snapshot every
    time a turn is appended for this (user, document).
    """
    container = request.app.state.container
    await _require_document(container, db, user_id, document_id)

    async def event_stream():
        log.info("Transcript stream opened | document_id=%s", document_id)
        async with container.session_factory() as session:
            yield _sse(await _load_turns(container, session, user_id, document_id))

        subscription = container.feed.subscribe(user_id, document_id)
        try:
            async for _ in subscription:
                if await request.is_disconnected():
                    break
                # fresh session per snapshot so each read sees the latest commit
                async with container.session_factory() as session:
                    yield _sse(await _load_turns(container, session, user_id, document_id))
        finally:
            await subscription.aclose()
            log.info("Transcript stream closed | document_id=%s", document_id)

    return StreamingResponse(event_stream(), media_type="text/event-stream")
