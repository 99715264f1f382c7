"""
Chat view state for one open document conversation.

Pure functions of (state, event) -> new state. Nothing here touches the
network; the controller and the Streamlit app feed events in.

    Idle --submit--> AwaitingReply --reply_succeeded--> Idle
                          |
                          +--reply_failed--> Error --snapshot--> Idle

Error is Idle with the failure rendered inline: it accepts submit (straight
to AwaitingReply) and the next snapshot clears it. The Streamlit app pauses
polling while in Error so the failure message stays on screen.

While the newest message is the pending placeholder, transcript snapshots
are ignored so an older snapshot cannot replace the optimistic messages.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

PLACEHOLDER_TEXT = "Thinking..."
FAILURE_PREFIX = "whoops..."


class ChatStatus(str, Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    ERROR = "error"


@dataclass(frozen=True)
class UIMessage:
    role: str  # "human" | "ai" | "placeholder"
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[Any] = None

    @property
    def is_placeholder(self) -> bool:
        return self.role == "placeholder"


@dataclass(frozen=True)
class ChatState:
    messages: Tuple[UIMessage, ...] = ()
    status: ChatStatus = ChatStatus.IDLE
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return bool(self.messages) and self.messages[-1].is_placeholder

    @property
    def can_submit(self) -> bool:
        return self.status != ChatStatus.AWAITING_REPLY


def submit(state: ChatState, question: str) -> ChatState:
    """Optimistically show the question and a placeholder answer."""
    if not question or not question.strip() or not state.can_submit:
        return state

    return ChatState(
        messages=state.messages
        + (
            UIMessage(role="human", message=question),
            UIMessage(role="placeholder", message=PLACEHOLDER_TEXT),
        ),
        status=ChatStatus.AWAITING_REPLY,
        error=None,
    )


def _replace_placeholder(state: ChatState, message: UIMessage) -> Tuple[UIMessage, ...]:
    if state.is_pending:
        return state.messages[:-1] + (message,)
    return state.messages + (message,)


def reply_succeeded(state: ChatState, answer: str) -> ChatState:
    return ChatState(
        messages=_replace_placeholder(state, UIMessage(role="ai", message=answer)),
        status=ChatStatus.IDLE,
        error=None,
    )


def reply_failed(state: ChatState, error: str) -> ChatState:
    return ChatState(
        messages=_replace_placeholder(
            state, UIMessage(role="ai", message=f"{FAILURE_PREFIX} {error}")
        ),
        status=ChatStatus.ERROR,
        error=error,
    )


def turn_to_message(turn: Any) -> UIMessage:
    """Accepts ORM rows, API dicts or anything with role/message/created_at."""
    if isinstance(turn, dict):
        created_at = turn.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return UIMessage(
            id=turn.get("id"),
            role=turn["role"],
            message=turn["message"],
            created_at=created_at or datetime.now(timezone.utc),
        )
    return UIMessage(
        id=getattr(turn, "id", None),
        role=turn.role,
        message=turn.message,
        created_at=turn.created_at,
    )


def receive_snapshot(state: ChatState, turns: Iterable[Any]) -> ChatState:
    """Adopt the authoritative transcript unless a reply is still pending."""
    if state.is_pending:
        return state

    return replace(
        state,
        messages=tuple(turn_to_message(t) for t in turns),
        status=ChatStatus.IDLE,
        error=None,
    )
