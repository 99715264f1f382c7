from typing import Any, AsyncIterable, Awaitable, Callable, Iterable, Optional

from pdf_chat.chat import session_state as ss
from pdf_chat.logger import GLOBAL_LOGGER as log

AskFn = Callable[[str], Awaitable[str]]
LoadTranscriptFn = Callable[[], Awaitable[Iterable[Any]]]


class ChatSessionController:
    """
    Drives ChatState for one open chat view.

    `ask` sends the question to the backend (which persists both turns) and
    returns the answer text. `load_transcript`, when given, re-reads the
    authoritative turns after each reply.
    """

    def __init__(
        self,
        ask: AskFn,
        load_transcript: Optional[LoadTranscriptFn] = None,
        state: Optional[ss.ChatState] = None,
    ):
        self._ask = ask
        self._load_transcript = load_transcript
        self.state = state or ss.ChatState()

    async def submit(self, question: str) -> ss.ChatState:
        if not self.state.can_submit:
            log.info("Submit ignored while awaiting a reply")
            return self.state

        before = self.state
        self.state = ss.submit(self.state, question)
        if self.state is before:
            return self.state

        try:
            answer = await self._ask(question)
        except Exception as e:
            # any failure kind is rendered inline the same way
            log.error("Ask failed | error=%s", str(e))
            self.state = ss.reply_failed(self.state, str(e))
            return self.state

        self.state = ss.reply_succeeded(self.state, answer)
        await self.refresh()
        return self.state

    async def refresh(self) -> ss.ChatState:
        if self._load_transcript is None:
            return self.state
        turns = await self._load_transcript()
        return self.on_snapshot(turns)

    def on_snapshot(self, turns: Iterable[Any]) -> ss.ChatState:
        self.state = ss.receive_snapshot(self.state, turns)
        return self.state

    async def consume(self, snapshots: AsyncIterable[Iterable[Any]]) -> None:
        """Apply a live stream of transcript snapshots until it ends."""
        async for turns in snapshots:
            self.on_snapshot(turns)
