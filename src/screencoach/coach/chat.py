"""Chat side channel with the same failover discipline as analysis."""

from __future__ import annotations

import logging
from collections.abc import Callable

from screencoach.backend.client import InsightBackend
from screencoach.capture.base import FrameSource
from screencoach.coach.failover import (
    BackgroundTasks,
    FailoverRunner,
    NoCredentialsError,
    PoolExhaustedError,
)
from screencoach.domain.models import ChatRole, ConversationTurn, FileAttachment
from screencoach.interpreter.base import ProviderError

logger = logging.getLogger(__name__)

CHAT_ERROR_TEXT = (
    "I'm sorry, I encountered a connection error (likely quota exceeded or network issue). "
    "Please check your API keys or try again in a moment."
)


def display_text(text: str, attachment: FileAttachment | None) -> str:
    if attachment is None:
        return text
    return f"[File: {attachment.name}] {text}"


class ChatOrchestrator:
    """Sends user messages with the current screen and prior turns.

    The user turn is appended before the model is called; the model turn
    (or a fixed error turn) follows once the call resolves.
    """

    def __init__(
        self,
        runner: FailoverRunner,
        frame_source: FrameSource | None = None,
        backend: InsightBackend | None = None,
        goal: str = "",
        on_turn: Callable[[ConversationTurn], None] | None = None,
        on_reconfigure_needed: Callable[[str], None] | None = None,
    ) -> None:
        self._runner = runner
        self._source = frame_source
        self._backend = backend
        self.goal = goal
        self.on_turn = on_turn
        self.on_reconfigure_needed = on_reconfigure_needed
        self._history: list[ConversationTurn] = []
        self._processing = False
        self._background = BackgroundTasks()

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._history)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def background(self) -> BackgroundTasks:
        return self._background

    async def load_history(self) -> None:
        if self._backend is None:
            return
        self._history = list(await self._backend.fetch_chat_history())
        logger.info("Loaded %d chat turns from backend", len(self._history))

    async def send(
        self,
        text: str,
        attachment: FileAttachment | None = None,
        include_screen: bool = True,
    ) -> ConversationTurn | None:
        """Send one message and return the model (or error) turn.

        Returns None without calling any provider when the credential
        pool is empty; the reconfigure callback fires instead.
        """
        if not text.strip() and attachment is None:
            return None
        if self._runner.pool.is_empty:
            self._signal_reconfigure("No API keys configured")
            return None

        goal = self.goal
        prior = list(self._history)
        self._append(ConversationTurn(role=ChatRole.USER, text=display_text(text, attachment)), goal)

        self._processing = True
        try:
            screenshot = None
            if include_screen and self._source is not None and self._source.is_active:
                screenshot = await self._source.take_snapshot(suppress_unchanged=False)
            try:
                result = await self._runner.run(
                    lambda provider, credential: provider.send_chat(
                        text, prior, screenshot, goal, credential, attachment
                    ),
                    label="chat",
                )
            except PoolExhaustedError as e:
                logger.warning("Chat failed: %s", e)
                self._signal_reconfigure(str(e))
                return self._append(ConversationTurn(role=ChatRole.MODEL, text=CHAT_ERROR_TEXT))
            except (ProviderError, NoCredentialsError) as e:
                logger.warning("Chat failed: %s", e)
                return self._append(ConversationTurn(role=ChatRole.MODEL, text=CHAT_ERROR_TEXT))
            return self._append(ConversationTurn(role=ChatRole.MODEL, text=result.value), goal)
        finally:
            self._processing = False

    def _append(self, turn: ConversationTurn, goal: str | None = None) -> ConversationTurn:
        """Record a turn; turns given a goal are also logged to the backend."""
        self._history.append(turn)
        if self.on_turn is not None:
            self.on_turn(turn)
        if goal is not None and self._backend is not None:
            self._background.spawn(
                self._backend.log_chat(turn.role, turn.text, goal or None),
                name=f"log-chat-{turn.role.value}",
            )
        return turn

    def _signal_reconfigure(self, reason: str) -> None:
        if self.on_reconfigure_needed is not None:
            self.on_reconfigure_needed(reason)
