"""Conversation engine: guards, debounce, retried dispatch, and the message log.

Role:
    Accepts user intents from the presentation layer, turns accepted submissions
    into a user message plus exactly one outcome message (reply or error), and
    exposes read-only state (log, busy flag, unread counter, history labels).

Submission flow:
    submit(text)
        -> reject empty / busy input
        -> session check (lazy mode creates the session and drops this call)
        -> (re)arm the debounce timer; only the last call of a burst survives
    debounce fires
        -> normalize, record history, append user message, clear composer
        -> busy on; up to max_attempts transport calls; busy off
        -> reply routed to ResponseParser when it carries the result banner
        -> bot reply handed to RevealScheduler; error messages are pre-revealed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Protocol

from .config import Settings
from .history_cache import HistoryCache
from .models import EngineSnapshot, Message, Suggestion
from .response_parser import has_result_banner, parse_response
from .reveal import RevealScheduler
from .session_store import SessionStore
from .transport import ChatTransport, TransportError
from .utils import normalize_message

logger = logging.getLogger("chatbot.engine")

GENERIC_ERROR = "Đã xảy ra lỗi. Vui lòng thử lại!"
BAD_REQUEST_ERROR = "Dữ liệu không hợp lệ. Vui lòng kiểm tra lại!"
SERVER_ERROR = "Lỗi máy chủ. Vui lòng thử lại sau!"

SUGGESTIONS = [
    Suggestion(label="Văn hóa", text="Tôi muốn tìm hiểu về văn hóa Khánh Hòa"),
    Suggestion(label="Sự kiện", text="Tôi muốn tìm sự kiện ở Nha Trang"),
    Suggestion(label="Địa điểm du lịch", text="Tôi muốn tìm địa điểm tham quan ở Nha Trang"),
    Suggestion(label="Ẩm thực", text="Tôi tìm nhà hàng"),
    Suggestion(label="Y tế", text="Tôi tìm bệnh viện"),
    Suggestion(label="Tour du lịch", text="Tôi tìm tour"),
]

Listener = Callable[[str], None]


class Transport(Protocol):
    async def send(self, message: str, session_id: str) -> str: ...

    async def aclose(self) -> None: ...


def error_message(exc: TransportError) -> str:
    """Purpose: Pick the bot-authored text shown when every attempt has failed.
    Inputs/Outputs: Input is the last TransportError; output is the message text.
    Side Effects / State: None.
    Dependencies: TransportError.status_code / server_error.
    Failure Modes: None; falls back to the generic message.
    If Removed: Users see no feedback after retries are exhausted.
    Testing Notes: 400, 500, 404 with an error field, and a network failure.
    """
    if exc.status_code is None:
        return GENERIC_ERROR
    if exc.status_code == 400:
        return BAD_REQUEST_ERROR
    if exc.status_code == 500:
        return SERVER_ERROR
    return exc.server_error or exc.detail or GENERIC_ERROR


class ConversationEngine:
    """Single-conversation orchestrator driven by presentation intents and timers."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[Transport] = None,
        sessions: Optional[SessionStore] = None,
        history: Optional[HistoryCache] = None,
        reveal: Optional[RevealScheduler] = None,
    ) -> None:
        """Purpose: Wire collaborators and open the session.
        Inputs/Outputs: Settings plus optional transport/session/history/reveal overrides.
        Side Effects / State: Creates a session id unless settings.eager_session is off.
        Dependencies: ChatTransport, SessionStore, HistoryCache, RevealScheduler.
        Failure Modes: ChatTransport raises ValueError for an empty endpoint.
        If Removed: Nothing coordinates the conversation.
        Testing Notes: Inject a fake transport and zero delays.
        """
        self._settings = settings
        self._owns_transport = transport is None
        self._transport: Transport = transport or ChatTransport(settings)
        self._sessions = sessions or SessionStore()
        self._history = history or HistoryCache(settings.history_capacity)
        self._reveal = reveal or RevealScheduler(settings.typing_delay, settings.reveal_grace_seconds)

        self._messages: List[Message] = []
        self._busy = False
        self._unread = 0
        self._visible = True
        self._composer_clears = 0
        self._generation = 0
        self._closed = False
        self._listeners: List[Listener] = []
        self._debounce_task: Optional[asyncio.Task] = None
        self._dispatch_task: Optional[asyncio.Task] = None

        if settings.eager_session:
            self._sessions.create()

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def unread(self) -> int:
        return self._unread

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def composer_clears(self) -> int:
        return self._composer_clears

    @property
    def session_id(self) -> Optional[str]:
        return self._sessions.session_id

    @property
    def history(self) -> HistoryCache:
        return self._history

    def history_labels(self) -> List[str]:
        return self._history.recent_labels()

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            session_id=self._sessions.session_id,
            messages=[message.model_copy(deep=True) for message in self._messages],
            busy=self._busy,
            unread=self._unread,
            visible=self._visible,
            history_labels=self.history_labels(),
            composer_clears=self._composer_clears,
            reveal_progress=self._reveal.progress_map(),
        )

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def submit(self, raw_text: str) -> None:
        """Purpose: Accept a user submission (fire and forget).
        Inputs/Outputs: Input is raw composer text; no return value.
        Side Effects / State: Re-arms the debounce timer on the running loop.
        Dependencies: Requires a running asyncio loop for the timer task.
        Failure Modes: Empty text, a busy or closed engine, and a missing session
            (created here) are silent no-ops.
        If Removed: The user cannot talk to the bot.
        Testing Notes: Three rapid calls produce one transport call with the last text.
        """
        if self._closed:
            return
        if not raw_text or not raw_text.strip():
            logger.debug("submission rejected: empty")
            return
        if self._busy:
            logger.debug("session=%s submission rejected: busy", self.session_id)
            return
        if not self._sessions.has_session:
            session_id = self._sessions.create()
            logger.info("session=%s created lazily; submission dropped", session_id)
            self._emit("session")
            return
        self._arm_debounce(raw_text)

    def select_suggestion(self, text: str) -> None:
        self.submit(text)

    def select_place(self, name: str) -> None:
        self.submit(name)

    def delete_history_entry(self, label: str) -> int:
        removed = self._history.remove(label)
        if removed:
            self._emit("history")
        return removed

    def reset_conversation(self) -> None:
        """Purpose: Start a fresh conversation while keeping remembered questions.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Cancels debounce, dispatch and reveal timers; clears the
            log, busy flag and unread counter; replaces the session id.
        Dependencies: RevealScheduler.cancel_all, SessionStore.reset.
        Failure Modes: None.
        If Removed: Users cannot start over without reloading the client.
        Testing Notes: History labels are unchanged and the session id differs.
        """
        self._generation += 1
        self._cancel_pending()
        self._reveal.cancel_all()
        self._messages.clear()
        self._busy = False
        self._unread = 0
        self._history.reset()
        session_id = self._sessions.reset()
        logger.info("session=%s conversation reset", session_id)
        for event in ("messages", "busy", "unread", "session"):
            self._emit(event)

    def toggle_visibility(self) -> bool:
        self.set_visible(not self._visible)
        return self._visible

    def set_visible(self, visible: bool) -> None:
        self._visible = visible
        if visible and self._unread:
            self._unread = 0
            self._emit("unread")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or dispatch is pending."""
        while True:
            pending = [task for task in (self._debounce_task, self._dispatch_task) if task and not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def wait_revealed(self) -> None:
        await self._reveal.wait_all()

    async def aclose(self) -> None:
        """Tear down timers and the owned transport; later submissions are ignored."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._set_busy(False)
        tasks = self._cancel_pending()
        self._reveal.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_transport:
            await self._transport.aclose()
        logger.info("session=%s engine closed", self.session_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _arm_debounce(self, raw_text: str) -> None:
        # Reset, never queue: a newer call replaces the pending one.
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_task = loop.create_task(self._debounced(raw_text, self._generation))

    async def _debounced(self, raw_text: str, generation: int) -> None:
        await asyncio.sleep(self._settings.debounce_seconds)
        if generation != self._generation or self._busy:
            return
        self._dispatch_task = asyncio.get_running_loop().create_task(self._process(raw_text, generation))

    async def _process(self, raw_text: str, generation: int) -> None:
        text = normalize_message(raw_text, self._settings.max_message_chars)
        if not text:
            return
        self._history.record(text)
        self._emit("history")
        self._append(Message(sender="user", text=text, revealed=True))
        self._composer_clears += 1
        self._emit("composer_cleared")

        self._set_busy(True)
        try:
            await self._dispatch(text, generation)
        finally:
            if generation == self._generation:
                self._set_busy(False)

    async def _dispatch(self, text: str, generation: int) -> None:
        session_id = self._sessions.session_id or ""
        attempts = max(1, self._settings.max_attempts)
        logger.info("session=%s question=%s", session_id, text)
        for attempt in range(1, attempts + 1):
            try:
                reply = await self._transport.send(text, session_id)
            except TransportError as exc:
                if attempt < attempts:
                    logger.info("session=%s attempt=%s/%s failed: %s", session_id, attempt, attempts, exc)
                    continue
                logger.warning(
                    "session=%s attempt=%s/%s failed: %s status=%s; giving up",
                    session_id,
                    attempt,
                    attempts,
                    exc,
                    exc.status_code,
                )
                if generation == self._generation:
                    self._append(Message(sender="bot", text=error_message(exc), revealed=True, is_error=True))
                return
            except Exception:
                if attempt < attempts:
                    logger.exception("session=%s attempt=%s/%s failed unexpectedly", session_id, attempt, attempts)
                    continue
                logger.exception("session=%s attempt=%s/%s failed unexpectedly; giving up", session_id, attempt, attempts)
                if generation == self._generation:
                    self._append(Message(sender="bot", text=GENERIC_ERROR, revealed=True, is_error=True))
                return
            if generation == self._generation:
                self._deliver(reply)
            return

    def _deliver(self, reply: str) -> None:
        if has_result_banner(reply):
            places = parse_response(reply)
            logger.info("session=%s reply=locations count=%s", self.session_id, len(places))
            message = Message(sender="bot", locations=places)
        else:
            logger.info("session=%s reply=text chars=%s", self.session_id, len(reply))
            message = Message(sender="bot", text=reply)
        self._append(message)
        self._reveal.schedule(message, self._mark_revealed)

    def _mark_revealed(self, message_id: str) -> None:
        for message in self._messages:
            if message.id == message_id:
                if not message.revealed:
                    message.revealed = True
                    self._emit("revealed")
                return

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._emit("messages")
        if message.sender == "bot" and not self._visible:
            self._unread += 1
            self._emit("unread")

    def _set_busy(self, busy: bool) -> None:
        if self._busy != busy:
            self._busy = busy
            self._emit("busy")

    def _cancel_pending(self) -> List[asyncio.Task]:
        cancelled: List[asyncio.Task] = []
        for task in (self._debounce_task, self._dispatch_task):
            if task is not None and not task.done():
                task.cancel()
                cancelled.append(task)
        self._debounce_task = None
        self._dispatch_task = None
        return cancelled

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("listener failed event=%s", event)
