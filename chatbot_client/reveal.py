from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .models import Message

logger = logging.getLogger("chatbot.reveal")

CLOSING_QUESTION = "Bạn muốn chọn địa điểm nào?"

SleepFn = Callable[[float], Awaitable[None]]
DoneCallback = Callable[[str], None]


def locations_banner(count: int) -> str:
    return f"Tìm thấy {count} địa điểm:"


class RevealState(str, Enum):
    PENDING = "pending"
    REVEALING = "revealing"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RevealSegment:
    """Run of characters typed out after an optional start delay."""
    text: str
    start_delay: float = 0.0


def build_segments(message: Message, grace_seconds: float) -> List[RevealSegment]:
    """Purpose: Describe what a bot message discloses and in which order.
    Inputs/Outputs: Input is the message and the grace delay; output is the segments.
    Side Effects / State: None.
    Dependencies: locations_banner and CLOSING_QUESTION for place replies.
    Failure Modes: Messages without payload produce a single empty segment.
    If Removed: RevealTask has nothing to type.
    Testing Notes: Location replies yield banner then closing question with the grace delay.
    """
    if message.locations is not None:
        return [
            RevealSegment(locations_banner(len(message.locations))),
            RevealSegment(CLOSING_QUESTION, start_delay=grace_seconds),
        ]
    return [RevealSegment(message.text or "")]


class RevealTask:
    """Per-message reveal state machine: pending -> revealing -> done (or cancelled)."""

    def __init__(
        self,
        message: Message,
        on_done: DoneCallback,
        step_delay: float,
        grace_seconds: float = 0.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.message_id = message.id
        self.segments = build_segments(message, grace_seconds)
        self.state = RevealState.PENDING
        self.position = 0
        self._on_done = on_done
        self._step_delay = step_delay
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def total(self) -> int:
        return sum(len(segment.text) for segment in self.segments)

    @property
    def cards_visible(self) -> bool:
        # Place cards appear once the banner has been typed out.
        return len(self.segments) > 1 and self.position >= len(self.segments[0].text)

    @property
    def visible_text(self) -> str:
        parts: List[str] = []
        remaining = self.position
        for segment in self.segments:
            if remaining <= 0:
                break
            parts.append(segment.text[:remaining])
            remaining -= len(segment.text)
        return "\n".join(parts)

    @property
    def finished(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def cancel(self) -> None:
        if self.state in (RevealState.DONE, RevealState.CANCELLED):
            return
        self.state = RevealState.CANCELLED
        if self._task is not None:
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        self.state = RevealState.REVEALING
        for segment in self.segments:
            if segment.start_delay:
                await self._sleep(segment.start_delay)
            for _ in segment.text:
                await self._sleep(self._step_delay)
                if self.state is RevealState.CANCELLED:
                    return
                self.position += 1
        if self.state is RevealState.CANCELLED:
            return
        self.state = RevealState.DONE
        try:
            self._on_done(self.message_id)
        except Exception:
            logger.exception("message=%s reveal callback failed", self.message_id)


class RevealScheduler:
    """Owns the reveal timers of every bot message in the current conversation."""

    def __init__(self, step_delay: float = 0.02, grace_seconds: float = 0.5, sleep: SleepFn = asyncio.sleep) -> None:
        """Purpose: Configure typing speed, the place-card grace delay and the sleep primitive.
        Inputs/Outputs: Inputs are delays in seconds and an awaitable sleep; no return value.
        Side Effects / State: Tracks active tasks and finished message ids.
        Dependencies: asyncio tasks, one per message.
        Failure Modes: None at construction.
        If Removed: Bot replies appear instantly and revealed flags never flip.
        Testing Notes: Pass zero delays to make reveals finish within a few loop turns.
        """
        self._step_delay = step_delay
        self._grace_seconds = grace_seconds
        self._sleep = sleep
        self._tasks: Dict[str, RevealTask] = {}
        self._finished: Set[str] = set()

    def schedule(self, message: Message, on_done: DoneCallback) -> Optional[RevealTask]:
        """Purpose: Start (or return) the reveal of a bot message.
        Inputs/Outputs: Inputs are the message and a completion callback; returns the
            RevealTask, or None when the message is already revealed.
        Side Effects / State: Creates an asyncio task on the running loop.
        Dependencies: RevealTask; requires a running event loop.
        Failure Modes: RuntimeError when called outside an event loop.
        If Removed: No incremental reveal and no completion signal.
        Testing Notes: Scheduling the same message twice fires the callback once.
        """
        # Already revealed content is shown at full length with no timers.
        if message.revealed or message.id in self._finished:
            return None
        existing = self._tasks.get(message.id)
        if existing is not None:
            return existing

        def finish(message_id: str) -> None:
            self._tasks.pop(message_id, None)
            self._finished.add(message_id)
            on_done(message_id)

        task = RevealTask(message, finish, self._step_delay, self._grace_seconds, sleep=self._sleep)
        self._tasks[message.id] = task
        task.start()
        logger.debug("message=%s reveal scheduled chars=%s", message.id, task.total)
        return task

    def progress(self, message_id: str) -> Optional[int]:
        task = self._tasks.get(message_id)
        return task.position if task is not None else None

    def progress_map(self) -> Dict[str, int]:
        return {message_id: task.position for message_id, task in self._tasks.items()}

    def cancel(self, message_id: str) -> None:
        task = self._tasks.pop(message_id, None)
        if task is not None:
            task.cancel()

    def cancel_all(self) -> None:
        """Cancel every active reveal and forget finished ids."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._finished.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("reveal cancelled count=%s", len(tasks))

    async def wait(self, message_id: str) -> None:
        task = self._tasks.get(message_id)
        if task is not None:
            await task.wait()

    async def wait_all(self) -> None:
        while self._tasks:
            pending = list(self._tasks.values())
            await asyncio.gather(*(task.wait() for task in pending))
            for task in pending:
                if task.finished:
                    self._tasks.pop(task.message_id, None)
