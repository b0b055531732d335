"""
Proactive Suggestion Engine

Responsibility: After the user goes idle, look at the last interaction and
offer one high-confidence follow-up through the output sink.

States:
- ARMED: one timer pending
- IDLE: no timer

arm() cancels any pending timer and starts a new one (cancel-and-replace).
The engine never re-arms itself; only a new completed interaction does.
The one exception: a timer that expires while the sink is still speaking
waits one more delay, so a suggestion never cuts off a reply.
If no rule matches the last interaction, nothing is said.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from portal_assistant.instrumentation import log_event
from portal_assistant.output_sink import OutputSink
from portal_assistant.policy import SUGGESTION_DELAY_MS
from portal_assistant.session_memory import IntentLogEntry, SessionMemory

logger = logging.getLogger(__name__)


class SuggestionState(Enum):
    IDLE = "idle"
    ARMED = "armed"


@dataclass(frozen=True)
class SuggestionRule:
    """predicate(last entry) -> say text."""
    name: str
    predicate: Callable[[IntentLogEntry], bool]
    text: str


def _route_contains(fragment: str) -> Callable[[IntentLogEntry], bool]:
    return lambda entry: fragment in (entry.route or "").lower()


def _prompt_mentions(word: str) -> Callable[[IntentLogEntry], bool]:
    return lambda entry: word in (entry.prompt or "").lower()


# Ordered; first match wins
DEFAULT_SUGGESTION_RULES: List[SuggestionRule] = [
    SuggestionRule(
        "invoices",
        _route_contains("invoices"),
        "Would you like me to send a payment reminder to overdue employers?",
    ),
    SuggestionRule(
        "backup",
        _prompt_mentions("backup"),
        "Would you like to download the latest backup?",
    ),
    SuggestionRule(
        "employer",
        _prompt_mentions("employer"),
        "Would you like me to generate a summary report for this employer?",
    ),
]


class ProactiveSuggestionEngine:
    """
    Debounced idle timer over SessionMemory.

    Runs on the caller's event loop (loop.call_later); no threads.
    """

    def __init__(
        self,
        memory: SessionMemory,
        sink: OutputSink,
        delay_ms: int = SUGGESTION_DELAY_MS,
        rules: Optional[List[SuggestionRule]] = None,
    ):
        self.memory = memory
        self.sink = sink
        self.delay_ms = delay_ms
        self.rules = rules if rules is not None else DEFAULT_SUGGESTION_RULES
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SuggestionState:
        return SuggestionState.ARMED if self._timer is not None else SuggestionState.IDLE

    def suggest(self, entry: Optional[IntentLogEntry] = None) -> Optional[str]:
        """
        Suggestion text for an entry (default: most recent), or None.

        Pure lookup; does not speak.
        """
        entry = entry if entry is not None else self.memory.most_recent()
        if entry is None:
            return None
        for candidate in self.rules:
            if candidate.predicate(entry):
                return candidate.text
        return None

    def arm(self) -> None:
        """Start (or restart) the idle timer. Must be called from the event loop."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_ms / 1000.0, self._fire)
        logger.debug(f"[Suggest] Armed ({self.delay_ms} ms)")

    def cancel(self) -> None:
        """Cancel a pending timer (no-op when idle). Speech already started is left alone."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("[Suggest] Timer cancelled")

    def _fire(self) -> None:
        self._timer = None
        text = self.suggest()
        if text is None:
            logger.debug("[Suggest] No rule matched, staying silent")
            return
        if self.sink.is_speaking:
            logger.debug("[Suggest] Sink busy, deferring")
            self.arm()
            return
        log_event("suggestion fired", stage="suggest")
        logger.info(f"[Suggest] {text}")
        self._task = asyncio.get_running_loop().create_task(self.sink.send(text))
        self._task.add_done_callback(self._on_spoken)

    def _on_spoken(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"[Suggest] Speaking suggestion failed: {error}")

    async def wait_spoken(self) -> None:
        """Await the most recent suggestion's speech, if any."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def dispose(self) -> None:
        """Cancel the timer and any in-flight suggestion speech."""
        self.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
