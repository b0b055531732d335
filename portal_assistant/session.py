"""
ASSISTANT SESSION: ONE USER'S INTERPRETER + MEMORY + SPEECH + IDLE TIMER

Orchestration layer for a single portal session. Owns everything that used to
be process-wide (current audio, pending suggestion timer) so sessions never
leak into each other.

Pipeline (per handle() call, strictly in order):
1. Empty input -> "Please enter a command." (memory and timer untouched)
2. Cancel the pending suggestion timer
3. Interpret:
   a. Context has scoped rules -> classify first
   b. Parse; actionable commands (navigate/book/add/upload) are dispatched
   c. Classify with domain-agnostic rules
   d. Dispatch the remaining query command (None -> generic fallback)
4. Record the interaction in SessionMemory
5. Speak (SpokenResponse only; navigation is silent)
6. Re-arm the suggestion timer (skipped when a newer turn has started)

Lifecycle:
    session = AssistantSession()
    session.start()
    result = await session.handle("show me invoices", context="dashboard", role="admin")
    await session.dispose()

handle() never raises; any pipeline error becomes the generic failure line.
"""

import logging
from datetime import date
from typing import Callable, Optional

from portal_assistant.command_parser import CommandParser
from portal_assistant.config import get_config
from portal_assistant.dispatcher import (
    CommandDispatcher,
    DispatchResult,
    SpokenResponse,
    build_default_dispatcher,
)
from portal_assistant.instrumentation import log_event
from portal_assistant.intent_classifier import (
    UNCLASSIFIED,
    IntentClassifier,
    RuleBasedIntentClassifier,
)
from portal_assistant.output_sink import OutputSink, build_output_sink
from portal_assistant.policy import (
    EMPTY_INPUT_RESPONSE,
    PIPELINE_FAILURE_RESPONSE,
    SESSION_MEMORY_CAPACITY,
    SUGGESTION_DELAY_MS,
)
from portal_assistant.routes import DEFAULT_ROUTE_MAP, merge_route_maps
from portal_assistant.session_memory import SessionMemory
from portal_assistant.suggestion_engine import ProactiveSuggestionEngine

logger = logging.getLogger(__name__)


class AssistantSession:
    """
    Per-session controller.

    Every collaborator can be injected; defaults come from config.
    """

    def __init__(
        self,
        config=None,
        sink: Optional[OutputSink] = None,
        memory: Optional[SessionMemory] = None,
        dispatcher: Optional[CommandDispatcher] = None,
        classifier: Optional[IntentClassifier] = None,
        parser: Optional[CommandParser] = None,
        suggestion_delay_ms: Optional[int] = None,
        today_provider: Optional[Callable[[], date]] = None,
    ):
        self.config = config or get_config()
        route_map = merge_route_maps(DEFAULT_ROUTE_MAP, self.config.get("routes"))

        self.memory = memory or SessionMemory(self.config.get("memory.capacity", SESSION_MEMORY_CAPACITY))
        self.sink = sink or build_output_sink(self.config)
        self.classifier = classifier or RuleBasedIntentClassifier()
        self.parser = parser or CommandParser(route_map, today_provider)
        self.dispatcher = dispatcher or build_default_dispatcher(
            route_map,
            launchboard_modules=self.config.get("launchboard.modules"),
        )

        if suggestion_delay_ms is None:
            suggestion_delay_ms = self.config.get("suggestion.delay_ms", SUGGESTION_DELAY_MS)
        self.suggestions = ProactiveSuggestionEngine(self.memory, self.sink, suggestion_delay_ms)
        self.suggestions_enabled = bool(self.config.get("suggestion.enabled", True))

        self.turn_count = 0
        self._generation = 0
        self.started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.started = True
        self.turn_count = 0
        logger.info(f"[Session] Started ({type(self.sink).__name__}, memory={self.memory.capacity})")

    async def dispose(self) -> None:
        """Cancel the idle timer, stop speech, forget the session."""
        self.suggestions.dispose()
        try:
            await self.sink.stop()
        except Exception as e:
            logger.warning(f"[Session] Sink stop failed: {e}")
        self.memory.clear()
        self.started = False
        logger.info("[Session] Disposed")

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    async def handle(self, text: str, context: Optional[str] = None, role=None) -> DispatchResult:
        """
        Run one turn.

        Args:
            text: Raw user input
            context: Active screen/module name (e.g. "billing")
            role: "patient" | "provider" | "admin" | "owner" (Role or str), optional

        Returns:
            SpokenResponse or NavigationAction
        """
        if not self.started:
            self.start()

        self.turn_count += 1
        turn_id = f"turn-{self.turn_count}"

        if not isinstance(text, str) or not text.strip():
            log_event("empty input", stage="input", interaction_id=turn_id)
            response = SpokenResponse(EMPTY_INPUT_RESPONSE, success=False)
            await self._speak(response.text, turn_id)
            return response

        self.suggestions.cancel()
        self._generation += 1
        generation = self._generation
        text = text.strip()

        try:
            result = self._interpret(text, context, role, turn_id)
        except Exception as e:
            logger.error(f"[Session] Pipeline failed for '{text[:50]}': {e}", exc_info=True)
            result = SpokenResponse(PIPELINE_FAILURE_RESPONSE, success=False)

        self.memory.record(text, result.text, result.success, result.route)
        log_event(f"recorded success={result.success} route={result.route}", stage="record", interaction_id=turn_id)

        if isinstance(result, SpokenResponse):
            await self._speak(result.text, turn_id)

        # A newer turn owns the timer once it has started
        if self.suggestions_enabled and generation == self._generation:
            self.suggestions.arm()

        return result

    def _interpret(self, text: str, context: Optional[str], role, turn_id: str) -> DispatchResult:
        if self.classifier.handles_context(context):
            intent = self.classifier.classify(text, context)
            log_event(f"intent={intent} context={context}", stage="classify", interaction_id=turn_id)
            if intent != UNCLASSIFIED:
                return self._dispatch(intent, context, text, role, turn_id)

        command = self.parser.parse(text, role)
        log_event(f"command={command.command.value if command else None}", stage="parse", interaction_id=turn_id)
        if command is not None and command.is_actionable:
            return self._dispatch(command, context, text, role, turn_id)

        intent = self.classifier.classify(text, context)
        log_event(f"intent={intent}", stage="classify", interaction_id=turn_id)
        if intent != UNCLASSIFIED:
            return self._dispatch(intent, context, text, role, turn_id)

        return self._dispatch(command, context, text, role, turn_id)

    def _dispatch(self, target, context, text, role, turn_id) -> DispatchResult:
        result = self.dispatcher.dispatch(target, context=context, text=text, role=role)
        log_event(f"{type(result).__name__} success={result.success}", stage="dispatch", interaction_id=turn_id)
        return result

    async def _speak(self, text: str, turn_id: str) -> None:
        log_event("speak", stage="speak", interaction_id=turn_id)
        try:
            await self.sink.send(text)
        except Exception as e:
            logger.warning(f"[Session] Output sink failed: {e}")
