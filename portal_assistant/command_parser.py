"""
Command Parser Module

Responsibility: Convert a free-form task request into exactly one coarse
command kind plus extracted entities.
Nothing more.

Does NOT:
- Use LLMs or embeddings (ordered rules only)
- Execute anything (Dispatcher's job)
- Maintain memory (stateless, one pass per call)
- Raise on unrecognized input (returns None)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from portal_assistant import extractors
from portal_assistant.routes import (
    DEFAULT_ROUTE_MAP,
    RouteMap,
    mentions_route_keyword,
    resolve_navigation_target,
)

logger = logging.getLogger(__name__)


class CommandKind(Enum):
    """Supported coarse command kinds."""
    NAVIGATE = "navigate"
    BOOK_APPOINTMENT = "book_appointment"
    ADD_MEDICATION = "add_medication"
    UPLOAD_DOCUMENT = "upload_document"
    CHECK_APPOINTMENTS = "check_appointments"
    CHECK_MEDICATIONS = "check_medications"
    GENERAL_QUERY = "general_query"


# Kinds that ask the portal to do something (as opposed to asking a question)
ACTIONABLE_KINDS = {
    CommandKind.NAVIGATE,
    CommandKind.BOOK_APPOINTMENT,
    CommandKind.ADD_MEDICATION,
    CommandKind.UPLOAD_DOCUMENT,
}


@dataclass(frozen=True)
class ParsedCommand:
    """
    Structured command extracted from text.

    Fields:
    - command: Coarse command kind
    - page: Route keyword (navigate only)
    - parsed: Extracted entities (every kind except navigate)
    - raw_text: Original input text (preserved for debugging)
    """
    command: CommandKind
    page: Optional[str] = None
    parsed: Dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""

    @property
    def is_actionable(self) -> bool:
        return self.command in ACTIONABLE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        if self.command is CommandKind.NAVIGATE:
            return {"command": self.command.value, "page": self.page}
        return {"command": self.command.value, "parsed": dict(self.parsed)}

    def __str__(self) -> str:
        detail = f"page='{self.page}'" if self.page else f"parsed={self.parsed}"
        return f"ParsedCommand({self.command.value}, {detail}, text='{self.raw_text[:50]}')"


def _phrases(*phrases: str) -> re.Pattern:
    """Compile a word-bounded alternation of phrases."""
    body = "|".join(re.escape(p) for p in phrases)
    return re.compile(rf"\b(?:{body})\b", re.IGNORECASE)


NAVIGATION_PHRASES = _phrases("show me my", "go to", "navigate to", "open", "take me to")
POSSESSIVE = _phrases("my")
SHOW_ME = _phrases("show me")
APPOINTMENT_WORDS = _phrases("book", "schedule", "appointment", "see", "visit")
APPOINTMENT_EXCLUSIONS = _phrases("show", "my appointments")
MEDICATION_WORDS = _phrases("add", "taking", "prescribed", "medication", "medicine")
QUESTION_OPENERS = re.compile(r"^\s*(?:what|which|list|show|check|view|do i|am i|how many)\b", re.IGNORECASE)
DOCUMENT_WORDS = _phrases("upload", "document", "documents", "file", "scan", "attach")
QUERY_WORDS = _phrases("show", "list", "what", "what's", "check", "view", "appointments", "medications")


@dataclass(frozen=True)
class CommandRule:
    """
    One entry of the ordered rule table.

    - matches(text_lower) decides whether the rule claims the utterance
    - build(text, role) produces the command; returning None lets the next rule try
    """
    kind: CommandKind
    matches: Callable[[str], bool]
    build: Callable[[str, Any], Optional[ParsedCommand]]


class CommandParser:
    """
    Ordered, mutually-adjusted heuristics.

    Rules (in priority order):
    1. NAVIGATE - explicit navigation verb, or a route keyword with "my" / "show me".
       Checked first: "show me my appointments" would otherwise be a query.
    2. BOOK_APPOINTMENT - booking verb, unless phrased like navigation ("show", "my appointments")
    3. ADD_MEDICATION - management verb or medication noun, unless phrased as a question
    4. UPLOAD_DOCUMENT - upload / scan / attach
    5. Query kinds - inspection verbs or bare domain nouns
    Otherwise None ("no command understood", not an error).
    """

    def __init__(
        self,
        route_map: RouteMap = DEFAULT_ROUTE_MAP,
        today_provider: Optional[Callable[[], date]] = None,
    ):
        self.route_map = route_map
        self._today = today_provider or date.today
        self.rules: List[CommandRule] = [
            CommandRule(CommandKind.NAVIGATE, self._is_navigation, self._build_navigation),
            CommandRule(CommandKind.BOOK_APPOINTMENT, self._is_appointment, self._build_appointment),
            CommandRule(CommandKind.ADD_MEDICATION, self._is_medication, self._build_medication),
            CommandRule(CommandKind.UPLOAD_DOCUMENT, self._is_document, self._build_document),
            CommandRule(CommandKind.GENERAL_QUERY, self._is_query, self._build_query),
        ]

    def parse(self, text: str, role=None) -> Optional[ParsedCommand]:
        """
        Parse text into a structured command.

        Args:
            text: Raw user input
            role: Caller-supplied role (Role or name); inferred from text when None

        Returns:
            ParsedCommand, or None when no rule claims the utterance
        """
        if not isinstance(text, str) or not text.strip():
            return None

        text = text.strip()
        text_lower = text.lower()

        for rule in self.rules:
            if not rule.matches(text_lower):
                continue
            command = rule.build(text, role)
            if command is not None:
                return command
            logger.debug(f"[CommandParser] {rule.kind.value} claimed but built nothing: '{text[:50]}'")

        return None

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _is_navigation(self, text_lower: str) -> bool:
        if NAVIGATION_PHRASES.search(text_lower):
            return True
        if not mentions_route_keyword(text_lower, self.route_map):
            return False
        return bool(POSSESSIVE.search(text_lower) or SHOW_ME.search(text_lower))

    def _is_appointment(self, text_lower: str) -> bool:
        if APPOINTMENT_EXCLUSIONS.search(text_lower):
            return False
        return bool(APPOINTMENT_WORDS.search(text_lower))

    def _is_medication(self, text_lower: str) -> bool:
        if QUESTION_OPENERS.search(text_lower):
            return False
        return bool(MEDICATION_WORDS.search(text_lower))

    def _is_document(self, text_lower: str) -> bool:
        return bool(DOCUMENT_WORDS.search(text_lower))

    def _is_query(self, text_lower: str) -> bool:
        return bool(QUERY_WORDS.search(text_lower))

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _build_navigation(self, text: str, role) -> Optional[ParsedCommand]:
        page = resolve_navigation_target(text, role, self.route_map)
        if page is None:
            return None
        return ParsedCommand(CommandKind.NAVIGATE, page=page, raw_text=text)

    def _build_appointment(self, text: str, role) -> ParsedCommand:
        parsed = {
            "providerName": extractors.extract_provider_name(text),
            "date": extractors.extract_date(text, self._today()),
            "time": extractors.extract_time(text),
            "reason": extractors.extract_reason(text),
        }
        return ParsedCommand(CommandKind.BOOK_APPOINTMENT, parsed=parsed, raw_text=text)

    def _build_medication(self, text: str, role) -> ParsedCommand:
        return ParsedCommand(
            CommandKind.ADD_MEDICATION,
            parsed=extractors.extract_medication(text),
            raw_text=text,
        )

    def _build_document(self, text: str, role) -> ParsedCommand:
        return ParsedCommand(
            CommandKind.UPLOAD_DOCUMENT,
            parsed={"type": extractors.extract_document_type(text)},
            raw_text=text,
        )

    def _build_query(self, text: str, role) -> ParsedCommand:
        text_lower = text.lower()
        if "appointment" in text_lower:
            return ParsedCommand(CommandKind.CHECK_APPOINTMENTS, parsed={}, raw_text=text)
        if re.search(r"\bmed(?:s|ication|ications|icine|icines)?\b", text_lower):
            return ParsedCommand(CommandKind.CHECK_MEDICATIONS, parsed={}, raw_text=text)
        return ParsedCommand(CommandKind.GENERAL_QUERY, parsed={"query": text}, raw_text=text)


_parser: Optional[CommandParser] = None


def get_parser() -> CommandParser:
    global _parser
    if _parser is None:
        _parser = CommandParser()
    return _parser


def parse(text: str, role=None) -> Optional[ParsedCommand]:
    """Module-level convenience around the shared default parser."""
    return get_parser().parse(text, role)
