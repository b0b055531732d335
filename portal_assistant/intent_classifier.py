"""
Intent Classifier Module

Responsibility: Map (text, screen context) to a dotted intent tag.
Nothing more.

Does NOT:
- Use LLMs or embeddings (ordered keyword rules only)
- Execute handlers (Dispatcher's job)
- Log its decisions (callers log)
- Maintain memory (stateless, same input -> same tag)
- Raise (unmatched input returns UNCLASSIFIED)
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

UNCLASSIFIED = "unclassified"


# Inflections a keyword may carry ("invoice" -> "invoices", "remind" -> "reminders")
_INFLECTIONS = r"(?:s|es|d|ed|ing|er|ers)?"


def _mentions(keyword: str, text_lower: str) -> bool:
    """Keyword appears as a whole word, optionally inflected ("log" matches "logs", not "login")."""
    return re.search(rf"\b{re.escape(keyword)}{_INFLECTIONS}\b", text_lower) is not None


@dataclass(frozen=True)
class IntentRule:
    """
    One ordered classification rule.

    - require: groups of alternatives; every group needs at least one hit
    - exclude: any hit disqualifies the rule
    - pattern: optional regex that must also match
    """
    tag: str
    require: Tuple[Tuple[str, ...], ...] = ()
    exclude: Tuple[str, ...] = ()
    pattern: Optional[re.Pattern] = None

    def matches(self, text_lower: str) -> bool:
        if any(_mentions(word, text_lower) for word in self.exclude):
            return False
        for group in self.require:
            if not any(_mentions(word, text_lower) for word in group):
                return False
        if self.pattern is not None and not self.pattern.search(text_lower):
            return False
        return True


def rule(tag: str, *groups: Sequence[str], exclude: Sequence[str] = (), pattern: Optional[str] = None) -> IntentRule:
    """Shorthand: rule("billing.summary", ("invoice", "billing"), ("total",))."""
    return IntentRule(
        tag=tag,
        require=tuple(tuple(group) for group in groups),
        exclude=tuple(exclude),
        pattern=re.compile(pattern) if pattern else None,
    )


# Regexes shared with the handlers that pull the parameters back out
EMPLOYER_TOGGLE_PATTERN = r"\b(enable|disable|deactivate|activate) employer (.+)"
FEATURE_TOGGLE_PATTERN = r"\b(enable|disable) (.+) feature\b"
PATIENT_CAP_PATTERN = r"\bset (?:the )?(?:patient|member) cap (?:for )?(.*?) to (\d+)"
PROMOTE_PATTERN = r"\bpromote (.+) to (admin|owner|provider)\b"


# ============================================================================
# CONTEXT-SCOPED RULES (checked when the caller says which screen is active)
# ============================================================================

CONTEXT_RULES: Dict[str, List[IntentRule]] = {
    "billing": [
        rule("billing.sendReminders", ("remind", "notify")),
        rule("billing.overdueCheck", ("overdue", "past due", "outstanding", "unpaid")),
        rule("billing.riskReview", ("risk", "flag")),
        rule("billing.compareEmployers", ("compare", "versus", "vs")),
        rule("billing.invoicePdf", ("pdf",)),
        rule("billing.exportReport", ("export", "csv", "download")),
        rule("billing.emailSummary", ("email", "send")),
        rule("billing.summary", ("trend", "summary", "total", "revenue", "invoice", "plan", "pay", "billing")),
    ],
    "audit": [
        # Compliance before the generic report/summary rule
        rule("audit.complianceSummary", ("compliance", "hipaa")),
        rule("audit.exportLogs", ("export", "csv", "download")),
        rule("audit.errorScan", ("error", "fail", "denied")),
        rule("audit.filterByActor", ("actor", "filter", "who", "by user")),
        rule("audit.summary", ("report", "summary", "log", "activity", "recent")),
    ],
    "users": [
        rule("users.promote", pattern=PROMOTE_PATTERN),
        rule("users.export", ("export", "download", "csv")),
        rule("users.search", ("search", "find")),
        rule("users.topPerformer", ("top", "best", "highest")),
        rule("users.deactivate", ("deactivate", "remove")),
        rule("users.count", ("count", "how many", "total")),
        rule("users.activeCount", ("active",)),
        rule("users.lookup", ("who is", "tell me about", "details", "info", "email", "role")),
    ],
    "launchboard": [
        rule("launchboard.pinModule", ("pin",)),
        rule("launchboard.openModule", ("open", "launch", "go to", "start")),
        rule("launchboard.status", ("status", "health", "running")),
        rule("launchboard.listModules", ("list", "modules", "available", "what")),
    ],
    "charts": [
        rule("charts.exportUsage", ("export", "download")),
        rule("charts.usageVolume", ("volume", "usage")),
        rule("charts.topEndpoint", ("endpoint", "top")),
    ],
    "system": [
        rule("system.restart", ("restart", "reboot")),
        rule("system.load", ("load", "performance")),
        rule("system.tasks", ("tasks", "background")),
    ],
    "ui": [
        rule("ui.highlightErrors", ("highlight", "errors")),
        rule("ui.inspect", ("inspect", "element")),
    ],
    "settings": [
        rule("settings.voiceStatus", ("voice", "assistant")),
        rule("settings.environment", ("environment",)),
    ],
}


# ============================================================================
# DOMAIN-AGNOSTIC RULES (any context; first match wins)
# ============================================================================

GLOBAL_RULES: List[IntentRule] = [
    rule("admin.toggleEmployer", pattern=EMPLOYER_TOGGLE_PATTERN),
    rule("admin.toggleFeature", pattern=FEATURE_TOGGLE_PATTERN),
    rule("admin.setPatientCap", pattern=PATIENT_CAP_PATTERN),
    rule("users.promote", pattern=PROMOTE_PATTERN),
    # Compliance before the generic audit rules
    rule("audit.complianceSummary", ("compliance", "hipaa")),
    rule("audit.exportLogs", ("audit",), ("export", "download", "csv")),
    rule("audit.errorScan", ("audit",), ("error", "fail")),
    rule("audit.summary", ("audit",)),
    rule("billing.sendReminders", ("remind", "notify"), ("payment", "invoice", "overdue", "billing", "employer")),
    rule("billing.overdueCheck", ("overdue", "past due")),
    rule("billing.exportReport", ("billing", "invoice"), ("export", "csv")),
    rule("billing.summary", ("invoice", "billing", "payment", "revenue")),
    rule("users.export", ("users", "user list"), ("export", "download")),
    rule("users.count", ("users", "admins"), ("count", "how many")),
    rule("users.activeCount", ("users", "admins"), ("active",)),
    rule("users.search", ("search for", "find user")),
    rule("launchboard.listModules", ("launchboard", "modules")),
    rule("broadcast.last", ("broadcast", "message"), ("last", "recent")),
    rule("broadcast.compose", ("broadcast",), ("send", "new")),
    rule("settings.voiceStatus", ("settings",), ("voice", "assistant")),
    rule("settings.environment", ("settings",), ("environment",)),
    rule("system.load", ("system load", "system performance")),
]


class IntentClassifier(ABC):
    """
    Base class for intent classifiers.

    Single responsibility: Classify text into a dotted intent tag.
    """

    @abstractmethod
    def classify(self, text: str, context: Optional[str] = None) -> str:
        """
        Classify text into an intent tag.

        Args:
            text: Raw user input
            context: Active screen/module name (e.g. "billing"), optional

        Returns:
            "<domain>.<action>" tag, or UNCLASSIFIED
        """
        pass


class RuleBasedIntentClassifier(IntentClassifier):
    """
    Ordered keyword classifier.

    Context rules narrow the candidate set first; the domain-agnostic rules
    are the fallback. Rule order is precedence. Intentionally dumb for
    predictability.
    """

    def __init__(
        self,
        context_rules: Optional[Dict[str, List[IntentRule]]] = None,
        global_rules: Optional[List[IntentRule]] = None,
    ):
        self.context_rules = context_rules if context_rules is not None else CONTEXT_RULES
        self.global_rules = global_rules if global_rules is not None else GLOBAL_RULES

    @staticmethod
    def normalize_context(context: Optional[str]) -> str:
        return (context or "").strip().lower()

    def handles_context(self, context: Optional[str]) -> bool:
        """True when the context has its own scoped rule table."""
        return self.normalize_context(context) in self.context_rules

    def classify(self, text: str, context: Optional[str] = None) -> str:
        if not isinstance(text, str) or not text.strip():
            return UNCLASSIFIED

        text_lower = " ".join(text.lower().split())

        for candidate in self.context_rules.get(self.normalize_context(context), []):
            if candidate.matches(text_lower):
                return candidate.tag

        for candidate in self.global_rules:
            if candidate.matches(text_lower):
                return candidate.tag

        return UNCLASSIFIED


def intent_domain(tag: str) -> str:
    """Domain prefix of a dotted tag ("billing.summary" -> "billing")."""
    return (tag or "").split(".", 1)[0]
