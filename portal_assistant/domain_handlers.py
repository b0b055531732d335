"""
Domain Handlers Module

Responsibility: Turn a classified intent (or parsed care command) into a
spoken answer, optionally with a route or a structured command for the host.

Each handler:
- Receives the intent tag plus the raw text
- Re-checks keywords inside its own domain for the sub-cases the coarse tag
  does not separate (e.g. which employer a billing summary is about)
- Reads caller-supplied records only (no database, no network)
- Always returns a HandlerResult with non-empty speech

Does NOT:
- Classify (IntentClassifier / CommandParser)
- Apply mutations (returns a command dict, the host applies it)
- Speak (the session hands speech to the output sink)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from portal_assistant.command_parser import CommandKind, ParsedCommand
from portal_assistant.intent_classifier import (
    EMPLOYER_TOGGLE_PATTERN,
    FEATURE_TOGGLE_PATTERN,
    PATIENT_CAP_PATTERN,
    PROMOTE_PATTERN,
)
from portal_assistant.routes import DEFAULT_ROUTE_MAP, RouteMap, route_path

logger = logging.getLogger(__name__)


@dataclass
class HandlerResult:
    """What a handler wants said (and optionally done)."""
    speech: str
    success: bool = True
    route: Optional[str] = None
    command: Optional[Dict[str, Any]] = None


# ============================================================================
# RECORDS (supplied by the host application)
# ============================================================================

@dataclass(frozen=True)
class BillingAccount:
    employer: str
    plan: str
    monthly: float
    invoices: int
    status: str  # "current" | "pending" | "overdue"
    next_due: Optional[date] = None


@dataclass(frozen=True)
class AuditRecord:
    action: str
    actor: str
    time: str


@dataclass(frozen=True)
class PortalUser:
    name: str
    email: str
    role: str
    score: Optional[int] = None
    active: bool = True


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def _amount(value: float) -> str:
    return f"{value:g}"


def _spoken_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def _join_names(names: Sequence[str]) -> str:
    return ", ".join(names)


class DomainHandler(ABC):
    """Base class for intent handlers keyed by tag prefix."""

    @abstractmethod
    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        """
        Produce a response for one classified utterance.

        Args:
            intent: Dotted intent tag (e.g. "billing.overdueCheck")
            text: Raw user input
            context: Active screen/module name, if any
        """
        pass


# ============================================================================
# BILLING
# ============================================================================

class BillingHandler(DomainHandler):
    """Employer billing console."""

    def __init__(self, accounts: Sequence[BillingAccount] = ()):
        self.accounts = list(accounts)

    def _mentioned(self, text_lower: str) -> List[BillingAccount]:
        return [a for a in self.accounts if a.employer.lower() in text_lower]

    def _overdue(self) -> List[BillingAccount]:
        return [a for a in self.accounts if a.status == "overdue"]

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        text_lower = text.lower()
        mentioned = self._mentioned(text_lower)
        item = mentioned[0] if mentioned else None

        if intent == "billing.sendReminders":
            overdue = self._overdue()
            if not overdue:
                return HandlerResult("There are no overdue employers to notify.")
            names = [a.employer for a in overdue]
            return HandlerResult(
                f"Sending payment reminders to: {_join_names(names)}",
                command={"action": intent, "employers": names},
            )

        if intent == "billing.overdueCheck":
            overdue = self._overdue()
            if not overdue:
                return HandlerResult("There are no overdue employers.")
            verb = "employers are" if len(overdue) > 1 else "employer is"
            return HandlerResult(
                f"{len(overdue)} {verb} overdue: {_join_names([a.employer for a in overdue])}"
            )

        if intent == "billing.riskReview":
            risky = [a for a in self.accounts if a.status in ("overdue", "pending")]
            if not risky:
                return HandlerResult("All employers appear current with no payment risk.")
            return HandlerResult(f"Flagged for review: {_join_names([a.employer for a in risky])}")

        if intent == "billing.compareEmployers":
            if len(mentioned) < 2:
                return HandlerResult("Name two employers to compare.", success=False)
            first, second = mentioned[0], mentioned[1]
            return HandlerResult(
                f"{first.employer} pays {_amount(first.monthly)} monthly and has {first.invoices} invoices. "
                f"{second.employer} pays {_amount(second.monthly)} and has {second.invoices}."
            )

        if intent == "billing.exportReport":
            return HandlerResult("Exporting billing report to CSV.", command={"action": intent})

        if item is None:
            return self._without_employer(intent)

        if intent == "billing.emailSummary":
            return HandlerResult(
                f"Preparing invoice summary for {item.employer}. Sending it to their configured billing contact.",
                command={"action": intent, "employer": item.employer},
            )

        if intent == "billing.invoicePdf":
            return HandlerResult(
                f"Generating PDF invoice summary for {item.employer}. Download will start shortly.",
                command={"action": intent, "employer": item.employer},
            )

        if re.search(r"\b(?:trend|summary)", text_lower) and item.next_due is not None:
            paid = item.monthly * item.invoices
            return HandlerResult(
                f"{item.employer} has a {item.status} status, has paid {_amount(paid)} this year, "
                f"and their next payment is due on {_spoken_date(item.next_due)}."
            )

        return HandlerResult(
            f"{item.employer} is on the {item.plan} plan, paying {_amount(item.monthly)} per month, "
            f"with {item.invoices} invoices this year."
        )

    def _without_employer(self, intent: str) -> HandlerResult:
        if intent == "billing.summary" and self.accounts:
            total = sum(a.monthly for a in self.accounts)
            return HandlerResult(
                f"{_plural(len(self.accounts), 'employer')} billed, "
                f"{_amount(total)} per month in total, {len(self._overdue())} overdue."
            )
        return HandlerResult("I couldn't find any billing data for that query.", success=False)


# ============================================================================
# AUDIT
# ============================================================================

class AuditHandler(DomainHandler):
    """Audit log console."""

    ERROR_WORDS = ("error", "fail", "denied")

    def __init__(self, records: Sequence[AuditRecord] = ()):
        self.records = list(records)

    def _actor_mentioned(self, text_lower: str) -> Optional[str]:
        for record in self.records:
            actor = record.actor.lower()
            local_part = actor.split("@", 1)[0]
            if actor in text_lower or re.search(rf"\b{re.escape(local_part)}\b", text_lower):
                return record.actor
        return None

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        text_lower = text.lower()

        if intent == "audit.complianceSummary":
            checks = [r for r in self.records if re.search(r"hipaa|compliance", r.action, re.IGNORECASE)]
            if not checks:
                return HandlerResult("No compliance checks have been logged yet.")
            latest = checks[0]
            return HandlerResult(
                f"{_plural(len(checks), 'compliance check')} logged. "
                f"Latest: {latest.action} by {latest.actor}, {latest.time}."
            )

        if intent == "audit.exportLogs":
            return HandlerResult(
                "Exporting audit logs to CSV. Download will start shortly.",
                command={"action": intent},
            )

        if intent == "audit.errorScan":
            errors = [r for r in self.records if any(w in r.action.lower() for w in self.ERROR_WORDS)]
            if not errors:
                return HandlerResult("No errors found in the audit log.")
            actions = _join_names([f"{r.action} by {r.actor}" for r in errors])
            return HandlerResult(f"Found {_plural(len(errors), 'error event')}: {actions}.")

        if intent == "audit.filterByActor":
            actor = self._actor_mentioned(text_lower)
            if actor is None:
                return HandlerResult("Say filter by actor followed by a name or email.", success=False)
            events = [r.action for r in self.records if r.actor == actor]
            return HandlerResult(
                f"{_plural(len(events), 'event')} by {actor}: {_join_names(events)}.",
                command={"action": intent, "actor": actor},
            )

        if intent == "audit.summary" and self.records:
            latest = self.records[0]
            return HandlerResult(
                f"{_plural(len(self.records), 'audit event')} logged. "
                f"Most recent: {latest.action} by {latest.actor}, {latest.time}."
            )

        if intent == "audit.summary":
            return HandlerResult("The audit log is empty.")

        return HandlerResult("Loaded audit logs. Say export, errors, or filter by actor.")


# ============================================================================
# USERS
# ============================================================================

class UsersHandler(DomainHandler):
    """User management console."""

    HELP = "You can ask about specific users, search for users, export the list, or find the top performer."

    def __init__(self, users: Sequence[PortalUser] = ()):
        self.users = list(users)

    def _mentioned(self, text_lower: str) -> Optional[PortalUser]:
        for user in self.users:
            if user.name.lower() in text_lower or user.email.lower() in text_lower:
                return user
        return None

    @staticmethod
    def _search_term(text: str) -> Optional[str]:
        match = re.search(r"\b(?:search\s+for|search|find)\s+(.+)", text, re.IGNORECASE)
        if not match:
            return None
        term = match.group(1).strip(" .?!")
        return term or None

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        text_lower = text.lower()

        if intent == "users.export":
            return HandlerResult(
                "Exporting user list to CSV file. Download will start shortly.",
                command={"action": intent},
            )

        if intent == "users.promote":
            match = re.search(PROMOTE_PATTERN, text, re.IGNORECASE)
            if not match:
                return HandlerResult(self.HELP, success=False)
            name, role = match.group(1).strip(), match.group(2).lower()
            return HandlerResult(
                f"Queued promotion of {name} to {role}",
                command={"action": intent, "name": name, "role": role},
            )

        if intent == "users.search":
            term = self._search_term(text)
            if term is None:
                return HandlerResult(self.HELP, success=False)
            needle = term.lower()
            results = [u for u in self.users if needle in u.name.lower() or needle in u.email.lower()]
            return HandlerResult(
                f"Found {_plural(len(results), 'user')} matching {term}",
                command={"action": intent, "term": term},
            )

        if intent == "users.topPerformer":
            scored = [u for u in self.users if u.score is not None]
            if not scored:
                return HandlerResult("No impact scores are available yet.")
            top = max(scored, key=lambda u: u.score)
            return HandlerResult(f"{top.name} has the highest impact score of {top.score}")

        if intent == "users.count":
            if "admin" in text_lower:
                admins = [u for u in self.users if u.role == "admin"]
                return HandlerResult(f"There are {len(admins)} total admins with varying permission levels.")
            return HandlerResult(f"There are {_plural(len(self.users), 'user')} in total.")

        if intent == "users.activeCount":
            active = [u for u in self.users if u.active]
            verb = "is" if len(active) == 1 else "are"
            return HandlerResult(f"{_plural(len(active), 'user')} {verb} currently active.")

        user = self._mentioned(text_lower)
        if user is None:
            if intent == "users.deactivate":
                return HandlerResult("I couldn't find that user.", success=False)
            return HandlerResult(self.HELP, success=False)

        if intent == "users.deactivate":
            return HandlerResult(
                f"Initiating deactivation process for {user.name}. Please confirm in the interface.",
                command={"action": intent, "email": user.email},
            )

        speech = f"{user.name} is a {user.role} with email {user.email}."
        if user.score:
            speech += f" Their impact score is {user.score}."
        return HandlerResult(speech)


# ============================================================================
# LAUNCHBOARD
# ============================================================================

class LaunchboardHandler(DomainHandler):
    """Module launchboard: list, open, pin and check modules."""

    def __init__(self, modules: Mapping[str, str], statuses: Optional[Mapping[str, str]] = None):
        self.modules = dict(modules)
        self.statuses = dict(statuses or {})

    def _module(self, text_lower: str) -> Optional[str]:
        for name in self.modules:
            if re.search(rf"\b{re.escape(name)}\b", text_lower):
                return name
        return None

    def _not_found(self) -> HandlerResult:
        return HandlerResult(
            f"I couldn't find that module. Available modules: {_join_names(list(self.modules))}.",
            success=False,
        )

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        module = self._module(text.lower())

        if intent == "launchboard.openModule":
            if module is None:
                return self._not_found()
            return HandlerResult(
                f"Opening {module}.",
                route=self.modules[module],
                command={"action": intent, "module": module},
            )

        if intent == "launchboard.pinModule":
            if module is None:
                return self._not_found()
            return HandlerResult(
                f"Pinned {module} to your launchboard.",
                command={"action": intent, "module": module},
            )

        if intent == "launchboard.status":
            if module is not None:
                return HandlerResult(f"{module} is {self.statuses.get(module, 'online')}.")
            offline = [name for name in self.modules if self.statuses.get(name, "online") != "online"]
            if not offline:
                return HandlerResult(f"All {_plural(len(self.modules), 'module')} are online.")
            verb = "is" if len(offline) == 1 else "are"
            return HandlerResult(f"{_join_names(offline)} {verb} not online.")

        return HandlerResult(f"Available modules: {_join_names(list(self.modules))}.")


# ============================================================================
# ADMIN CONSOLES (charts, system, ui, settings, broadcast)
# ============================================================================

CONSOLE_RESPONSES: Dict[str, str] = {
    "charts.usageVolume": "AI call volume is at 13,240 this month, up 12% from last month.",
    "charts.topEndpoint": "The most active endpoint is /admin/voice-assist with 4,200 calls.",
    "charts.exportUsage": "Generating usage report CSV. Download will start shortly.",
    "system.load": "System load is at 32%. All services are running smoothly.",
    "system.tasks": "7 background tasks are running. AI export processor is using the most resources.",
    "system.restart": 'System restart requires confirmation. Say "confirm restart" to proceed.',
    "ui.highlightErrors": "Highlighting UI errors. Found 2 console warnings and 1 layout shift.",
    "ui.inspect": "Inspector mode activated. Click any element to see its properties.",
    "settings.voiceStatus": "Voice assistant Rachel is currently active and responding to commands.",
    "settings.environment": "System is running in production environment with all security features enabled.",
    "broadcast.last": "Last broadcast was sent on August 1st: Platform update notice.",
    "broadcast.compose": "To send a new broadcast, use the form below or say the message content.",
}

# Console intents that also hand the host something to do
CONSOLE_COMMANDS = {"charts.exportUsage", "system.restart", "ui.highlightErrors", "ui.inspect"}


class AdminConsoleHandler(DomainHandler):
    """Canned status answers for the admin console screens."""

    def __init__(self, responses: Optional[Mapping[str, str]] = None):
        self.responses = dict(CONSOLE_RESPONSES)
        self.responses.update(responses or {})

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        speech = self.responses.get(intent)
        if speech is None:
            return GenericHandler().handle(intent, text, context)
        command = {"action": intent} if intent in CONSOLE_COMMANDS else None
        if intent == "system.restart":
            command["requires_confirmation"] = True
        return HandlerResult(speech, command=command)


# ============================================================================
# ADMIN MUTATIONS
# ============================================================================

class AdminMutationHandler(DomainHandler):
    """
    Extract mutation parameters and hand them back as a command.

    Examples:
    - "Disable employer Smith Wellness" -> {"action": "admin.toggleEmployer", "employer": "Smith Wellness", "enabled": False}
    - "Enable telehealth visits feature" -> {"action": "admin.toggleFeature", "feature": "telehealth_visits", "enabled": True}
    - "Set patient cap for Acme to 300" -> {"action": "admin.setPatientCap", "employer": "Acme", "cap": 300}
    """

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        if intent == "admin.toggleEmployer":
            match = re.search(EMPLOYER_TOGGLE_PATTERN, text, re.IGNORECASE)
            if match:
                enabled = match.group(1).lower() in ("enable", "activate")
                name = match.group(2).strip(" .!?")
                return HandlerResult(
                    f"{name} has been {'enabled' if enabled else 'disabled'}.",
                    command={"action": intent, "employer": name, "enabled": enabled},
                )

        if intent == "admin.toggleFeature":
            match = re.search(FEATURE_TOGGLE_PATTERN, text, re.IGNORECASE)
            if match:
                enabled = match.group(1).lower() == "enable"
                feature = re.sub(r"\s+", "_", match.group(2).strip().lower())
                return HandlerResult(
                    f"The {feature} feature is now {'enabled' if enabled else 'disabled'}.",
                    command={"action": intent, "feature": feature, "enabled": enabled},
                )

        if intent == "admin.setPatientCap":
            match = re.search(PATIENT_CAP_PATTERN, text, re.IGNORECASE)
            if match:
                employer = match.group(1).strip() or None
                cap = int(match.group(2))
                speech = (
                    f"The cap for {employer} has been updated to {cap}"
                    if employer else f"The patient cap has been updated to {cap}"
                )
                return HandlerResult(speech, command={"action": intent, "employer": employer, "cap": cap})

        logger.debug(f"[Handlers] Mutation intent without parameters: {intent}")
        return HandlerResult("I couldn't work out what to change. Please say it again.", success=False)


# ============================================================================
# CARE COMMANDS (parsed patient/provider requests)
# ============================================================================

class CareCommandHandler:
    """
    Confirmation speech + structured command for parsed care requests.

    Navigation is not handled here (the Dispatcher turns it into a route).
    """

    HELP = (
        "I can help you book appointments, manage medications, upload documents, "
        "and update your medical history. What would you like to do?"
    )

    def __init__(self, route_map: RouteMap = DEFAULT_ROUTE_MAP):
        self.route_map = route_map

    def handle(self, command: ParsedCommand, role=None) -> HandlerResult:
        parsed = command.parsed
        kind = command.command

        if kind is CommandKind.BOOK_APPOINTMENT:
            provider = parsed.get("providerName")
            with_provider = f" with Dr. {provider}" if provider else ""
            return HandlerResult(
                f"Booking an appointment{with_provider} on {parsed['date']} at {parsed['time']} "
                f"for {parsed['reason']}.",
                command=command.to_dict(),
            )

        if kind is CommandKind.ADD_MEDICATION:
            name = parsed.get("name")
            if not name:
                return HandlerResult("Which medication would you like to add?", success=False)
            strength = f" {parsed['strength']}" if parsed.get("strength") else ""
            return HandlerResult(
                f"Adding {name}{strength}, {parsed['dosage']} {parsed['frequency']}, to your medications.",
                command=command.to_dict(),
            )

        if kind is CommandKind.UPLOAD_DOCUMENT:
            doc_type = parsed.get("type", "general")
            label = "" if doc_type == "general" else doc_type.replace("_", " ") + " "
            return HandlerResult(f"Ready to upload your {label}document.", command=command.to_dict())

        if kind is CommandKind.CHECK_APPOINTMENTS:
            return HandlerResult(
                "Here are your upcoming appointments.",
                route=route_path("appointments", role or "patient", self.route_map),
            )

        if kind is CommandKind.CHECK_MEDICATIONS:
            return HandlerResult(
                "Here are your current medications.",
                route=route_path("medications", role or "patient", self.route_map),
            )

        return HandlerResult(self.HELP, success=False)


# ============================================================================
# FALLBACK
# ============================================================================

class GenericHandler(DomainHandler):
    """Echo the current context back so every path ends in feedback."""

    def handle(self, intent: str, text: str, context: Optional[str] = None) -> HandlerResult:
        return HandlerResult(
            f"You can ask about {context or 'various admin features'}. "
            "Try asking about specific metrics or actions.",
            success=False,
        )
