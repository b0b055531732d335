"""
Command Dispatcher Module

Responsibility: Route an intent tag or parsed command to the matching
handler and wrap its answer as a SpokenResponse or NavigationAction.

Routing:
- IntentTag -> handler registered for its domain prefix ("billing.*" -> billing)
- ParsedCommand(navigate) -> NavigationAction (no speech handler involved)
- Other ParsedCommand kinds -> care command handler
- UNCLASSIFIED / None / unknown prefix -> generic fallback

Every path ends in user-visible feedback; handler errors are logged and
answered with the generic failure line instead of propagating.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from portal_assistant.command_parser import CommandKind, ParsedCommand
from portal_assistant.domain_handlers import (
    AdminConsoleHandler,
    AdminMutationHandler,
    AuditHandler,
    AuditRecord,
    BillingAccount,
    BillingHandler,
    CareCommandHandler,
    DomainHandler,
    GenericHandler,
    HandlerResult,
    LaunchboardHandler,
    PortalUser,
    UsersHandler,
)
from portal_assistant.intent_classifier import UNCLASSIFIED, intent_domain
from portal_assistant.policy import PIPELINE_FAILURE_RESPONSE
from portal_assistant.routes import DEFAULT_ROUTE_MAP, RouteMap, route_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpokenResponse:
    """Something to say, plus what (if anything) the host should do."""
    text: str
    success: bool = True
    intent: Optional[str] = None
    command: Optional[Dict[str, Any]] = None
    route: Optional[str] = None


@dataclass(frozen=True)
class NavigationAction:
    """Move the UI to a route instead of speaking."""
    page: str
    path: Optional[str]
    text: str

    @property
    def success(self) -> bool:
        return self.path is not None

    @property
    def route(self) -> Optional[str]:
        return self.path


DispatchResult = Union[SpokenResponse, NavigationAction]


class CommandDispatcher:
    """
    Prefix -> handler registry.

    Adding a domain means register("prefix", handler); the classifier's
    matching loop does not change.
    """

    def __init__(
        self,
        route_map: RouteMap = DEFAULT_ROUTE_MAP,
        care_handler: Optional[CareCommandHandler] = None,
        fallback: Optional[DomainHandler] = None,
    ):
        self.route_map = route_map
        self.handlers: Dict[str, DomainHandler] = {}
        self.care_handler = care_handler or CareCommandHandler(route_map)
        self.fallback = fallback or GenericHandler()

    def register(self, prefix: str, handler: DomainHandler) -> None:
        """Register (or replace) the handler for an intent domain prefix."""
        self.handlers[prefix] = handler
        logger.debug(f"[Dispatcher] Registered {type(handler).__name__} for '{prefix}.*'")

    def dispatch(
        self,
        target: Union[str, ParsedCommand, None],
        context: Optional[str] = None,
        text: str = "",
        role=None,
    ) -> DispatchResult:
        """
        Invoke the handler for an intent tag or parsed command.

        Args:
            target: Intent tag, ParsedCommand, or None (nothing understood)
            context: Active screen/module name (echoed by the fallback)
            text: Raw user input (handlers re-check keywords in it)
            role: Caller-supplied role

        Returns:
            SpokenResponse or NavigationAction (never raises)
        """
        try:
            if isinstance(target, ParsedCommand):
                return self._dispatch_command(target, role)
            return self._dispatch_intent(target, context, text)
        except Exception as e:
            logger.error(f"[Dispatcher] Handler failed for {target}: {e}", exc_info=True)
            return SpokenResponse(PIPELINE_FAILURE_RESPONSE, success=False)

    def _dispatch_command(self, command: ParsedCommand, role) -> DispatchResult:
        if command.command is CommandKind.NAVIGATE:
            path = route_path(command.page, role, self.route_map)
            if path is None:
                logger.warning(f"[Dispatcher] No route for page '{command.page}'")
                return NavigationAction(command.page, None, f"I couldn't find the {command.page} page.")
            logger.info(f"[Dispatcher] Navigate: {command.page} -> {path}")
            return NavigationAction(command.page, path, f"Opening {command.page}.")

        result = self.care_handler.handle(command, role)
        logger.info(f"[Dispatcher] {command.command.value} -> success={result.success}")
        return self._wrap(result, f"care.{command.command.value}")

    def _dispatch_intent(self, intent: Optional[str], context: Optional[str], text: str) -> SpokenResponse:
        handler = None
        if intent and intent != UNCLASSIFIED:
            handler = self.handlers.get(intent_domain(intent))
            if handler is None:
                logger.warning(f"[Dispatcher] No handler for intent '{intent}', using fallback")

        if handler is None:
            result = self.fallback.handle(intent or UNCLASSIFIED, text, context)
            return self._wrap(result, intent or UNCLASSIFIED)

        result = handler.handle(intent, text, context)
        logger.info(f"[Dispatcher] {intent} -> {type(handler).__name__} success={result.success}")
        return self._wrap(result, intent)

    @staticmethod
    def _wrap(result: HandlerResult, intent: str) -> SpokenResponse:
        return SpokenResponse(
            text=result.speech,
            success=result.success,
            intent=intent,
            command=result.command,
            route=result.route,
        )


def build_default_dispatcher(
    route_map: RouteMap = DEFAULT_ROUTE_MAP,
    launchboard_modules: Optional[Mapping[str, str]] = None,
    accounts: Sequence[BillingAccount] = (),
    audit_records: Sequence[AuditRecord] = (),
    users: Sequence[PortalUser] = (),
) -> CommandDispatcher:
    """
    Dispatcher with every built-in domain registered.

    Records are whatever the host currently has on screen; the handlers only read them.
    """
    dispatcher = CommandDispatcher(route_map=route_map)
    dispatcher.register("billing", BillingHandler(accounts))
    dispatcher.register("audit", AuditHandler(audit_records))
    dispatcher.register("users", UsersHandler(users))
    dispatcher.register("launchboard", LaunchboardHandler(launchboard_modules or {}))
    dispatcher.register("admin", AdminMutationHandler())

    console = AdminConsoleHandler()
    for prefix in ("charts", "system", "ui", "settings", "broadcast"):
        dispatcher.register(prefix, console)

    return dispatcher
