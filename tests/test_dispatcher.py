"""
Dispatcher tests: registry routing, navigation, fallback, error containment.
"""

from unittest.mock import MagicMock

import pytest

from portal_assistant.command_parser import CommandKind, ParsedCommand
from portal_assistant.dispatcher import (
    CommandDispatcher,
    NavigationAction,
    SpokenResponse,
    build_default_dispatcher,
)
from portal_assistant.domain_handlers import HandlerResult
from portal_assistant.intent_classifier import UNCLASSIFIED, RuleBasedIntentClassifier
from portal_assistant.policy import PIPELINE_FAILURE_RESPONSE


@pytest.fixture
def dispatcher():
    return build_default_dispatcher(launchboard_modules={"billing": "/admin/invoices"})


def test_overdue_scenario_speaks(dispatcher):
    intent = RuleBasedIntentClassifier().classify("what's our overdue accounts", "billing")
    result = dispatcher.dispatch(intent, context="billing", text="what's our overdue accounts")
    assert isinstance(result, SpokenResponse)
    assert result.intent == "billing.overdueCheck"
    assert result.text.strip()


def test_navigate_command_becomes_navigation_action(dispatcher):
    result = dispatcher.dispatch(ParsedCommand(CommandKind.NAVIGATE, page="invoices"), role="admin")
    assert isinstance(result, NavigationAction)
    assert result.page == "invoices"
    assert result.path == "/admin/invoices"
    assert result.route == "/admin/invoices"
    assert result.success


def test_role_table_preferred_for_shared_keyword(dispatcher):
    result = dispatcher.dispatch(ParsedCommand(CommandKind.NAVIGATE, page="calendar"), role="owner")
    assert result.path == "/owner/calendar"


def test_unknown_page_is_unsuccessful_navigation(dispatcher):
    result = dispatcher.dispatch(ParsedCommand(CommandKind.NAVIGATE, page="nowhere"))
    assert result.path is None
    assert not result.success


def test_care_command_goes_to_care_handler(dispatcher):
    command = ParsedCommand(
        CommandKind.UPLOAD_DOCUMENT, parsed={"type": "lab_result"}
    )
    result = dispatcher.dispatch(command)
    assert result.text == "Ready to upload your lab result document."
    assert result.intent == "care.upload_document"
    assert result.command == {"command": "upload_document", "parsed": {"type": "lab_result"}}


@pytest.mark.parametrize("target", [UNCLASSIFIED, None, "weather.forecast"])
def test_unmatched_falls_back_with_context(dispatcher, target):
    result = dispatcher.dispatch(target, context="billing", text="blah")
    assert result.text == "You can ask about billing. Try asking about specific metrics or actions."
    assert not result.success


def test_launchboard_route_carried_on_spoken_response(dispatcher):
    result = dispatcher.dispatch("launchboard.openModule", context="launchboard", text="open billing")
    assert result.route == "/admin/invoices"


def test_console_prefixes_registered(dispatcher):
    for intent in ("charts.usageVolume", "system.tasks", "ui.inspect", "settings.environment", "broadcast.last"):
        assert dispatcher.dispatch(intent, text="x").success


def test_register_new_domain():
    dispatcher = CommandDispatcher()
    handler = MagicMock()
    handler.handle.return_value = HandlerResult("Your latest labs are normal.")
    dispatcher.register("labs", handler)

    result = dispatcher.dispatch("labs.latest", context="labs", text="latest labs")

    handler.handle.assert_called_once_with("labs.latest", "latest labs", "labs")
    assert result.text == "Your latest labs are normal."
    assert result.intent == "labs.latest"


def test_handler_error_is_contained():
    dispatcher = CommandDispatcher()
    handler = MagicMock()
    handler.handle.side_effect = RuntimeError("boom")
    dispatcher.register("billing", handler)

    result = dispatcher.dispatch("billing.summary", text="billing")

    assert result == SpokenResponse(PIPELINE_FAILURE_RESPONSE, success=False)
