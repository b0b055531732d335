"""
Command parser tests: rule precedence and the parsed entity bag.
"""

from datetime import date

import pytest

from portal_assistant.command_parser import CommandKind, CommandParser, ParsedCommand

TODAY = date(2025, 7, 31)


@pytest.fixture
def parser():
    return CommandParser(today_provider=lambda: TODAY)


class TestNavigation:
    def test_show_me_invoices_as_admin(self, parser):
        result = parser.parse("Show me invoices", role="admin")
        assert result.to_dict() == {"command": "navigate", "page": "invoices"}

    def test_show_me_my_appointments_is_navigation_not_query(self, parser):
        result = parser.parse("show me my appointments")
        assert result.command is CommandKind.NAVIGATE
        assert result.page == "appointments"

    def test_possessive_route_keyword(self, parser):
        assert parser.parse("where are my labs").page == "labs"

    def test_explicit_verb(self, parser):
        assert parser.parse("take me to branding").page == "branding"

    def test_role_inferred_from_text(self, parser):
        assert parser.parse("go to the audit page").page == "audit"

    def test_misclassified_role_still_resolves(self, parser):
        """Patient asking for an admin keyword falls back to the all-roles sweep."""
        assert parser.parse("open invoices", role="patient").page == "invoices"

    def test_navigation_verb_without_known_page_falls_through(self, parser):
        result = parser.parse("open the pod bay doors")
        assert result is None or result.command is not CommandKind.NAVIGATE

    def test_page_only_for_navigation(self, parser):
        result = parser.parse("go to medications")
        assert result.page == "medications"
        assert result.parsed == {}


class TestAppointments:
    def test_booking_scenario(self, parser):
        result = parser.parse("Book with Dr. Patel tomorrow at 3")
        assert result.command is CommandKind.BOOK_APPOINTMENT
        assert result.page is None
        assert result.parsed == {
            "providerName": "Patel",
            "date": "2025-08-01",
            "time": "15:00",
            "reason": "General",
        }

    def test_schedule_with_reason(self, parser):
        result = parser.parse("schedule a visit with Dr. Lee on monday for back pain at 10am")
        assert result.parsed["date"] == "2025-08-04"
        assert result.parsed["time"] == "10:00"
        assert result.parsed["reason"] == "Back pain"

    def test_show_phrasing_not_booked(self, parser):
        result = parser.parse("show appointment history")
        assert result.command is not CommandKind.BOOK_APPOINTMENT


class TestMedications:
    def test_add_medication_scenario(self, parser):
        result = parser.parse("Add metformin 500mg once daily")
        assert result.command is CommandKind.ADD_MEDICATION
        assert result.parsed == {
            "name": "metformin",
            "strength": "500mg",
            "dosage": "1 tablet",
            "frequency": "once daily",
        }

    def test_question_is_not_an_add(self, parser):
        result = parser.parse("what medications am I taking")
        assert result.command is CommandKind.CHECK_MEDICATIONS

    def test_dosage_never_empty(self, parser):
        for text in ("add aspirin", "I was prescribed amoxicillin", "new medication please add"):
            result = parser.parse(text)
            assert result.command is CommandKind.ADD_MEDICATION
            assert result.parsed["dosage"]


class TestDocuments:
    def test_upload(self, parser):
        result = parser.parse("upload my insurance card")
        assert result.command is CommandKind.UPLOAD_DOCUMENT
        assert result.parsed == {"type": "insurance_card"}


class TestQueries:
    def test_check_appointments(self, parser):
        assert parser.parse("list upcoming appointments").command is CommandKind.CHECK_APPOINTMENTS

    def test_general_query_keeps_text(self, parser):
        result = parser.parse("what is a normal cholesterol level")
        assert result.command is CommandKind.GENERAL_QUERY
        assert result.parsed == {"query": "what is a normal cholesterol level"}
        assert not result.is_actionable


class TestNoMatch:
    @pytest.mark.parametrize("text", ["", "   ", "hello there", "thanks"])
    def test_returns_none(self, parser, text):
        assert parser.parse(text) is None

    def test_none_input(self, parser):
        assert parser.parse(None) is None


def test_parsed_command_is_immutable(parser):
    result = parser.parse("go to labs")
    with pytest.raises(Exception):
        result.page = "settings"


def test_actionable_kinds():
    assert ParsedCommand(CommandKind.NAVIGATE, page="labs").is_actionable
    assert ParsedCommand(CommandKind.UPLOAD_DOCUMENT).is_actionable
    assert not ParsedCommand(CommandKind.CHECK_MEDICATIONS).is_actionable
