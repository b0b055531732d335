"""
Intent classifier tests: context narrowing, rule order, purity.
"""

import pytest

from portal_assistant.intent_classifier import (
    UNCLASSIFIED,
    IntentRule,
    RuleBasedIntentClassifier,
    intent_domain,
    rule,
)


@pytest.fixture
def classifier():
    return RuleBasedIntentClassifier()


class TestBillingContext:
    def test_overdue_scenario(self, classifier):
        assert classifier.classify("what's our overdue accounts", "billing") == "billing.overdueCheck"

    def test_reminders_win_over_overdue(self, classifier):
        assert classifier.classify("remind overdue employers", "billing") == "billing.sendReminders"

    @pytest.mark.parametrize("text,expected", [
        ("any payment risk?", "billing.riskReview"),
        ("compare Acme and Globex", "billing.compareEmployers"),
        ("download the Acme pdf", "billing.invoicePdf"),
        ("export this to csv", "billing.exportReport"),
        ("email Acme their summary", "billing.emailSummary"),
        ("what's the revenue trend", "billing.summary"),
    ])
    def test_billing_rules(self, classifier, text, expected):
        assert classifier.classify(text, "billing") == expected


class TestAuditContext:
    def test_compliance_before_generic_report(self, classifier):
        assert classifier.classify("give me the compliance report", "audit") == "audit.complianceSummary"

    def test_generic_report(self, classifier):
        assert classifier.classify("give me the activity report", "audit") == "audit.summary"

    @pytest.mark.parametrize("text,expected", [
        ("export the logs", "audit.exportLogs"),
        ("any errors today", "audit.errorScan"),
        ("filter by actor jane", "audit.filterByActor"),
    ])
    def test_audit_rules(self, classifier, text, expected):
        assert classifier.classify(text, "audit") == expected


class TestOtherContexts:
    @pytest.mark.parametrize("text,context,expected", [
        ("export the user list", "users", "users.export"),
        ("search for jane", "users", "users.search"),
        ("who is the top performer", "users", "users.topPerformer"),
        ("promote Jane Doe to admin", "users", "users.promote"),
        ("open billing", "launchboard", "launchboard.openModule"),
        ("pin audit", "launchboard", "launchboard.pinModule"),
        ("what modules are there", "launchboard", "launchboard.listModules"),
        ("what's the usage volume", "charts", "charts.usageVolume"),
        ("which endpoint is top", "charts", "charts.topEndpoint"),
        ("how is system performance", "system", "system.load"),
        ("restart the server", "system", "system.restart"),
        ("highlight errors", "ui", "ui.highlightErrors"),
        ("is the voice assistant on", "settings", "settings.voiceStatus"),
    ])
    def test_context_rules(self, classifier, text, context, expected):
        assert classifier.classify(text, context) == expected

    def test_context_is_case_insensitive(self, classifier):
        assert classifier.classify("any overdue?", " Billing ") == "billing.overdueCheck"


class TestGlobalRules:
    @pytest.mark.parametrize("text,expected", [
        ("run a hipaa compliance check", "audit.complianceSummary"),
        ("export the audit log", "audit.exportLogs"),
        ("show audit errors", "audit.errorScan"),
        ("open the audit trail", "audit.summary"),
        ("remind employers about payment", "billing.sendReminders"),
        ("who is past due", "billing.overdueCheck"),
        ("billing summary please", "billing.summary"),
        ("how many users do we have", "users.count"),
        ("Disable employer Smith Wellness", "admin.toggleEmployer"),
        ("enable telehealth feature", "admin.toggleFeature"),
        ("set patient cap for Acme to 300", "admin.setPatientCap"),
        ("send a new broadcast", "broadcast.compose"),
    ])
    def test_domain_agnostic(self, classifier, text, expected):
        assert classifier.classify(text) == expected

    def test_unknown_context_uses_global_rules(self, classifier):
        assert classifier.classify("any overdue invoices", "dashboard") == "billing.overdueCheck"


class TestWordBoundaries:
    @pytest.mark.parametrize("text,context,expected", [
        ("show the latest invoice total", "billing", "billing.summary"),
        ("activity for the whole week", "audit", "audit.summary"),
        ("export the audit logs", None, "audit.exportLogs"),
        ("send payment reminders", "billing", "billing.sendReminders"),
        ("any failed logins", "audit", "audit.errorScan"),
    ])
    def test_inflections_match_and_prefixes_do_not(self, classifier, text, context, expected):
        assert classifier.classify(text, context) == expected

    def test_longer_word_is_not_a_keyword_hit(self, classifier):
        assert classifier.classify("list the topics", "users") != "users.topPerformer"


class TestUnclassified:
    @pytest.mark.parametrize("text", ["", "   ", "hello", "tell me a joke"])
    def test_no_match(self, classifier, text):
        assert classifier.classify(text, "billing") == UNCLASSIFIED

    def test_never_raises_on_bad_input(self, classifier):
        assert classifier.classify(None, None) == UNCLASSIFIED


def test_classification_is_idempotent(classifier):
    pairs = [("what's our overdue accounts", "billing"), ("compliance", "audit"), ("hello", None)]
    for text, context in pairs:
        assert classifier.classify(text, context) == classifier.classify(text, context)


def test_handles_context(classifier):
    assert classifier.handles_context("billing")
    assert classifier.handles_context("Launchboard")
    assert not classifier.handles_context("dashboard")
    assert not classifier.handles_context(None)


def test_custom_rule_tables():
    custom = RuleBasedIntentClassifier(
        context_rules={"labs": [rule("labs.latest", ("latest", "recent"))]},
        global_rules=[IntentRule("misc.ping", require=(("ping",),))],
    )
    assert custom.classify("latest results", "labs") == "labs.latest"
    assert custom.classify("ping") == "misc.ping"
    assert custom.classify("latest results") == UNCLASSIFIED


def test_exclusions_disqualify_rule():
    candidate = rule("billing.summary", ("invoice",), exclude=("pdf",))
    assert candidate.matches("invoice total")
    assert not candidate.matches("invoice pdf")


def test_intent_domain():
    assert intent_domain("billing.summary") == "billing"
    assert intent_domain("unclassified") == "unclassified"
