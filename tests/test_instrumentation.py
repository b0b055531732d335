"""
Instrumentation tests: [EVT] line shape and logging setup.
"""

import logging
from unittest.mock import patch

from portal_assistant.instrumentation import LOG_FORMAT, log_event, setup_logging


def test_log_event_format(caplog):
    with caplog.at_level(logging.INFO, logger="portal_assistant.instrumentation"):
        log_event("turn recorded", stage="record", interaction_id="abc123")

    message = caplog.records[-1].getMessage()
    assert message.startswith("[EVT] t=")
    assert "id=abc123 stage=record event=turn recorded" in message


def test_setup_logging_explicit_level():
    with patch("portal_assistant.instrumentation.logging.basicConfig") as basic_config:
        setup_logging("debug")
    basic_config.assert_called_once_with(level="DEBUG", format=LOG_FORMAT)
