"""
Proactive suggestion tests. Delays are a few milliseconds so the real loop is used.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from portal_assistant.session_memory import SessionMemory
from portal_assistant.suggestion_engine import (
    ProactiveSuggestionEngine,
    SuggestionRule,
    SuggestionState,
)

DELAY_MS = 10


def make_engine(memory=None, rules=None):
    sink = AsyncMock()
    sink.is_speaking = False
    engine = ProactiveSuggestionEngine(memory if memory is not None else SessionMemory(), sink, delay_ms=DELAY_MS, rules=rules)
    return engine, sink


async def idle(ms: int = DELAY_MS * 5):
    await asyncio.sleep(ms / 1000)


class TestSuggestText:
    def test_invoices_route_suggests_payment_reminder(self):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, _ = make_engine(memory)
        assert "payment reminder" in engine.suggest()

    def test_backup_prompt(self):
        memory = SessionMemory()
        memory.record("is the nightly backup done", "...", True)
        engine, _ = make_engine(memory)
        assert "backup" in engine.suggest()

    def test_employer_prompt(self):
        memory = SessionMemory()
        memory.record("show employer details", "...", True)
        engine, _ = make_engine(memory)
        assert "summary report" in engine.suggest()

    def test_route_rule_wins_over_prompt_rules(self):
        memory = SessionMemory()
        memory.record("employer backup invoices", "...", True, "/admin/invoices")
        engine, _ = make_engine(memory)
        assert "payment reminder" in engine.suggest()

    def test_silent_when_nothing_matches(self):
        memory = SessionMemory()
        memory.record("go to labs", "Opening labs.", True, "/patient/labs")
        engine, _ = make_engine(memory)
        assert engine.suggest() is None

    def test_silent_when_memory_empty(self):
        engine, _ = make_engine()
        assert engine.suggest() is None


class TestTimer:
    @pytest.mark.asyncio
    async def test_fires_after_idle_delay(self):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, sink = make_engine(memory)

        engine.arm()
        assert engine.state is SuggestionState.ARMED
        await idle()
        await engine.wait_spoken()

        sink.send.assert_awaited_once()
        assert "payment reminder" in sink.send.await_args.args[0]
        assert engine.state is SuggestionState.IDLE

    @pytest.mark.asyncio
    async def test_rearm_replaces_pending_timer(self):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, sink = make_engine(memory)

        engine.arm()
        engine.arm()
        engine.arm()
        await idle()
        await engine.wait_spoken()

        assert sink.send.await_count == 1

    @pytest.mark.asyncio
    async def test_cancel_prevents_firing(self):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, sink = make_engine(memory)

        engine.arm()
        engine.cancel()
        await idle()

        sink.send.assert_not_awaited()
        assert engine.state is SuggestionState.IDLE

    @pytest.mark.asyncio
    async def test_no_match_is_silent_and_does_not_rearm(self):
        memory = SessionMemory()
        memory.record("hello", "hi", False)
        engine, sink = make_engine(memory)

        engine.arm()
        await idle()
        await idle()

        sink.send.assert_not_awaited()
        assert engine.state is SuggestionState.IDLE

    @pytest.mark.asyncio
    async def test_reads_latest_entry_at_fire_time(self):
        memory = SessionMemory()
        engine, sink = make_engine(memory)

        engine.arm()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        await idle()
        await engine.wait_spoken()

        sink.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_custom_rules(self):
        memory = SessionMemory()
        memory.record("labs", "ok", True, "/patient/labs")
        rules = [SuggestionRule("labs", lambda e: "labs" in (e.route or ""), "Want to share these labs?")]
        engine, sink = make_engine(memory, rules)

        engine.arm()
        await idle()
        await engine.wait_spoken()

        sink.send.assert_awaited_once_with("Want to share these labs?")

    @pytest.mark.asyncio
    async def test_dispose_cancels_timer(self):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, sink = make_engine(memory)

        engine.arm()
        engine.dispose()
        await idle()

        sink.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_waits_while_sink_is_speaking(self):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, sink = make_engine(memory)
        sink.is_speaking = True

        engine.arm()
        await idle()

        sink.send.assert_not_awaited()
        assert engine.state is SuggestionState.ARMED

        sink.is_speaking = False
        await idle()
        await engine.wait_spoken()

        sink.send.assert_awaited_once()
        assert engine.state is SuggestionState.IDLE

    @pytest.mark.asyncio
    async def test_failed_speech_is_logged(self, caplog):
        memory = SessionMemory()
        memory.record("show me invoices", "Opening invoices.", True, "/admin/invoices")
        engine, sink = make_engine(memory)
        sink.send.side_effect = RuntimeError("audio device gone")

        with caplog.at_level(logging.WARNING, logger="portal_assistant.suggestion_engine"):
            engine.arm()
            await idle()
            await engine.wait_spoken()
            await asyncio.sleep(0)

        assert "audio device gone" in caplog.text
