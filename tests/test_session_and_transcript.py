import logging
from datetime import datetime, timedelta, timezone
import pytest
from callbridge.core.session_store import SessionRegistry, get_session_registry
from callbridge.core.transcript import call_duration
from callbridge.tools.schemas import ToolResult


def test_get_or_create_returns_same_session(registry):
    first = registry.get_or_create("CA1")
    again = registry.get_or_create("CA1")

    assert first is again
    assert "CA1" in registry
    assert len(registry) == 1


def test_sessions_are_isolated(registry):
    a = registry.get_or_create("CA1")
    b = registry.get_or_create("CA2")
    a.thread_id = "thread_a"
    a.transcript.append("user: hi")

    assert b.thread_id == ""
    assert b.transcript == []


def test_create_replaces_stale_record(registry):
    registry.get_or_create("CA1").transcript.append("user: old")
    fresh = registry.create("CA1", caller_number="+1", first_message="Hello")

    assert registry.get("CA1") is fresh
    assert fresh.transcript == []
    assert fresh.caller_number == "+1"


def test_delete_is_idempotent(registry):
    registry.get_or_create("CA1")
    registry.delete("CA1")
    registry.delete("CA1")

    assert registry.get("CA1") is None
    assert len(registry) == 0


def test_default_registry_is_shared():
    assert get_session_registry() is get_session_registry()
    assert isinstance(get_session_registry(), SessionRegistry)


def test_lines_keep_arrival_order(recorder, registry):
    session = registry.get_or_create("CA1")
    recorder.record_user(session, "I need a tow")
    recorder.record_agent(session, "Sure, where are you?")
    recorder.record_user(session, "221B Baker St")

    assert session.transcript == [
        "user: I need a tow",
        "agent: Sure, where are you?",
        "user: 221B Baker St",
    ]
    assert recorder.render(session) == "user: I need a tow\nagent: Sure, where are you?\nuser: 221B Baker St\n"


@pytest.mark.asyncio
async def test_finalize_delivers_once_and_removes(recorder, registry, transcript_client):
    session = registry.create("CA1", caller_number="+15551234")
    recorder.record_agent(session, "Hello Jane")

    await recorder.finalize(session)
    await recorder.finalize(session)

    transcript_client.send_transcript.assert_awaited_once_with("+15551234", "agent: Hello Jane\n")
    assert registry.get("CA1") is None


@pytest.mark.asyncio
async def test_finalize_failure_still_removes(recorder, registry, transcript_client):
    transcript_client.send_transcript.return_value = ToolResult.error_result("TIMEOUT", "slow")
    session = registry.create("CA1")

    await recorder.finalize(session)

    assert registry.get("CA1") is None
    assert session.finalized is True


@pytest.mark.asyncio
async def test_finalize_logs_call_duration(recorder, registry, caplog):
    session = registry.create("CA1", caller_number="+15551234")
    session.created_at = datetime.now(timezone.utc) - timedelta(seconds=90)

    with caplog.at_level(logging.INFO, logger="callbridge.core.transcript"):
        await recorder.finalize(session)

    assert 89 <= call_duration(session) < 120
    assert "Call CA1 ended | caller: +15551234 | duration: " in caplog.text
