import httpx
import pytest
from callbridge.tools.automation_client import AutomationClient
from tests.fakes import RecordingHandler

WEBHOOK = "https://automation.test/hook"

def make_client(handler):
    return AutomationClient(webhook_url=WEBHOOK, timeout=1.0, transport=httpx.MockTransport(handler))

@pytest.mark.asyncio
async def test_json_object_response():
    handler = RecordingHandler(httpx.Response(200, json={"firstMessage": "Hi Jane"}))

    result = await make_client(handler).fetch_first_message("+15551234")

    assert result.success is True
    assert result.parsed is True
    assert result.data == {"firstMessage": "Hi Jane"}
    assert handler.requests == [{"route": "1", "data1": "+15551234", "data2": "empty"}]

@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["Welcome back Jane", "", "[1, 2]"])
async def test_non_object_body_is_flagged_unparsed(body):
    handler = RecordingHandler(httpx.Response(200, text=body))

    result = await make_client(handler).ask_question("Hours?", "")

    assert result.success is True
    assert result.parsed is False
    assert result.data == {"text_response": body}

@pytest.mark.asyncio
async def test_upstream_error():
    handler = RecordingHandler(httpx.Response(503, text="down"))

    result = await make_client(handler).book_tow("+1", "1 Main St")

    assert result.success is False
    assert result.error.code == "UPSTREAM_ERROR"
    assert result.error.retryable is True

@pytest.mark.asyncio
async def test_client_error_not_retryable():
    handler = RecordingHandler(httpx.Response(404, text="missing"))

    result = await make_client(handler).book_tow("+1", "1 Main St")

    assert result.error.code == "UPSTREAM_ERROR"
    assert result.error.retryable is False

@pytest.mark.asyncio
async def test_timeout():
    handler = RecordingHandler(httpx.ReadTimeout("slow"))

    result = await make_client(handler).send_transcript("+1", "user: hi\n")

    assert result.success is False
    assert result.error.code == "TIMEOUT"
    assert handler.requests == [{"route": "2", "data1": "+1", "data2": "user: hi\n"}]

@pytest.mark.asyncio
async def test_transport_error():
    handler = RecordingHandler(httpx.ConnectError("refused"))

    result = await make_client(handler).ask_question("Hours?", "t1")

    assert result.success is False
    assert result.error.code == "TRANSPORT_ERROR"

@pytest.mark.asyncio
async def test_missing_webhook_url():
    handler = RecordingHandler(httpx.Response(200, json={}))
    client = make_client(handler)
    client.webhook_url = ""

    result = await client.ask_question("Hours?", "")

    assert result.error.code == "NOT_CONFIGURED"
    assert handler.requests == []
