import pytest
from unittest.mock import AsyncMock, MagicMock
from callbridge.core.session_store import SessionRegistry
from callbridge.core.transcript import TranscriptRecorder
from callbridge.tools.schemas import ToolResult


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def transcript_client():
    client = MagicMock()
    client.send_transcript = AsyncMock(return_value=ToolResult.success_result(data={}))
    return client


@pytest.fixture
def recorder(transcript_client, registry):
    return TranscriptRecorder(transcript_client, registry)
