from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging
import json
import asyncio
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4
from callbridge.config.environment import config
from callbridge.core.session_store import SessionRegistry, get_session_registry
from callbridge.core.transcript import TranscriptRecorder
from callbridge.openai_realtime.client import (
    OpenAIRealtimeClient,
    RelayEvent,
    RelayEventKind,
    audio_append_event,
    response_create_event,
    user_text_event
)
from callbridge.tools.automation_client import get_automation_client
from callbridge.tools.automotive import build_tool_registry
from callbridge.tools.dispatcher import FunctionCallDispatcher, apology_events
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.schemas import ToolContext

router = APIRouter()
logger = logging.getLogger(__name__)

class RelayState(Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"

class GreetingGate:
    """
    Releases the greeting exactly once: the moment the AI leg is ready AND a greeting is
    pending, whichever of the two happens last.
    """

    def __init__(self):
        self.ready = False
        self.pending: Optional[str] = None
        self.delivered = False

    def offer(self, text: str) -> Optional[str]:
        if self.delivered:
            logger.debug("Greeting already delivered, ignoring new one")
            return None
        self.pending = text
        return self._release()

    def mark_ready(self) -> Optional[str]:
        self.ready = True
        return self._release()

    def _release(self) -> Optional[str]:
        if not (self.ready and self.pending is not None):
            return None
        text, self.pending = self.pending, None
        self.delivered = True
        return text

def extract_agent_transcript(event: Dict[str, Any]) -> Optional[str]:
    """Spoken text of a `response.done`, if the response produced any audio."""
    output = (event.get("response") or {}).get("output") or []
    for item in output:
        for content in item.get("content") or []:
            if content.get("transcript"):
                return content["transcript"]
    return None

class MediaRelay:
    """
    Per-call bridge between a Twilio Media Stream and an OpenAI Realtime session.

    Both legs and finished tool calls post RelayEvents into one mailbox that is drained
    strictly in order, so per-leg ordering holds and no locking is needed.
    """

    def __init__(
        self,
        websocket,
        call_id: Optional[str] = None,
        registry: Optional[SessionRegistry] = None,
        recorder: Optional[TranscriptRecorder] = None,
        tool_registry: Optional[ToolRegistry] = None,
        ai_client_factory=OpenAIRealtimeClient
    ):
        self.websocket = websocket
        self.registry = registry or get_session_registry()
        self.recorder = recorder or TranscriptRecorder(get_automation_client(), self.registry)
        self.tool_registry = tool_registry or build_tool_registry()
        self.events: asyncio.Queue = asyncio.Queue()
        self.ai_client = ai_client_factory(self.events, tools=self.tool_registry.get_openai_tools())

        self.state = RelayState.CONNECTING
        self.gate = GreetingGate()
        self.stream_sid: Optional[str] = None
        self.twilio_open = True
        self.tool_tasks: set = set()
        self.log_event_types = set(config.get("openai.log_event_types", []))

        # Provisional record until the start event names the real CallSid
        self.session = self.registry.get_or_create(call_id or f"session_{uuid4().hex[:12]}")

    async def run(self):
        reader_task = asyncio.create_task(self._read_twilio(), name="Twilio_Reader_Task")
        ai_task = asyncio.create_task(self.ai_client.run(), name="OpenAI_Client_Task")
        try:
            while self.state not in (RelayState.CLOSING, RelayState.CLOSED):
                event = await self.events.get()
                try:
                    await self._handle(event)
                except Exception as e:
                    # A frame with an unexpected shape costs that frame only
                    logger.warning(
                        f"⚠️ Dropped {event.kind.name} event ({self.session.call_id}): {e}",
                        exc_info=True
                    )
        except Exception as e:
            logger.error(f"❌ Media relay crashed ({self.session.call_id}): {e}", exc_info=True)
        finally:
            await self._shutdown(reader_task, ai_task)

    async def _handle(self, event: RelayEvent):
        kind = event.kind
        if kind == RelayEventKind.TWILIO_MESSAGE:
            await self._on_twilio_message(event.payload)
        elif kind == RelayEventKind.AI_MESSAGE:
            await self._on_ai_message(event.payload)
        elif kind == RelayEventKind.AI_READY:
            await self._on_ai_ready()
        elif kind == RelayEventKind.TOOL_RESULT:
            for ai_event in event.payload:
                await self.ai_client.send(ai_event)
        elif kind == RelayEventKind.TWILIO_CLOSED:
            self._begin_close("telephony leg closed")
        elif kind == RelayEventKind.AI_CLOSED:
            self._begin_close("AI leg closed")

    def _begin_close(self, reason: str):
        if self.state in (RelayState.CLOSING, RelayState.CLOSED):
            return
        logger.info(f"🛑 Closing call {self.session.call_id}: {reason}")
        self.state = RelayState.CLOSING

    # --- Telephony leg ---

    async def _read_twilio(self):
        try:
            while True:
                message = await self.websocket.receive_text()
                await self.events.put(RelayEvent(RelayEventKind.TWILIO_MESSAGE, message))
        except WebSocketDisconnect:
            self.twilio_open = False
            logger.info(f"🔌 Client disconnected ({self.session.call_id}).")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.twilio_open = False
            logger.error(f"❌ Error reading from Twilio: {e}")
        await self.events.put(RelayEvent(RelayEventKind.TWILIO_CLOSED))

    async def _on_twilio_message(self, message: str):
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️ Error parsing message: {e} Message: {message[:200]!r}")
            return
        if not isinstance(data, dict):
            logger.warning(f"⚠️ Unexpected Twilio frame: {message[:200]!r}")
            return

        event = data.get("event")
        if event == "media":
            payload = (data.get("media") or {}).get("payload")
            if payload:
                await self.ai_client.send(audio_append_event(payload))
        elif event == "start":
            await self._on_start(data.get("start") or {})
        elif event == "stop":
            logger.info(f"🛑 Stream Stopped ({self.session.call_id})")
            self._begin_close("stop event")
        elif event in ("connected", "mark"):
            logger.debug(f"Twilio event: {event}")
        else:
            logger.debug(f"Unhandled Twilio event: {event}")

    async def _on_start(self, start: Dict[str, Any]):
        self.stream_sid = start.get("streamSid")
        call_sid = start.get("callSid")
        custom_params = start.get("customParameters") or {}

        logger.info(f"🏁 Stream Started: CallSid={call_sid} StreamSid={self.stream_sid}")
        logger.info(f"Custom Parameters: {custom_params}")

        if call_sid:
            self._attach(call_sid)

        session = self.session
        session.stream_sid = self.stream_sid
        caller_number = custom_params.get("callerNumber")
        if caller_number:
            session.caller_number = caller_number

        first_message = (
            custom_params.get("firstMessage")
            or session.first_message
            or config.get("messages.stream_greeting")
        )
        session.first_message = first_message
        logger.info(f"📞 Caller Number: {session.caller_number} | First Message: {first_message}")

        # Held until the AI leg is ready
        greeting = self.gate.offer(first_message)
        if greeting:
            await self._deliver_greeting(greeting)

    def _attach(self, call_sid: str):
        """Move from the provisional record to the one the call-setup handshake registered."""
        provisional = self.session
        if provisional.call_id == call_sid:
            return
        session = self.registry.get_or_create(call_sid)
        session.transcript.extend(provisional.transcript)
        session.thread_id = session.thread_id or provisional.thread_id
        self.registry.delete(provisional.call_id)
        self.session = session

    async def _send_to_twilio(self, payload: str):
        if not self.twilio_open:
            return
        if not self.stream_sid:
            logger.debug("No streamSid yet, dropping outbound audio")
            return
        try:
            await self.websocket.send_json({
                "event": "media",
                "streamSid": self.stream_sid,
                "media": {"payload": payload}
            })
        except Exception as e:
            logger.warning(f"⚠️ Error sending audio to Twilio: {e}")

    # --- AI leg ---

    async def _on_ai_ready(self):
        logger.info(f"🤖 OpenAI session configured ({self.session.call_id})")
        greeting = self.gate.mark_ready()
        if greeting:
            await self._deliver_greeting(greeting)

    async def _deliver_greeting(self, text: str):
        logger.info(f"👋 Sending first message: {text}")
        await self.ai_client.send(user_text_event(text))
        await self.ai_client.send(response_create_event())
        self.state = RelayState.ACTIVE

    async def _on_ai_message(self, message):
        try:
            response = json.loads(message)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"⚠️ Error processing OpenAI message: {e} Raw message: {str(message)[:200]!r}")
            return
        if not isinstance(response, dict):
            return

        event_type = response.get("type")
        if event_type in self.log_event_types:
            logger.info(f"Received event: {event_type}")
            logger.debug(f"Event payload: {response}")

        if event_type == "response.audio.delta":
            if response.get("delta"):
                await self._send_to_twilio(response["delta"])

        elif event_type == "response.function_call_arguments.done":
            logger.info(f"🛠️ Function called: {response.get('name')}")
            self._spawn_tool_call(response)

        elif event_type == "response.done":
            agent_message = extract_agent_transcript(response)
            if agent_message:
                self.recorder.record_agent(self.session, agent_message)
            else:
                logger.debug("response.done without spoken output")

        elif event_type == "conversation.item.input_audio_transcription.completed":
            user_message = (response.get("transcript") or "").strip()
            if user_message:
                self.recorder.record_user(self.session, user_message)

        elif event_type == "error":
            logger.error(f"❌ OpenAI error: {response.get('error')}")

    def _spawn_tool_call(self, event: Dict[str, Any]):
        """Run the automation round trip off the relay loop; the result comes back via the mailbox."""
        dispatcher = FunctionCallDispatcher(
            self.tool_registry,
            ToolContext(call_id=self.session.call_id, session=self.session)
        )

        async def run_tool():
            try:
                events = await dispatcher.dispatch(event)
            except Exception as e:
                logger.error(f"❌ Function dispatch failed: {e}", exc_info=True)
                events = apology_events()
            if events:
                await self.events.put(RelayEvent(RelayEventKind.TOOL_RESULT, events))

        task = asyncio.create_task(run_tool(), name=f"Tool_{event.get('name')}")
        self.tool_tasks.add(task)
        task.add_done_callback(self.tool_tasks.discard)

    # --- Teardown ---

    async def _shutdown(self, reader_task: asyncio.Task, ai_task: asyncio.Task):
        if self.state == RelayState.CLOSED:
            return
        self.state = RelayState.CLOSING

        tasks = [reader_task, ai_task, *self.tool_tasks]
        for task in tasks:
            task.cancel()

        await self.ai_client.close()
        if self.twilio_open:
            self.twilio_open = False
            try:
                await self.websocket.close()
            except Exception as e:
                logger.debug(f"Twilio socket already closed: {e}")

        await asyncio.gather(*tasks, return_exceptions=True)

        try:
            await self.recorder.finalize(self.session)
        except Exception as e:
            logger.error(f"❌ Transcript flush failed ({self.session.call_id}): {e}", exc_info=True)
        finally:
            self.state = RelayState.CLOSED
            logger.info(f"👋 Media Stream Cleanup Complete ({self.session.call_id})")

@router.websocket("/media-stream")
async def media_stream(websocket: WebSocket):
    """Handle Twilio Media Stream WebSocket and Bridge to OpenAI."""
    logger.info("🔌 Client connected to media-stream")
    await websocket.accept()

    relay = MediaRelay(websocket, call_id=websocket.headers.get("x-twilio-call-sid"))
    await relay.run()
