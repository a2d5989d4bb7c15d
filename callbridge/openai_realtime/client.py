import asyncio
import logging
import json
import websockets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from callbridge.config.environment import config

logger = logging.getLogger(__name__)

REALTIME_URL = "wss://api.openai.com/v1/realtime?model="

class RelayEventKind(Enum):
    TWILIO_MESSAGE = "twilio_message"
    TWILIO_CLOSED = "twilio_closed"
    AI_READY = "ai_ready"
    AI_MESSAGE = "ai_message"
    AI_CLOSED = "ai_closed"
    TOOL_RESULT = "tool_result"

@dataclass
class RelayEvent:
    """One entry of a call's mailbox; both legs and tool tasks post these."""
    kind: RelayEventKind
    payload: Any = None

# --- Outbound event builders ---

def user_text_event(text: str) -> Dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": text}]
        }
    }

def function_output_event(call_id: Optional[str], output: str) -> Dict[str, Any]:
    item = {"type": "function_call_output", "output": output}
    if call_id:
        item["call_id"] = call_id
    return {"type": "conversation.item.create", "item": item}

def response_create_event(instructions: Optional[str] = None) -> Dict[str, Any]:
    if instructions is None:
        return {"type": "response.create"}
    return {
        "type": "response.create",
        "response": {
            "modalities": ["text", "audio"],
            "instructions": instructions
        }
    }

def audio_append_event(payload: str) -> Dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload}

def build_session_update(tools: List[Dict[str, Any]], instructions: Optional[str] = None) -> Dict[str, Any]:
    """The one-time configuration sent right after the socket opens."""
    audio_format = config.get("openai.audio_format", "g711_ulaw")
    return {
        "type": "session.update",
        "session": {
            "turn_detection": {"type": "server_vad"},
            # Same companded 8kHz format Twilio streams, so no transcoding
            "input_audio_format": audio_format,
            "output_audio_format": audio_format,
            "voice": config.get("openai.voice_name", "alloy"),
            "instructions": instructions or config.get_system_instruction() or "You are a helpful assistant.",
            "modalities": ["text", "audio"],
            "temperature": config.get("openai.temperature", 0.8),
            "input_audio_transcription": {
                "model": config.get("openai.transcription_model", "whisper-1")
            },
            "tools": tools,
            "tool_choice": "auto"
        }
    }

class OpenAIRealtimeClient:
    """
    Owns the per-call connection to the OpenAI Realtime API.

    Inbound frames are posted, untouched, to the call's mailbox as AI_MESSAGE events.
    Outbound events passed to send() before the session is configured are held and
    flushed in order once it is.
    """

    def __init__(
        self,
        events_queue: asyncio.Queue,
        tools: Optional[List[Dict[str, Any]]] = None,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
        instructions: Optional[str] = None
    ):
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model_id = model_id or config.get("openai.model_id", "gpt-4o-realtime-preview-2024-10-01")
        self.events_queue = events_queue
        self.tools = tools or []
        self.instructions = instructions
        self.websocket = None
        self.ready = False
        self.closed = False
        self._held: List[Dict[str, Any]] = []

    async def run(self):
        """
        Connect, configure and pump inbound frames until the link drops.
        No reconnection: whatever ends the loop ends the AI leg for this call.
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1"
        }
        ws_url = REALTIME_URL + self.model_id
        logger.info(f"Connecting to OpenAI Realtime (Model: {self.model_id})...")

        try:
            async with websockets.connect(ws_url, additional_headers=headers) as websocket:
                self.websocket = websocket
                logger.info("✅ Connected to the OpenAI Realtime API")

                if self.closed:
                    return

                session_update = build_session_update(self.tools, self.instructions)
                logger.info(f"🔧 Sending session update with {len(self.tools)} tools")
                logger.debug(f"Session update: {json.dumps(session_update)}")
                await websocket.send(json.dumps(session_update))

                await self._flush_held()
                await self.events_queue.put(RelayEvent(RelayEventKind.AI_READY))

                async for message in websocket:
                    await self.events_queue.put(RelayEvent(RelayEventKind.AI_MESSAGE, message))

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Error in the OpenAI WebSocket: {e}")
        finally:
            self.ready = False
            self.websocket = None
            logger.info("OpenAI connection closed")
            await self.events_queue.put(RelayEvent(RelayEventKind.AI_CLOSED))

    async def _flush_held(self):
        if self._held:
            logger.info(f"📤 Flushing {len(self._held)} held event(s) to OpenAI")
        # Events queued while flushing are picked up by the same loop, keeping order
        while self._held:
            await self._transmit(self._held.pop(0))
        self.ready = True

    async def _transmit(self, event: Dict[str, Any]):
        try:
            await self.websocket.send(json.dumps(event))
        except Exception as e:
            logger.warning(f"⚠️ Dropping {event.get('type')} event, OpenAI link unavailable: {e}")

    async def send(self, event: Dict[str, Any]):
        """Send an event, holding it until the session is configured."""
        if self.closed:
            logger.debug(f"Link closed, dropping {event.get('type')}")
            return
        if not self.ready or self.websocket is None:
            self._held.append(event)
            return
        await self._transmit(event)

    async def close(self):
        if self.closed:
            return
        self.closed = True
        self._held = []
        if self.websocket is not None:
            try:
                await self.websocket.close()
            except Exception as e:
                logger.debug(f"Error closing OpenAI socket: {e}")
