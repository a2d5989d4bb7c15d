import logging
from datetime import datetime, timezone
from typing import Optional
from callbridge.core.session import CallSession
from callbridge.core.session_store import SessionRegistry
from callbridge.tools.automation_client import AutomationClient

logger = logging.getLogger(__name__)

AGENT_LABEL = "agent"
USER_LABEL = "user"

def call_duration(session: CallSession) -> float:
    """Seconds since the session was registered."""
    return (datetime.now(timezone.utc) - session.created_at).total_seconds()

class TranscriptRecorder:
    """
    Appends labelled lines to a session's transcript and delivers it when the call ends.
    """

    def __init__(self, automation_client: AutomationClient, registry: SessionRegistry):
        self.automation_client = automation_client
        self.registry = registry

    def record_agent(self, session: CallSession, text: str):
        session.transcript.append(f"{AGENT_LABEL}: {text}")
        logger.info(f"🤖 Agent ({session.call_id}): {text}")

    def record_user(self, session: CallSession, text: str):
        session.transcript.append(f"{USER_LABEL}: {text}")
        logger.info(f"🗣️ User ({session.call_id}): {text}")

    @staticmethod
    def render(session: CallSession) -> str:
        return "".join(f"{line}\n" for line in session.transcript)

    async def finalize(self, session: Optional[CallSession]):
        """
        Best-effort delivery of the full transcript, then drop the session.
        Runs at most once per session.
        """
        if session is None or session.finalized:
            return
        session.finalized = True

        transcript = self.render(session)
        logger.info(f"📝 Full transcript ({session.call_id}):\n{transcript}")
        logger.info(
            f"📞 Call {session.call_id} ended | caller: {session.caller_number} "
            f"| duration: {call_duration(session):.1f}s"
        )

        try:
            result = await self.automation_client.send_transcript(session.caller_number, transcript)
            if not result.success:
                logger.error(f"❌ Transcript delivery failed for {session.call_id}: {result.error.message}")
        finally:
            self.registry.delete(session.call_id)
