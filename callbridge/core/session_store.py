import logging
from functools import lru_cache
from typing import Dict, Optional
from callbridge.core.session import CallSession

logger = logging.getLogger(__name__)

class SessionRegistry:
    """
    In-memory CallSid -> CallSession map.
    Only touched from the event loop, so each call is atomic per key.
    """
    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}

    def get(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    def create(self, call_id: str, **fields) -> CallSession:
        """Registers a fresh session, replacing any stale record for the same call id."""
        session = CallSession(call_id=call_id, **fields)
        self._sessions[call_id] = session
        logger.debug(f"🗂️ Session registered: {call_id}")
        return session

    def get_or_create(self, call_id: str) -> CallSession:
        session = self._sessions.get(call_id)
        if session is None:
            session = self.create(call_id)
        return session

    def delete(self, call_id: str) -> None:
        if self._sessions.pop(call_id, None) is not None:
            logger.debug(f"🗑️ Session removed: {call_id}")

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    return SessionRegistry()
