from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

@dataclass
class CallSession:
    call_id: str
    caller_number: str = "Unknown"
    stream_sid: Optional[str] = None
    first_message: Optional[str] = None
    # FAQ correlation token handed back by the automation endpoint
    thread_id: str = ""
    transcript: List[str] = field(default_factory=list)
    call_details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finalized: bool = False
