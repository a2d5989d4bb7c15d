from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

class ToolContext(BaseModel):
    """
    Context passed to every tool execution.
    Carries the live session so tools can read the caller and keep the FAQ thread.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    call_id: str
    session: Any # CallSession, shared by reference so tools can update it

class ToolError(BaseModel):
    code: str
    message: str
    retryable: bool = False

class ToolResult(BaseModel):
    """
    Standard output envelope for all tools.
    """
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[ToolError] = None
    meta: Optional[Dict[str, Any]] = None

    @classmethod
    def success_result(cls, data: Dict[str, Any], meta: Dict[str, Any] = None):
        return cls(success=True, data=data, meta=meta)

    @classmethod
    def error_result(cls, code: str, message: str, retryable: bool = False):
        return cls(
            success=False,
            error=ToolError(code=code, message=message, retryable=retryable)
        )

    @property
    def parsed(self) -> bool:
        """False when the upstream answered 2xx with a body that was not a JSON object."""
        return not (self.meta and self.meta.get("parsed") is False)

# --- Tool Input Models ---

class QuestionAndAnswerArgs(BaseModel):
    question: str = Field(..., description="The customer's question, in their own words.")

class BookTowArgs(BaseModel):
    address: str = Field(..., description="Street address where the vehicle should be picked up.")
