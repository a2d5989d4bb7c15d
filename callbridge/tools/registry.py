import asyncio
import logging
from typing import Any, Dict, List, Optional, Type
from pydantic import BaseModel, ConfigDict, ValidationError
from callbridge.tools.schemas import ToolContext, ToolResult

logger = logging.getLogger(__name__)

class ToolSpec(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_model: Type[BaseModel]
    executor: Any # Callable[[BaseModel, ToolContext], Coroutine[Any, Any, ToolResult]]
    # str.format template for the spoken follow-up; gets the tool args plus {message}
    follow_up: str = "{message}"
    timeout_seconds: Optional[float] = None

class ToolRegistry:
    """
    Instance-based registry for voice tools.
    """
    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}

    def register(
        self,
        name: str,
        description: str,
        args_model: Type[BaseModel],
        follow_up: str = "{message}",
        timeout: Optional[float] = None
    ):
        """Decorator to register a tool implementation."""
        def decorator(func):
            spec = ToolSpec(
                name=name,
                description=description,
                args_model=args_model,
                executor=func,
                follow_up=follow_up,
                timeout_seconds=timeout
            )
            self._tools[name] = spec
            return func
        return decorator

    def get_tool(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    async def execute(self, name: str, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        """
        Execute a tool by name with validation and an optional timeout.
        """
        spec = self._tools.get(name)
        if not spec:
            return ToolResult.error_result("TOOL_NOT_FOUND", f"Tool '{name}' not found")

        try:
            # 1. Pydantic Validation
            validated_args = spec.args_model(**args)
        except ValidationError as e:
            logger.warning(f"Tool {name} validation failed: {e}")
            return ToolResult.error_result("VALIDATION_ERROR", str(e))

        try:
            # 2. Execution (bounded only when the tool asks for it)
            if spec.timeout_seconds is not None:
                return await asyncio.wait_for(
                    spec.executor(validated_args, context),
                    timeout=spec.timeout_seconds
                )
            return await spec.executor(validated_args, context)

        except asyncio.TimeoutError:
            logger.error(f"Tool {name} timed out after {spec.timeout_seconds}s")
            return ToolResult.error_result("TIMEOUT", "Tool execution timed out", retryable=True)

        except Exception as e:
            logger.exception(f"Tool {name} execution failed")
            return ToolResult.error_result("EXECUTION_ERROR", str(e), retryable=False)

    @staticmethod
    def _to_parameters(schema: Dict[str, Any]) -> Dict[str, Any]:
        """Reduces a Pydantic JSON schema to the plain object schema the realtime API expects."""
        properties = {}
        for key, prop in schema.get("properties", {}).items():
            entry = {"type": prop.get("type", "string")}
            if prop.get("description"):
                entry["description"] = prop["description"]
            properties[key] = entry
        return {
            "type": "object",
            "properties": properties,
            "required": schema.get("required", [])
        }

    def get_openai_tools(self) -> List[Dict[str, Any]]:
        """
        Convert registered tools to OpenAI Realtime function declarations.
        """
        tools = []
        for name, spec in self._tools.items():
            tools.append({
                "type": "function",
                "name": name,
                "description": spec.description,
                "parameters": self._to_parameters(spec.args_model.model_json_schema())
            })
        return tools
