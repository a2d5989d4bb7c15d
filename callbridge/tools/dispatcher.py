import json
import logging
from typing import Any, Dict, List, Optional
from callbridge.config.environment import config
from callbridge.openai_realtime.client import function_output_event, response_create_event
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.schemas import ToolContext

logger = logging.getLogger(__name__)

def apology_events() -> List[Dict[str, Any]]:
    return [response_create_event(config.get("messages.apology"))]

class FunctionCallDispatcher:
    """
    Turns one `response.function_call_arguments.done` event into the events to inject
    back into the AI leg: a function result plus a spoken follow-up, or a single apology.
    """

    def __init__(self, registry: ToolRegistry, context: ToolContext):
        self.registry = registry
        self.context = context

    async def dispatch(self, event: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        """Returns None for tools we do not know; those are ignored."""
        name = event.get("name")
        call_id = event.get("call_id")
        spec = self.registry.get_tool(name)
        if spec is None:
            logger.warning(f"⚠️ Ignoring call to unknown function '{name}' ({self.context.call_id})")
            return None

        try:
            args = json.loads(event.get("arguments") or "")
            if not isinstance(args, dict):
                raise ValueError(f"expected a JSON object, got {type(args).__name__}")
        except ValueError as e:
            logger.error(f"❌ Could not decode arguments for {name}: {e}")
            return apology_events()

        logger.info(f"🛠️ Tool Call: {name}({args}) for {self.context.call_id}")
        result = await self.registry.execute(name, args, self.context)

        if not result.success:
            logger.error(f"❌ Tool '{name}' failed: {result.error.code}: {result.error.message}")
            return apology_events()

        message = str((result.data or {}).get("message", ""))
        instructions = spec.follow_up.format_map({**args, "message": message})
        logger.info(f"✅ Tool '{name}' succeeded: {message}")
        return [
            function_output_event(call_id, message),
            response_create_event(instructions)
        ]
