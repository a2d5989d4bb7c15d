import logging
from callbridge.config.environment import config
from callbridge.tools.automation_client import get_automation_client
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.schemas import (
    ToolContext,
    ToolResult,
    QuestionAndAnswerArgs,
    BookTowArgs
)

logger = logging.getLogger(__name__)

# Shared client
automation_client = get_automation_client()

def _unparsed_error(tool_name: str) -> ToolResult:
    logger.error(f"❌ {tool_name}: automation answered with an unparsable body")
    return ToolResult.error_result("INVALID_RESPONSE", "Automation webhook returned an unparsable body")

async def question_and_answer_tool(args: QuestionAndAnswerArgs, context: ToolContext) -> ToolResult:
    """
    Look up an FAQ answer. Keeps the automation-side thread alive for the rest of the call.
    """
    session = context.session
    result = await automation_client.ask_question(args.question, session.thread_id)
    if not result.success:
        return result
    if not result.parsed:
        return _unparsed_error("question_and_answer")

    thread = result.data.get("thread")
    if thread:
        session.thread_id = thread
        logger.info(f"🧵 Updated thread ID for {context.call_id}: {thread}")

    message = result.data.get("message") or config.get("messages.faq_fallback")
    return ToolResult.success_result(data={"message": message})

async def book_tow_tool(args: BookTowArgs, context: ToolContext) -> ToolResult:
    """
    Book a tow for the caller at the given address.
    """
    result = await automation_client.book_tow(context.session.caller_number, args.address)
    if not result.success:
        return result
    if not result.parsed:
        return _unparsed_error("book_tow")

    message = result.data.get("message") or config.get("messages.tow_fallback")
    return ToolResult.success_result(data={"message": message})

def build_tool_registry() -> ToolRegistry:
    """The fixed tool set advertised to the model on every call."""
    registry = ToolRegistry()

    registry.register(
        name="question_and_answer",
        description="Get answers to customer questions about automotive services and repairs",
        args_model=QuestionAndAnswerArgs,
        follow_up='Respond to the user\'s question "{question}" based on this information: {message}. Be concise and friendly.'
    )(question_and_answer_tool)

    registry.register(
        name="book_tow",
        description="Book a tow service for a customer",
        args_model=BookTowArgs,
        follow_up="Inform the user about the tow booking status: {message}. Be concise and friendly."
    )(book_tow_tool)

    return registry
