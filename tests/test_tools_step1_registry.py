import pytest
import asyncio
from pydantic import BaseModel
from callbridge.core.session import CallSession
from callbridge.tools.automotive import build_tool_registry
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.schemas import ToolContext, ToolResult

# Mock Tools
class MockArgs(BaseModel):
    foo: str

async def mock_executor(args: MockArgs, context: ToolContext) -> ToolResult:
    if args.foo == "error":
        raise RuntimeError("Boom")
    return ToolResult.success_result({"message": f"processed {args.foo}"})

async def slow_executor(args: MockArgs, context: ToolContext) -> ToolResult:
    await asyncio.sleep(0.2)
    return ToolResult.success_result({"message": "done"})

@pytest.fixture
def ctx():
    return ToolContext(call_id="CA1", session=CallSession(call_id="CA1"))

@pytest.mark.asyncio
async def test_registry_registration_and_get():
    registry = ToolRegistry()

    registry.register(
        name="test_tool",
        description="A test tool",
        args_model=MockArgs,
        follow_up="Say {message}"
    )(mock_executor)

    spec = registry.get_tool("test_tool")
    assert spec is not None
    assert spec.name == "test_tool"
    assert spec.description == "A test tool"
    assert spec.args_model == MockArgs
    assert spec.follow_up == "Say {message}"
    assert spec.timeout_seconds is None
    assert registry.get_tool("missing") is None

@pytest.mark.asyncio
async def test_execution_success(ctx):
    registry = ToolRegistry()
    registry.register("test_tool", "desc", MockArgs)(mock_executor)

    result = await registry.execute("test_tool", {"foo": "bar"}, ctx)
    assert result.success is True
    assert result.data["message"] == "processed bar"

@pytest.mark.asyncio
async def test_execution_validation_error(ctx):
    registry = ToolRegistry()
    registry.register("test_tool", "desc", MockArgs)(mock_executor)

    # Missing required 'foo'
    result = await registry.execute("test_tool", {}, ctx)
    assert result.success is False
    assert result.error.code == "VALIDATION_ERROR"

@pytest.mark.asyncio
async def test_execution_exception_is_wrapped(ctx):
    registry = ToolRegistry()
    registry.register("test_tool", "desc", MockArgs)(mock_executor)

    result = await registry.execute("test_tool", {"foo": "error"}, ctx)
    assert result.success is False
    assert result.error.code == "EXECUTION_ERROR"
    assert "Boom" in result.error.message

@pytest.mark.asyncio
async def test_unknown_tool(ctx):
    result = await ToolRegistry().execute("nope", {}, ctx)
    assert result.success is False
    assert result.error.code == "TOOL_NOT_FOUND"

@pytest.mark.asyncio
async def test_execution_timeout(ctx):
    registry = ToolRegistry()
    registry.register("slow_tool", "desc", MockArgs, timeout=0.1)(slow_executor)

    result = await registry.execute("slow_tool", {"foo": "bar"}, ctx)
    assert result.success is False
    assert result.error.code == "TIMEOUT"
    assert result.error.retryable is True

@pytest.mark.asyncio
async def test_no_timeout_unless_requested(ctx):
    registry = ToolRegistry()
    registry.register("slow_tool", "desc", MockArgs)(slow_executor)

    result = await registry.execute("slow_tool", {"foo": "bar"}, ctx)
    assert result.success is True

def test_openai_declarations_for_builtin_tools():
    tools = build_tool_registry().get_openai_tools()

    assert [t["name"] for t in tools] == ["question_and_answer", "book_tow"]
    qa, tow = tools
    assert qa["type"] == "function"
    assert qa["description"] == "Get answers to customer questions about automotive services and repairs"
    assert qa["parameters"]["type"] == "object"
    assert qa["parameters"]["properties"]["question"]["type"] == "string"
    assert qa["parameters"]["required"] == ["question"]
    assert tow["description"] == "Book a tow service for a customer"
    assert tow["parameters"]["properties"]["address"]["type"] == "string"
    assert tow["parameters"]["required"] == ["address"]
