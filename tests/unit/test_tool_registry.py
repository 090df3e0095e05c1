import pytest
from pydantic import BaseModel, Field

from reco_agent.agent.registry import ToolContext, ToolRegistry, ToolSpec
from reco_agent.errors import ToolExecutionFailure
from reco_agent.llm import OutputSchema
from reco_agent.state import ConversationState


class EchoInput(BaseModel):
    value: int = Field(ge=1)


def _context() -> ToolContext:
    return ToolContext(ConversationState(conversation_id="c1", user_id="u1"))


def _echo(data: EchoInput, context: ToolContext) -> str:
    return str(data.value)


@pytest.mark.asyncio
async def test_tool_registry_validation() -> None:
    registry = ToolRegistry()
    registry.register(
        ToolSpec(
            name="echo",
            description="echo positive int",
            args_schema=EchoInput,
            handler=_echo,
        )
    )

    assert await registry.execute("echo", {"value": 3}, _context()) == "3"

    with pytest.raises(ToolExecutionFailure):
        await registry.execute("echo", {"value": 0}, _context())
    with pytest.raises(ToolExecutionFailure):
        await registry.execute("missing", {}, _context())


@pytest.mark.asyncio
async def test_async_handlers_are_awaited() -> None:
    registry = ToolRegistry()

    async def _handler(data: EchoInput, context: ToolContext) -> dict[str, object]:
        return {"value": data.value, "user": context.state.user_id}

    registry.register(
        ToolSpec(name="lookup", description="lookup", args_schema=EchoInput, handler=_handler)
    )

    assert await registry.execute("lookup", {"value": 2}, _context()) == {"value": 2, "user": "u1"}


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    spec = ToolSpec(
        name="echo",
        description="echo positive int",
        args_schema=EchoInput,
        handler=_echo,
    )

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)


def test_response_tools_need_a_schema() -> None:
    registry = ToolRegistry()

    with pytest.raises(ValueError):
        registry.register(
            ToolSpec(
                name="answer", description="d", args_schema=EchoInput, handler=_echo, usage="response"
            )
        )

    registry.register(
        ToolSpec(
            name="answer",
            description="d",
            args_schema=EchoInput,
            handler=_echo,
            usage="response",
            response_schema=OutputSchema(name="Answer", schema={"type": "object"}),
        )
    )
    assert registry.usage_of("answer") == "response"
    assert registry.usage_of("unknown") == "context"


def test_tool_descriptions_expose_argument_schema() -> None:
    registry = ToolRegistry()
    registry.register(
        ToolSpec(name="echo", description="echo positive int", args_schema=EchoInput, handler=_echo)
    )

    [description] = registry.tool_descriptions(_context())

    assert description["type"] == "function"
    assert description["function"]["name"] == "echo"
    assert "value" in description["function"]["parameters"]["properties"]
