import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from reco_agent.errors import BackendError
from reco_agent.llm import (
    LangChainBackend,
    OutputSchema,
    PromptContext,
    PromptMessage,
    create_backend_from_env,
    parse_json_payload,
)

SCHEMA = OutputSchema(name="AssistantResponse", schema={"type": "object"})


class _FakeChatModel:
    def __init__(self, reply: AIMessage | Exception) -> None:
        self.reply = reply
        self.bound_tools: list[dict[str, object]] | None = None
        self.received: list[object] = []

    def bind_tools(self, tools):
        self.bound_tools = tools
        return self

    async def ainvoke(self, messages):
        self.received = messages
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def test_parse_json_payload_tolerates_code_fences() -> None:
    assert parse_json_payload('```json\n{"response": "hi"}\n```') == {"response": "hi"}
    assert parse_json_payload("not json") is None
    assert parse_json_payload("[1, 2]") is None


@pytest.mark.asyncio
async def test_langchain_backend_maps_message_usage_and_tool_calls() -> None:
    model = _FakeChatModel(
        AIMessage(
            content='{"response": "hello"}',
            id="msg-1",
            tool_calls=[{"name": "catalog", "args": {"query": "yoga"}, "id": "tc-1"}],
            usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        )
    )
    context = PromptContext(
        system="Be helpful",
        messages=[PromptMessage("assistant", "Hi"), PromptMessage("user", "Yoga?")],
        tools=[{"type": "function", "function": {"name": "catalog"}}],
    )

    response = await LangChainBackend(model).complete(context, SCHEMA)

    assert response.payload == {"response": "hello"}
    assert response.usage == 15
    assert response.call_id == "msg-1"
    assert [(r.name, r.arguments, r.call_id) for r in response.tool_call_requests] == [
        ("catalog", {"query": "yoga"}, "tc-1")
    ]
    assert model.bound_tools == context.tools
    assert isinstance(model.received[0], SystemMessage)
    assert "AssistantResponse" in model.received[0].content
    assert isinstance(model.received[1], AIMessage)
    assert isinstance(model.received[2], HumanMessage)


@pytest.mark.asyncio
async def test_langchain_backend_wraps_failures() -> None:
    backend = LangChainBackend(_FakeChatModel(RuntimeError("rate limited")))

    with pytest.raises(BackendError):
        await backend.complete(PromptContext(system="s"), SCHEMA)


def test_no_api_key_means_no_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert create_backend_from_env() is None
