"""Text-generation backend contract and the LangChain chat-model adapter."""

from __future__ import annotations

import asyncio
import json
import os
import re
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from reco_agent.errors import BackendError, BackendTimeout
from reco_agent.obs.tracing import estimate_token_count

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*```$", flags=re.DOTALL)


@dataclass(slots=True)
class PromptMessage:
    role: Literal["user", "assistant"]
    content: str


@dataclass(slots=True)
class OutputSchema:
    """Named JSON schema the terminal answer must follow."""

    name: str
    schema: dict[str, Any]


@dataclass(slots=True)
class PromptContext:
    """What is sent to the backend for one call."""

    system: str
    messages: list[PromptMessage] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)

    def with_user_message(self, text: str) -> "PromptContext":
        return replace(self, messages=[*self.messages, PromptMessage("user", text)])

    def without_tools(self) -> "PromptContext":
        return replace(self, tools=[])

    def with_tools(self, tools: list[dict[str, Any]]) -> "PromptContext":
        return replace(self, tools=list(tools))


@dataclass(slots=True)
class ToolCallRequest:
    name: str
    arguments: dict[str, Any]
    call_id: str


@dataclass(slots=True)
class ModelResponse:
    """Structured answer of one backend call."""

    payload: dict[str, Any] | None
    usage: int
    call_id: str
    tool_call_requests: list[ToolCallRequest] = field(default_factory=list)
    raw_text: str = ""


class TextGenerationBackend(Protocol):
    """Black-box completion: prompt + schema -> structured JSON + usage."""

    async def complete(
        self,
        context: PromptContext,
        output_schema: OutputSchema,
        prior_call_id: str | None = None,
    ) -> ModelResponse:
        """Run one model call."""


class LangChainBackend:
    """Adapts a LangChain chat model to :class:`TextGenerationBackend`.

    Chat models are stateless, so ``prior_call_id`` is accepted but the full
    history travels in ``context.messages``.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    async def complete(
        self,
        context: PromptContext,
        output_schema: OutputSchema,
        prior_call_id: str | None = None,
    ) -> ModelResponse:
        del prior_call_id
        messages = _to_langchain_messages(context, output_schema)
        runnable = self.llm.bind_tools(context.tools) if context.tools else self.llm
        try:
            message = await runnable.ainvoke(messages)
        except Exception as exc:
            raise BackendError(f"Model call failed: {exc}") from exc

        text = _message_text(message)
        usage_metadata = getattr(message, "usage_metadata", None) or {}
        usage = int(usage_metadata.get("total_tokens") or 0)
        if usage == 0:
            usage = sum(estimate_token_count(m.content) for m in context.messages) + (
                estimate_token_count(text)
            )

        requests = [
            ToolCallRequest(
                name=str(call["name"]),
                arguments=dict(call.get("args") or {}),
                call_id=str(call.get("id") or uuid.uuid4()),
            )
            for call in getattr(message, "tool_calls", None) or []
        ]
        return ModelResponse(
            payload=parse_json_payload(text) if text else None,
            usage=usage,
            call_id=str(getattr(message, "id", None) or uuid.uuid4()),
            tool_call_requests=requests,
            raw_text=text,
        )


async def complete_within(
    backend: TextGenerationBackend,
    context: PromptContext,
    output_schema: OutputSchema,
    prior_call_id: str | None = None,
    *,
    timeout_seconds: float,
) -> ModelResponse:
    """Run one backend call under a deadline; expiry raises :class:`BackendTimeout`."""

    try:
        return await asyncio.wait_for(
            backend.complete(context, output_schema, prior_call_id),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise BackendTimeout(
            f"{output_schema.name} call timed out after {timeout_seconds}s"
        ) from exc


def create_backend_from_env() -> LangChainBackend | None:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return LangChainBackend(
        ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"), temperature=0)
    )


def parse_json_payload(text: str) -> dict[str, Any] | None:
    """Parse a JSON object answer, tolerating a surrounding code fence."""

    candidate = text.strip()
    match = _FENCE_PATTERN.match(candidate)
    if match:
        candidate = match.group("body")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _to_langchain_messages(
    context: PromptContext, output_schema: OutputSchema
) -> list[BaseMessage]:
    system = (
        f"{context.system}\n\n"
        f"Answer with a single JSON object named {output_schema.name} "
        f"matching this JSON schema:\n{json.dumps(output_schema.schema)}"
    )
    messages: list[BaseMessage] = [SystemMessage(content=system)]
    for message in context.messages:
        if message.role == "assistant":
            messages.append(AIMessage(content=message.content))
        else:
            messages.append(HumanMessage(content=message.content))
    return messages


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts).strip()
    return str(content or "").strip()
