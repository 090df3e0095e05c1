"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Literal

from langchain_core.tools import StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, ConfigDict, ValidationError

from reco_agent.errors import ToolExecutionFailure
from reco_agent.llm import OutputSchema
from reco_agent.state import ConversationState
from reco_agent.types import ToolTrace

ToolUsage = Literal["context", "response"]
ToolObserver = Callable[[ToolTrace], None]


@dataclass(slots=True)
class ToolContext:
    """Read-only view of the conversation handed to tool handlers.

    ``observer`` receives one :class:`ToolTrace` per execution made with this
    context.
    """

    state: ConversationState
    observer: ToolObserver | None = None


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation.

    ``usage="response"`` marks tools whose output is the answer itself; the
    orchestrator then frames the next model call with ``response_schema``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel, ToolContext], Any]
    usage: ToolUsage = "context"
    response_schema: OutputSchema | None = None

    async def invoke(self, payload: dict[str, Any], context: ToolContext) -> Any:
        data = self.args_schema.model_validate(payload)
        output = self.handler(data, context)
        if inspect.isawaitable(output):
            output = await output
        return output


class ToolRegistry:
    """Stores tool specs and exports LangChain-compatible tool objects."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        if spec.usage == "response" and spec.response_schema is None:
            raise ValueError(f"Response tool {spec.name} needs a response_schema")
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise ToolExecutionFailure(name, "unknown tool")
        return spec

    def usage_of(self, name: str) -> ToolUsage:
        spec = self._tools.get(name)
        return spec.usage if spec is not None else "context"

    async def execute(
        self, name: str, payload: dict[str, Any], context: ToolContext
    ) -> Any:
        """Run one tool; any failure surfaces as :class:`ToolExecutionFailure`."""

        return await self._execute_spec(self.get(name), payload, context)

    def as_langchain_tools(self, context: ToolContext) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec, context),
                )
            )
        return tools

    def tool_descriptions(self, context: ToolContext) -> list[dict[str, Any]]:
        """OpenAI-style function descriptions for ``PromptContext.tools``."""

        return [convert_to_openai_tool(tool) for tool in self.as_langchain_tools(context)]

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def _build_coroutine(self, spec: ToolSpec, context: ToolContext) -> Callable[..., Any]:
        async def _callable(**kwargs: Any) -> Any:
            return await self._execute_spec(spec, kwargs, context)

        return _callable

    async def _execute_spec(
        self, spec: ToolSpec, payload: dict[str, Any], context: ToolContext
    ) -> Any:
        start = perf_counter()
        failed = True
        output: Any = "cancelled"
        try:
            output = await spec.invoke(payload, context)
            failed = False
        except ValidationError as exc:
            output = f"invalid arguments: {exc.errors()[:1]}"
            raise ToolExecutionFailure(spec.name, output) from exc
        except ToolExecutionFailure as exc:
            output = str(exc)
            raise
        except Exception as exc:
            output = str(exc)
            raise ToolExecutionFailure(spec.name, output) from exc
        finally:
            latency_ms = (perf_counter() - start) * 1000.0
            if context.observer is not None:
                context.observer(
                    ToolTrace(
                        name=spec.name,
                        input_payload=payload,
                        output_preview=f"ERROR {output}"[:320] if failed else _preview(output),
                        latency_ms=latency_ms,
                        failed=failed,
                    )
                )
        return output


def _preview(output: Any) -> str:
    text = output if isinstance(output, str) else json.dumps(output, default=str)
    return text[:320]

