"""Recursive model/tool exchange with cost accounting and one validation retry."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from reco_agent.agent.extraction import (
    RecommendationExtractor,
    extract_recommendations,
    merge_recommendations,
)
from reco_agent.agent.registry import ToolContext, ToolObserver, ToolRegistry
from reco_agent.agent.validation import RESPONSE_SCHEMA, ResponseValidator
from reco_agent.config import OrchestratorConfig
from reco_agent.errors import ResponseValidationError, ToolExecutionFailure
from reco_agent.llm import (
    ModelResponse,
    OutputSchema,
    PromptContext,
    TextGenerationBackend,
    ToolCallRequest,
    complete_within,
)
from reco_agent.obs.tracing import Timer
from reco_agent.state import ConversationState
from reco_agent.types import (
    ExtractedRecommendations,
    ModelCallTrace,
    OrchestrationOutcome,
    ToolInvocationResult,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Accumulator:
    """Threaded through every step of one exchange."""

    cost: int = 0
    depth: int = 0
    call_id: str | None = None
    batches: list[ExtractedRecommendations] = field(default_factory=list)
    model_calls: list[ModelCallTrace] = field(default_factory=list)
    tool_results: list[ToolInvocationResult] = field(default_factory=list)


class ToolOrchestrator:
    """Drives model call -> tools -> model call until a terminal answer.

    After a round that ran a ``usage="response"`` tool, the next call is made
    with that tool's response schema and without tools, and its answer is
    terminal. After a context-only round, tools stay enabled while
    ``recursion_allowed`` holds and fewer than ``max_tool_rounds`` rounds ran.
    Tool requests returned while tools are disabled are ignored.
    """

    def __init__(
        self,
        backend: TextGenerationBackend,
        registry: ToolRegistry,
        *,
        extractor: RecommendationExtractor | None = None,
        validator: ResponseValidator | None = None,
        config: OrchestratorConfig | None = None,
        response_schema: OutputSchema | None = None,
    ) -> None:
        self.backend = backend
        self.registry = registry
        self.extractor = extractor or extract_recommendations
        self.validator = validator or ResponseValidator()
        self.config = config or OrchestratorConfig()
        self.response_schema = response_schema or RESPONSE_SCHEMA

    async def run(
        self,
        state: ConversationState,
        context: PromptContext,
        *,
        recursion_allowed: bool = True,
        use_tools: bool = True,
        tool_observer: ToolObserver | None = None,
    ) -> OrchestrationOutcome:
        tool_context = ToolContext(state, observer=tool_observer)
        acc = _Accumulator(call_id=state.previous_call_id)
        if use_tools:
            context = context.with_tools(self.registry.tool_descriptions(tool_context))

        schema = self.response_schema
        tools_enabled = bool(context.tools)
        retries_left = self.config.max_validation_retries
        purpose = "initial"

        while True:
            response = await self._call_model(
                context if tools_enabled else context.without_tools(), schema, acc, purpose
            )

            if tools_enabled and response.tool_call_requests:
                results = await self._execute_tools(response.tool_call_requests, tool_context)
                acc.depth += 1
                acc.tool_results.extend(results)
                acc.batches.extend(
                    self.extractor(result.tool_name, result.raw_output) for result in results
                )
                context = context.with_user_message(_format_tool_results(results))

                framing = self._response_framing(results)
                if framing is not None:
                    schema = framing
                    tools_enabled = False
                    purpose = "response_framing"
                else:
                    tools_enabled = recursion_allowed and acc.depth < self.config.max_tool_rounds
                    purpose = "after_tools"
                logger.info(
                    "Tool round %d ran %d tools (tools_enabled=%s)",
                    acc.depth,
                    len(results),
                    tools_enabled,
                )
                continue

            extracted = merge_recommendations(acc.batches)
            reasons = self.validator.validate(response.payload, state, extracted.ids())
            if not reasons:
                return self._finish(state, response, extracted, acc)

            if retries_left <= 0:
                raise ResponseValidationError(reasons)
            retries_left -= 1
            logger.warning("Terminal response rejected, retrying once: %s", reasons)
            context = context.with_user_message(_retry_instruction(reasons))
            tools_enabled = False
            purpose = "validation_retry"

    async def _call_model(
        self,
        context: PromptContext,
        schema: OutputSchema,
        acc: _Accumulator,
        purpose: str,
    ) -> ModelResponse:
        with Timer() as timer:
            response = await complete_within(
                self.backend,
                context,
                schema,
                acc.call_id,
                timeout_seconds=self.config.model_timeout_seconds,
            )
        acc.cost += response.usage
        acc.call_id = response.call_id
        acc.model_calls.append(
            ModelCallTrace(
                purpose=purpose,
                call_id=response.call_id,
                usage=response.usage,
                latency_ms=timer.elapsed_ms,
            )
        )
        return response

    async def _execute_tools(
        self, requests: list[ToolCallRequest], tool_context: ToolContext
    ) -> list[ToolInvocationResult]:
        return list(
            await asyncio.gather(
                *(self._execute_tool(request, tool_context) for request in requests)
            )
        )

    async def _execute_tool(
        self, request: ToolCallRequest, tool_context: ToolContext
    ) -> ToolInvocationResult:
        try:
            output = await asyncio.wait_for(
                self.registry.execute(request.name, request.arguments, tool_context),
                timeout=self.config.tool_timeout_seconds,
            )
        except ToolExecutionFailure as exc:
            logger.warning("Tool %s failed: %s", request.name, exc)
            return ToolInvocationResult(
                request.name, request.call_id, f"Error executing {request.name}: {exc}", True
            )
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out", request.name)
            return ToolInvocationResult(
                request.name,
                request.call_id,
                f"Error executing {request.name}: timed out after "
                f"{self.config.tool_timeout_seconds}s",
                True,
            )
        return ToolInvocationResult(request.name, request.call_id, output)

    def _response_framing(self, results: list[ToolInvocationResult]) -> OutputSchema | None:
        for result in results:
            if result.failed or self.registry.usage_of(result.tool_name) != "response":
                continue
            return self.registry.get(result.tool_name).response_schema
        return None

    def _finish(
        self,
        state: ConversationState,
        response: ModelResponse,
        extracted: ExtractedRecommendations,
        acc: _Accumulator,
    ) -> OrchestrationOutcome:
        payload = response.payload or {}
        state.recommendations = merge_recommendations([state.recommendations, extracted])
        state.previous_call_id = acc.call_id
        return OrchestrationOutcome(
            response_text=str(payload.get("response", "")).strip(),
            response_payload=payload,
            extracted_recommendations=extracted,
            accumulated_cost=acc.cost,
            updated_state=state,
            last_call_id=acc.call_id,
            tool_results=acc.tool_results,
            model_calls=acc.model_calls,
        )


def _format_tool_results(results: list[ToolInvocationResult]) -> str:
    lines = ["Tool results:"]
    for result in results:
        lines.append(f"[{result.tool_name} #{result.call_id}] {_render(result.raw_output)}")
    return "\n".join(lines)


def _render(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, default=str)


def _retry_instruction(reasons: list[str]) -> str:
    bullet_list = "\n".join(f"- {reason}" for reason in reasons)
    return (
        "Your previous answer was rejected for these reasons:\n"
        f"{bullet_list}\n"
        "Answer again with a corrected JSON object."
    )
