"""Small in-test collaborators shared by the test suites."""

from __future__ import annotations

import asyncio
from typing import Any

from reco_agent.llm import ModelResponse, OutputSchema, PromptContext, ToolCallRequest
from reco_agent.types import EntityKind, SearchHit


def make_hit(
    entity_id: str,
    *,
    kind: EntityKind = EntityKind.PRACTICE,
    fused: float = 0.5,
    vector: float | None = None,
    lexical: float | None = None,
    title: str | None = None,
    **metadata: Any,
) -> SearchHit:
    return SearchHit(
        id=entity_id,
        kind=kind,
        fused_score=fused,
        vector_score=vector,
        lexical_score=lexical,
        title=title or entity_id,
        metadata=metadata,
    )


class RecordingSearchBackend:
    """Returns canned hits per query text and records every call."""

    def __init__(
        self,
        table: dict[str, list[SearchHit]] | None = None,
        *,
        default: list[SearchHit] | None = None,
        fail_on: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.table = table or {}
        self.default = default or []
        self.fail_on = fail_on or set()
        self.delay = delay
        self.calls: list[tuple[str, int | None, float]] = []

    async def search(
        self, text: str, *, limit: int | None = None, min_score: float = 0.0
    ) -> list[SearchHit]:
        self.calls.append((text, limit, min_score))
        if self.delay:
            await asyncio.sleep(self.delay)
        if text in self.fail_on:
            raise RuntimeError(f"backend down for {text!r}")
        hits = [hit for hit in self.table.get(text, self.default) if hit.fused_score >= min_score]
        return hits if limit is None else hits[:limit]


class ScriptedBackend:
    """Text-generation backend replaying a fixed list of responses."""

    def __init__(
        self, responses: list[ModelResponse], *, delays: list[float] | None = None
    ) -> None:
        self.responses = list(responses)
        self.delays = list(delays or [])
        self.calls: list[tuple[PromptContext, OutputSchema, str | None]] = []

    async def complete(
        self,
        context: PromptContext,
        output_schema: OutputSchema,
        prior_call_id: str | None = None,
    ) -> ModelResponse:
        self.calls.append((context, output_schema, prior_call_id))
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        if not self.responses:
            raise AssertionError("backend called more often than scripted")
        return self.responses.pop(0)


def answer(text: str, usage: int = 10, call_id: str = "call", **extra: Any) -> ModelResponse:
    return ModelResponse(payload={"response": text, **extra}, usage=usage, call_id=call_id)


def tool_request(
    *calls: tuple[str, dict[str, Any]], usage: int = 10, call_id: str = "call"
) -> ModelResponse:
    return ModelResponse(
        payload=None,
        usage=usage,
        call_id=call_id,
        tool_call_requests=[
            ToolCallRequest(name=name, arguments=args, call_id=f"{call_id}-{index}")
            for index, (name, args) in enumerate(calls)
        ],
    )
