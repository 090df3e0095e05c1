"""Structured end-of-conversation summary."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from reco_agent.llm import (
    OutputSchema,
    PromptContext,
    PromptMessage,
    TextGenerationBackend,
    complete_within,
)
from reco_agent.obs.tracing import Timer
from reco_agent.state import ConversationState
from reco_agent.types import ModelCallTrace

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Conversation summary generated automatically."

SUMMARY_SCHEMA = OutputSchema(
    name="ConversationSummary",
    schema={
        "type": "object",
        "properties": {
            "summary": {"type": "string"},
            "userProfile": {
                "type": "object",
                "properties": {
                    "emotionalState": {"type": "string"},
                    "currentNeeds": {"type": "array", "items": {"type": "string"}},
                    "preferences": {"type": "array", "items": {"type": "string"}},
                    "constraints": {"type": "array", "items": {"type": "string"}},
                },
            },
            "recommendedIds": {"type": "array", "items": {"type": "string"}},
            "nextSteps": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["summary"],
    },
)

_SUMMARY_PROMPT = """
You analyse a finished conversation between a user and a wellness
recommendation assistant. Describe the user's state and needs in the first
person ("I feel...", "I need...") and only list recommended ids that appear
below.
""".strip()


@dataclass(slots=True)
class SummaryResult:
    summary: dict[str, Any]
    model_call: ModelCallTrace


def build_summary_context(state: ConversationState) -> PromptContext:
    lines = [_SUMMARY_PROMPT, "", f"Conversation mode: {state.mode.value}"]
    recommended = [*state.recommendations.practices, *state.recommendations.activities]
    if recommended:
        lines.append("Recommended so far:")
        lines.extend(f"- {item.title or item.id} [id={item.id}]" for item in recommended)

    transcript = "\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in state.messages
    )
    return PromptContext(
        system="\n".join(lines),
        messages=[PromptMessage("user", f"Summarize this conversation:\n{transcript}")],
    )


class ConversationSummarizer:
    """One deadline-bound backend call chained on the conversation's last call id.

    An answer without a usable ``summary`` is replaced by a default one. The
    ranked assessment families, when present, are always attached.
    """

    def __init__(self, backend: TextGenerationBackend, *, timeout_seconds: float = 60.0) -> None:
        self.backend = backend
        self.timeout_seconds = timeout_seconds

    async def summarize(self, state: ConversationState) -> SummaryResult:
        with Timer() as timer:
            response = await complete_within(
                self.backend,
                build_summary_context(state),
                SUMMARY_SCHEMA,
                state.previous_call_id,
                timeout_seconds=self.timeout_seconds,
            )

        payload = dict(response.payload or {})
        if not str(payload.get("summary") or "").strip():
            logger.warning("Summary answer unusable for %s; using default", state.conversation_id)
            payload = {"summary": DEFAULT_SUMMARY}
        if state.universe is not None and state.universe.families:
            payload["universe"] = [family.model_dump() for family in state.universe.families]

        return SummaryResult(
            summary=payload,
            model_call=ModelCallTrace(
                purpose="summary",
                call_id=response.call_id,
                usage=response.usage,
                latency_ms=timer.elapsed_ms,
            ),
        )
