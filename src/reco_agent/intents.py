"""Intent tags and model-backed intent classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from reco_agent.llm import (
    OutputSchema,
    PromptContext,
    PromptMessage,
    TextGenerationBackend,
    complete_within,
)
from reco_agent.obs.tracing import Timer
from reco_agent.state import ConversationState
from reco_agent.types import EntityKind, ModelCallTrace

logger = logging.getLogger(__name__)


class IntentKind(str, Enum):
    """Closed set of things a user turn can ask for."""

    PRACTITIONER_REFERENCE = "practitioner_reference"
    ACTIVITY_REFERENCE = "activity_reference"
    PRACTICE_REFERENCE = "practice_reference"
    SUBJECT_QUESTION = "subject_question"
    CONFIRMATION = "confirmation"
    RECOMMENDATION_REQUEST = "recommendation_request"
    ASSESSMENT_ANSWER = "assessment_answer"
    OTHER = "other"


REFERENCE_KINDS: dict[IntentKind, EntityKind] = {
    IntentKind.PRACTITIONER_REFERENCE: EntityKind.PRACTITIONER,
    IntentKind.ACTIVITY_REFERENCE: EntityKind.ACTIVITY,
    IntentKind.PRACTICE_REFERENCE: EntityKind.PRACTICE,
}


class Intent(BaseModel):
    """Classified latest turn."""

    kind: IntentKind = IntentKind.OTHER
    designation: str | None = None
    entity_id: str | None = None
    entity_kind: EntityKind | None = None
    fragments: list[str] = Field(default_factory=list)
    question_index: int | None = None
    refresh_universe: bool = False


@dataclass(slots=True)
class IntentClassification:
    intent: Intent
    model_call: ModelCallTrace | None = None

    @property
    def usage(self) -> int:
        return self.model_call.usage if self.model_call is not None else 0


class IntentClassifier(Protocol):
    async def classify(self, state: ConversationState, message: str) -> IntentClassification:
        """Classify ``message`` given the conversation so far."""


INTENT_SCHEMA = OutputSchema(
    name="TurnIntent",
    schema={
        "type": "object",
        "properties": {
            "kind": {"type": "string", "enum": [kind.value for kind in IntentKind]},
            "designation": {"type": ["string", "null"]},
            "entity_id": {"type": ["string", "null"]},
            "entity_kind": {
                "type": ["string", "null"],
                "enum": [kind.value for kind in EntityKind] + [None],
            },
            "fragments": {"type": "array", "items": {"type": "string"}},
            "question_index": {"type": ["integer", "null"]},
            "refresh_universe": {"type": "boolean"},
        },
        "required": ["kind"],
    },
)

_INTENT_PROMPT = """
Classify the user's latest message for a wellness recommendation assistant.

Kinds:
- practitioner_reference / activity_reference / practice_reference: the user names
  a specific practitioner, activity or practice. Put the name in `designation`
  and any known id in `entity_id`.
- subject_question: an informational question; put the subject in `designation`.
- confirmation: the user confirms a proposed entity; set `entity_kind` when clear.
- recommendation_request: the user wants suggestions; split their situation into
  short standalone `fragments`.
- assessment_answer: an answer to the current intake question.
- other: anything else.
""".strip()


class ModelIntentClassifier:
    """Classifies turns with the text-generation backend.

    A payload that does not validate falls back to ``fallback`` when given,
    otherwise to ``IntentKind.OTHER``. A call exceeding ``timeout_seconds``
    raises :class:`BackendTimeout`.
    """

    def __init__(
        self,
        backend: TextGenerationBackend,
        *,
        fallback: IntentClassifier | None = None,
        history_window: int = 6,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.backend = backend
        self.fallback = fallback
        self.history_window = history_window
        self.timeout_seconds = timeout_seconds

    async def classify(self, state: ConversationState, message: str) -> IntentClassification:
        recent = state.messages[-self.history_window :] if self.history_window else []
        context = PromptContext(
            system=f"{_INTENT_PROMPT}\n\nConversation mode: {state.mode.value}",
            messages=[PromptMessage(m.role, m.content) for m in recent]
            + [PromptMessage("user", message)],
        )
        with Timer() as timer:
            response = await complete_within(
                self.backend, context, INTENT_SCHEMA, timeout_seconds=self.timeout_seconds
            )
        call = ModelCallTrace(
            purpose="intent",
            call_id=response.call_id,
            usage=response.usage,
            latency_ms=timer.elapsed_ms,
        )

        intent: Intent | None = None
        if response.payload is not None:
            try:
                intent = Intent.model_validate(response.payload)
            except ValidationError as exc:
                logger.warning("Intent payload rejected: %s", exc.errors()[:1])
        if intent is None:
            if self.fallback is not None:
                fallback = await self.fallback.classify(state, message)
                return IntentClassification(fallback.intent, call)
            intent = Intent()

        logger.info("Intent classified as %s", intent.kind.value)
        return IntentClassification(intent, call)
