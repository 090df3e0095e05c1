"""Deterministic intent classification and answers when no language model is configured."""

from __future__ import annotations

import re
import uuid

from reco_agent.fragments import split_fragments
from reco_agent.intents import Intent, IntentClassification, IntentKind
from reco_agent.llm import ModelResponse, OutputSchema, PromptContext
from reco_agent.obs.tracing import estimate_token_count
from reco_agent.state import ConversationMode, ConversationState
from reco_agent.summary import SUMMARY_SCHEMA
from reco_agent.types import EntityKind

_CONFIRMATION = re.compile(
    r"^\s*(?:yes|yeah|yep|sure|correct|exactly|right|confirmed?|ok(?:ay)?|"
    r"that(?:'s| is) (?:it|the one|right))\b",
    re.IGNORECASE,
)
_KIND_WORDS: dict[EntityKind, re.Pattern[str]] = {
    EntityKind.PRACTITIONER: re.compile(
        r"\b(?:practitioner|therapist|coach|teacher|instructor)\b", re.IGNORECASE
    ),
    EntityKind.ACTIVITY: re.compile(r"\b(?:activity|session|class|workshop)\b", re.IGNORECASE),
    EntityKind.PRACTICE: re.compile(r"\b(?:practice|discipline|method)\b", re.IGNORECASE),
}
_QUOTED = re.compile(r"[\"“«](?P<name>[^\"”»]{2,80})[\"”»]")
_NAMED_AFTER = re.compile(
    r"\b(?i:practitioner|therapist|coach|teacher|instructor|activity|session|class|workshop|"
    r"practice|discipline|method)\s+(?:called\s+|named\s+)?(?P<name>[A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*)"
)
_ID_HINT = re.compile(r"(?:\bid\b\s*[:=#]?\s*|#)(?P<id>[A-Za-z0-9_-]{3,})", re.IGNORECASE)
_QUESTION = re.compile(
    r"^\s*(?:what|how|why|when|is|are|can|does|do|should)\b.*\?\s*$", re.IGNORECASE | re.DOTALL
)
_RECOMMEND = re.compile(
    r"\b(?:recommend|suggest|looking for|help me|i need|i want|advice)\b", re.IGNORECASE
)


class KeywordIntentClassifier:
    """Pattern-based classifier with the same contract as the model classifier.

    Used for local and offline environments where ``OPENAI_API_KEY`` is not
    configured, and as the fallback for unusable model payloads. Rules are
    checked in order: confirmation, pending intake question, named entity,
    informational question, recommendation request.
    """

    async def classify(self, state: ConversationState, message: str) -> IntentClassification:
        return IntentClassification(self.classify_text(state, message))

    def classify_text(self, state: ConversationState, message: str) -> Intent:
        if _CONFIRMATION.match(message) and state.cache.pending_kinds():
            return Intent(kind=IntentKind.CONFIRMATION, entity_kind=_mentioned_kind(message))

        if state.mode is ConversationMode.ASSESSMENT and not _questionnaire_done(state):
            return Intent(kind=IntentKind.ASSESSMENT_ANSWER)

        kind = _mentioned_kind(message)
        designation = _designation(message)
        if kind is not None and designation:
            intent_kind = {
                EntityKind.PRACTITIONER: IntentKind.PRACTITIONER_REFERENCE,
                EntityKind.ACTIVITY: IntentKind.ACTIVITY_REFERENCE,
                EntityKind.PRACTICE: IntentKind.PRACTICE_REFERENCE,
            }[kind]
            id_match = _ID_HINT.search(message)
            return Intent(
                kind=intent_kind,
                designation=designation,
                entity_id=id_match.group("id") if id_match else None,
            )

        if _QUESTION.match(message) and not _RECOMMEND.search(message):
            return Intent(kind=IntentKind.SUBJECT_QUESTION, designation=message.strip())

        if _RECOMMEND.search(message):
            return Intent(
                kind=IntentKind.RECOMMENDATION_REQUEST,
                fragments=split_fragments(message) or [message.strip()],
            )

        return Intent(kind=IntentKind.OTHER)


def _mentioned_kind(message: str) -> EntityKind | None:
    for kind, pattern in _KIND_WORDS.items():
        if pattern.search(message):
            return kind
    return None


def _designation(message: str) -> str | None:
    quoted = _QUOTED.search(message)
    if quoted:
        return quoted.group("name").strip()
    named = _NAMED_AFTER.search(message)
    if named:
        return named.group("name").strip()
    return None


def _questionnaire_done(state: ConversationState) -> bool:
    universe = state.universe
    return universe is not None and universe.completed


_SITUATION_LINE = re.compile(r"^(?P<label>[A-Z][^:]*):\s*(?P<value>.*)$")
_CANDIDATE_LINE = re.compile(r"^- (?P<title>.*?) \[id=(?P<id>[^\]]+)\]$")


class DeterministicBackend:
    """Text-generation backend that answers from the prompt's situation lines.

    Keeps the same contract as the LangChain adapter for local and offline
    environments. It never requests tools, so every answer is terminal.
    """

    async def complete(
        self,
        context: PromptContext,
        output_schema: OutputSchema,
        prior_call_id: str | None = None,
    ) -> ModelResponse:
        del prior_call_id
        if output_schema.name == SUMMARY_SCHEMA.name:
            key, response = "summary", _summary_from_context(context)
        else:
            key, response = "response", _answer_from_situation(context.system)
        usage = estimate_token_count(context.system) + estimate_token_count(response)
        return ModelResponse(
            payload={key: response},
            usage=usage,
            call_id=str(uuid.uuid4()),
            raw_text=response,
        )


def _answer_from_situation(system: str) -> str:
    labels: dict[str, str] = {}
    candidates: list[str] = []
    for line in system.splitlines():
        candidate = _CANDIDATE_LINE.match(line)
        if candidate:
            candidates.append(candidate.group("title"))
            continue
        match = _SITUATION_LINE.match(line)
        if match:
            labels.setdefault(match.group("label"), match.group("value"))

    if "Next intake question to ask" in labels:
        return labels["Next intake question to ask"]
    for label, value in labels.items():
        if label.startswith("Awaiting confirmation"):
            return f"Did you mean {value.split(' [id=')[0]}?"
    for line in system.splitlines():
        if line.startswith("Could not identify"):
            return "I could not find what you are referring to. Could you give me more details?"
    if candidates:
        return "Here are some suggestions: " + ", ".join(candidates[:5]) + "."
    return "Tell me a little about what you are looking for and I will suggest activities."


def _summary_from_context(context: PromptContext) -> str:
    transcript = context.messages[-1].content if context.messages else ""
    exchanged = sum(1 for line in transcript.splitlines() if line.startswith("User: "))
    recommended = [
        match.group("title")
        for match in map(_CANDIDATE_LINE.match, context.system.splitlines())
        if match
    ]
    summary = f"The user sent {exchanged} message{'s' if exchanged != 1 else ''}."
    if recommended:
        summary += " Recommended: " + ", ".join(recommended) + "."
    return summary
