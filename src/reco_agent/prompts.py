"""Prompt context assembly for the orchestrated model call."""

from __future__ import annotations

from reco_agent.llm import PromptContext, PromptMessage
from reco_agent.router import RouteResult
from reco_agent.state import FOCUSABLE_KINDS, ConversationMode, ConversationState
from reco_agent.types import EntityKind, RankedEntity

SYSTEM_PROMPT = """
You are a wellness recommendation assistant.

Rules:
1) Only recommend activities, practices and practitioners that appear in the
   conversation context or in tool outputs. Never invent identifiers.
2) When an entity is awaiting confirmation, ask the user to confirm it before
   acting on it.
3) When a designation could not be resolved, ask the user to clarify.
4) Quick replies of type `practice` or `activity` must carry the matching id.
""".strip()


def build_prompt_context(
    state: ConversationState,
    route: RouteResult,
    message: str,
    *,
    history_window: int = 12,
) -> PromptContext:
    """System prompt with the turn's situation, recent history and the new message."""

    sections = [SYSTEM_PROMPT, _situation(state, route)]
    recent = state.messages[-history_window:] if history_window else []
    messages = [PromptMessage(m.role, m.content) for m in recent]
    messages.append(PromptMessage("user", message))
    return PromptContext(
        system="\n\n".join(section for section in sections if section),
        messages=messages,
    )


def _situation(state: ConversationState, route: RouteResult) -> str:
    lines = [f"Conversation mode: {state.mode.value}", f"Detected intent: {route.intent.kind.value}"]

    cache = state.cache
    for kind in FOCUSABLE_KINDS:
        focused = cache.focused(kind)
        if focused is not None:
            lines.append(f"Focused {kind.value}: {_describe(focused)}")
        pending = cache.pending(kind)
        if pending is not None:
            lines.append(f"Awaiting confirmation ({kind.value}): {_describe(pending)}")
    for article in cache.focused_articles:
        lines.append(f"Relevant article: {_describe(article)}")

    if route.clarification_needed and route.resolution is not None:
        lines.append(
            f"Could not identify the {route.resolution.kind.value} "
            f"\"{route.resolution.designation}\"; ask the user to clarify."
        )
    if route.confirmed is not None:
        lines.append(f"The user confirmed: {_describe(route.confirmed)}")

    for kind, label in ((EntityKind.ACTIVITY, "activities"), (EntityKind.PRACTICE, "practices")):
        candidates = route.candidates.get(kind)
        if candidates:
            lines.append(f"Candidate {label}:")
            lines.extend(f"- {_describe(entity)}" for entity in candidates)

    universe = state.universe
    if state.mode is ConversationMode.ASSESSMENT and universe is not None:
        if route.next_question:
            lines.append(f"Next intake question to ask: {route.next_question}")
        for family in universe.families[:5]:
            lines.append(
                f"Family {family.name} ({family.id}): {family.dominance_percentage}% "
                f"practices={','.join(family.top_practice_ids)} "
                f"activities={','.join(family.top_activity_ids)}"
            )

    return "\n".join(lines)


def _describe(entity: RankedEntity) -> str:
    title = entity.title or entity.id
    return f"{title} [id={entity.id}]"
