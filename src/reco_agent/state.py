"""Conversation state carried across turns.

The state is a plain value: the engine loads it from the conversation store at
the start of a turn, hands it to the router and the orchestrator, and saves it
back only when the turn completes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from reco_agent.types import EntityKind, ExtractedRecommendations, RankedEntity, RankedFamily

# Kinds that carry a focused/pending slot, in confirmation precedence order.
FOCUSABLE_KINDS: tuple[EntityKind, ...] = (
    EntityKind.PRACTITIONER,
    EntityKind.ACTIVITY,
    EntityKind.PRACTICE,
)


class EntityResolutionCache(BaseModel):
    """Cross-turn memory of every entity seen, by kind.

    Invariants: a focused entity is always present in its keyed map; a pending
    entity is never present in its keyed map.
    """

    practitioners: dict[str, RankedEntity] = Field(default_factory=dict)
    activities: dict[str, RankedEntity] = Field(default_factory=dict)
    practices: dict[str, RankedEntity] = Field(default_factory=dict)
    articles: dict[str, RankedEntity] = Field(default_factory=dict)

    focused_practitioner: RankedEntity | None = None
    focused_activity: RankedEntity | None = None
    focused_practice: RankedEntity | None = None
    focused_articles: list[RankedEntity] = Field(default_factory=list)

    pending_practitioner: RankedEntity | None = None
    pending_activity: RankedEntity | None = None
    pending_practice: RankedEntity | None = None

    def entities(self, kind: EntityKind) -> dict[str, RankedEntity]:
        if kind is EntityKind.PRACTITIONER:
            return self.practitioners
        if kind is EntityKind.ACTIVITY:
            return self.activities
        if kind is EntityKind.PRACTICE:
            return self.practices
        return self.articles

    def contains(self, kind: EntityKind, entity_id: str) -> bool:
        return entity_id in self.entities(kind)

    def remember(self, entities: list[RankedEntity]) -> None:
        """Add entities to their keyed maps; already known ids are kept as is."""

        for entity in entities:
            keyed = self.entities(entity.kind)
            if entity.id not in keyed:
                keyed[entity.id] = entity
            pending = self.pending(entity.kind) if entity.kind in FOCUSABLE_KINDS else None
            if pending is not None and pending.id == entity.id:
                self._set_pending(entity.kind, None)

    def focused(self, kind: EntityKind) -> RankedEntity | None:
        _require_focusable(kind)
        return getattr(self, f"focused_{kind.value}")

    def set_focused(self, kind: EntityKind, entity: RankedEntity) -> None:
        _require_focusable(kind)
        if entity.id not in self.entities(kind):
            raise ValueError(f"Cannot focus {kind.value} {entity.id}: not in cache")
        setattr(self, f"focused_{kind.value}", entity)

    def pending(self, kind: EntityKind) -> RankedEntity | None:
        _require_focusable(kind)
        return getattr(self, f"pending_{kind.value}")

    def set_pending(self, kind: EntityKind, entity: RankedEntity) -> None:
        _require_focusable(kind)
        if entity.id in self.entities(kind):
            raise ValueError(f"Cannot mark {kind.value} {entity.id} pending: already in cache")
        self._set_pending(kind, entity)

    def clear_pending(self, kind: EntityKind) -> None:
        _require_focusable(kind)
        self._set_pending(kind, None)

    def pending_kinds(self) -> list[EntityKind]:
        return [kind for kind in FOCUSABLE_KINDS if self.pending(kind) is not None]

    def promote_pending(self, kind: EntityKind) -> RankedEntity | None:
        """Move the pending entity of ``kind`` into its keyed map and focus it."""

        entity = self.pending(kind)
        if entity is None:
            return None
        self.entities(kind)[entity.id] = entity
        setattr(self, f"focused_{kind.value}", entity)
        self._set_pending(kind, None)
        return entity

    def known_ids(self) -> set[str]:
        ids: set[str] = set()
        for keyed in (self.practitioners, self.activities, self.practices, self.articles):
            ids.update(keyed)
        return ids

    def _set_pending(self, kind: EntityKind, entity: RankedEntity | None) -> None:
        setattr(self, f"pending_{kind.value}", entity)


class TurnLogEntry(BaseModel):
    question: str | None = None
    answer: str


class TypedFragment(BaseModel):
    """A short text unit derived from an answer, optionally typed by the caller."""

    text: str
    type: str = "free_text"
    question_index: int | None = None


class AssessmentUniverse(BaseModel):
    """Statistics accumulated during the intake flow; never shrinks."""

    families: list[RankedFamily] = Field(default_factory=list)
    practices: list[RankedEntity] = Field(default_factory=list)
    activities: list[RankedEntity] = Field(default_factory=list)
    practitioners: list[RankedEntity] = Field(default_factory=list)
    turn_log: list[TurnLogEntry] = Field(default_factory=list)
    fragments: list[TypedFragment] = Field(default_factory=list)
    answered_questions: list[int] = Field(default_factory=list)
    completed: bool = False

    def known_ids(self) -> set[str]:
        return (
            {entity.id for entity in self.practices}
            | {entity.id for entity in self.activities}
            | {entity.id for entity in self.practitioners}
        )


class ConversationMode(str, Enum):
    RECOMMENDATION = "recommendation"
    ASSESSMENT = "assessment"


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationState(BaseModel):
    """Everything the engine needs to process the next turn of a conversation."""

    conversation_id: str
    user_id: str
    mode: ConversationMode = ConversationMode.RECOMMENDATION
    cache: EntityResolutionCache = Field(default_factory=EntityResolutionCache)
    universe: AssessmentUniverse | None = None
    recommendations: ExtractedRecommendations = Field(default_factory=ExtractedRecommendations)
    messages: list[ChatMessage] = Field(default_factory=list)
    previous_call_id: str | None = None
    total_cost: int = 0
    ended: bool = False
    summary: dict[str, Any] | None = None


def _require_focusable(kind: EntityKind) -> None:
    if kind not in FOCUSABLE_KINDS:
        raise ValueError(f"{kind.value} has no focused/pending slot")
