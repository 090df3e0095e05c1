"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from reco_agent.state import ConversationState


class EntityKind(str, Enum):
    """Kinds of searchable entities."""

    ACTIVITY = "activity"
    PRACTICE = "practice"
    PRACTITIONER = "practitioner"
    ARTICLE = "article"


class SearchHit(BaseModel):
    """One result from a search backend, immutable once produced."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: EntityKind
    fused_score: float
    vector_score: float | None = None
    lexical_score: float | None = None
    matching_fragment: str | None = None
    title: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class RankedEntity(BaseModel):
    """A search hit deduplicated across query fragments."""

    id: str
    kind: EntityKind
    fused_score: float
    vector_score: float | None = None
    lexical_score: float | None = None
    matching_fragment: str | None = None
    title: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    match_count: int = Field(default=1, ge=0)
    matched_fragments: list[str] = Field(default_factory=list)

    @classmethod
    def from_hit(cls, hit: SearchHit, fragment: str | None = None) -> "RankedEntity":
        return cls(
            id=hit.id,
            kind=hit.kind,
            fused_score=hit.fused_score,
            vector_score=hit.vector_score,
            lexical_score=hit.lexical_score,
            matching_fragment=hit.matching_fragment,
            title=hit.title,
            metadata=dict(hit.metadata),
            match_count=1,
            matched_fragments=[fragment] if fragment else [],
        )

    @property
    def family_id(self) -> str | None:
        value = self.metadata.get("family_id")
        return str(value) if value else None

    @property
    def family_name(self) -> str | None:
        value = self.metadata.get("family_name")
        return str(value) if value else None


class RankedFamily(BaseModel):
    """A taxonomy family ranked by the practices matched in an assessment."""

    id: str
    name: str
    dominance_score: float = 0.0
    practice_match_weight: int = 0
    total_matches: int = 0
    dominance_percentage: float = 0.0
    top_practice_ids: list[str] = Field(default_factory=list)
    top_activity_ids: list[str] = Field(default_factory=list)


class RecommendationItem(BaseModel):
    """A recommendation extracted from a tool output."""

    id: str
    title: str = ""
    relevance_score: float | None = None


class ExtractedRecommendations(BaseModel):
    """Activities and practices surfaced by tools during a turn."""

    activities: list[RecommendationItem] = Field(default_factory=list)
    practices: list[RecommendationItem] = Field(default_factory=list)

    def ids(self) -> set[str]:
        return {item.id for item in self.activities} | {item.id for item in self.practices}

    def is_empty(self) -> bool:
        return not self.activities and not self.practices


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    failed: bool = False


@dataclass(slots=True)
class ModelCallTrace:
    """Trace record for one text-generation call."""

    purpose: str
    call_id: str
    usage: int
    latency_ms: float


@dataclass(slots=True)
class ToolInvocationResult:
    """Output of one tool call, consumed once by the orchestrator."""

    tool_name: str
    call_id: str
    raw_output: Any
    failed: bool = False


@dataclass(slots=True)
class OrchestrationOutcome:
    """Terminal value of one orchestrated model exchange."""

    response_text: str
    response_payload: dict[str, Any]
    extracted_recommendations: ExtractedRecommendations
    accumulated_cost: int
    updated_state: "ConversationState"
    last_call_id: str | None = None
    tool_results: list[ToolInvocationResult] = field(default_factory=list)
    model_calls: list[ModelCallTrace] = field(default_factory=list)
