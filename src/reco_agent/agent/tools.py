"""Built-in tool implementations for the recommendation agent."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from reco_agent.agent.registry import ToolContext, ToolRegistry, ToolSpec
from reco_agent.config import SearchConfig
from reco_agent.fragments import split_fragments
from reco_agent.llm import OutputSchema
from reco_agent.retrieval.gateway import SearchGateway
from reco_agent.types import EntityKind, RankedEntity

KNOWLEDGE_RESPONSE_SCHEMA = OutputSchema(
    name="KnowledgeAnswer",
    schema={
        "type": "object",
        "properties": {
            "response": {"type": "string"},
            "sources": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["response"],
    },
)


class CatalogSearchInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)


class KnowledgeSearchInput(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=3, ge=1, le=10)


class NoInput(BaseModel):
    pass


def register_builtin_tools(
    registry: ToolRegistry,
    gateway: SearchGateway,
    config: SearchConfig | None = None,
) -> None:
    """Register the default tool set used by the orchestrator.

    Tools:
    - `search_activities_and_practices`: fragment fan-out over both catalogs.
    - `search_practitioners`: fragment fan-out over practitioners.
    - `get_focused_entities`: what the conversation is currently about.
    - `get_assessment_universe`: ranked families from the intake flow.
    - `knowledge_search`: article lookup whose result is the answer itself.

    Tools read the conversation through :class:`ToolContext` and never mutate it.
    """

    config = config or gateway.config

    async def _search_catalog(
        input_data: CatalogSearchInput, context: ToolContext
    ) -> dict[str, Any]:
        fragments = split_fragments(input_data.query) or [input_data.query]
        output: dict[str, Any] = {}
        for kind, key in ((EntityKind.ACTIVITY, "activities"), (EntityKind.PRACTICE, "practices")):
            if not gateway.supports(kind):
                output[key] = []
                continue
            ranked = await gateway.search_fragments(kind, fragments, limit=input_data.limit)
            output[key] = [_summarize(entity) for entity in ranked[: input_data.limit]]
        return output

    async def _search_practitioners(
        input_data: CatalogSearchInput, context: ToolContext
    ) -> dict[str, Any]:
        fragments = split_fragments(input_data.query) or [input_data.query]
        ranked = await gateway.search_fragments(
            EntityKind.PRACTITIONER, fragments, limit=input_data.limit
        )
        return {"practitioners": [_summarize(entity) for entity in ranked[: input_data.limit]]}

    def _focused_entities(input_data: NoInput, context: ToolContext) -> dict[str, Any]:
        cache = context.state.cache
        output: dict[str, Any] = {}
        for kind in (EntityKind.PRACTITIONER, EntityKind.ACTIVITY, EntityKind.PRACTICE):
            focused = cache.focused(kind)
            pending = cache.pending(kind)
            output[kind.value] = {
                "focused": _summarize(focused) if focused else None,
                "pending_confirmation": _summarize(pending) if pending else None,
            }
        output["articles"] = [_summarize(article) for article in cache.focused_articles]
        return output

    def _assessment_universe(input_data: NoInput, context: ToolContext) -> dict[str, Any]:
        universe = context.state.universe
        if universe is None:
            return {"available": False, "families": []}
        return {
            "available": True,
            "answered_questions": len(universe.answered_questions),
            "families": [family.model_dump() for family in universe.families],
        }

    async def _knowledge_search(
        input_data: KnowledgeSearchInput, context: ToolContext
    ) -> dict[str, Any]:
        hits = await gateway.search(
            EntityKind.ARTICLE, input_data.query, limit=min(input_data.top_k, config.subject_top_k)
        )
        return {
            "articles": [
                {
                    "id": hit.id,
                    "title": hit.title,
                    "excerpt": _truncate(hit.matching_fragment or "", 400),
                }
                for hit in hits
            ]
        }

    registry.register(
        ToolSpec(
            name="search_activities_and_practices",
            description="Search activities and practices matching the user's situation.",
            args_schema=CatalogSearchInput,
            handler=_search_catalog,
        )
    )
    if gateway.supports(EntityKind.PRACTITIONER):
        registry.register(
            ToolSpec(
                name="search_practitioners",
                description="Search practitioners matching the user's needs.",
                args_schema=CatalogSearchInput,
                handler=_search_practitioners,
            )
        )
    registry.register(
        ToolSpec(
            name="get_focused_entities",
            description="Return the practitioner, activity and practice currently discussed.",
            args_schema=NoInput,
            handler=_focused_entities,
        )
    )
    registry.register(
        ToolSpec(
            name="get_assessment_universe",
            description="Return the taxonomy families ranked from the intake answers.",
            args_schema=NoInput,
            handler=_assessment_universe,
        )
    )
    if gateway.supports(EntityKind.ARTICLE):
        registry.register(
            ToolSpec(
                name="knowledge_search",
                description="Search knowledge-base articles to answer an informational question.",
                args_schema=KnowledgeSearchInput,
                handler=_knowledge_search,
                usage="response",
                response_schema=KNOWLEDGE_RESPONSE_SCHEMA,
            )
        )


def _summarize(entity: RankedEntity) -> dict[str, Any]:
    return {
        "id": entity.id,
        "title": entity.title,
        "relevance_score": round(entity.fused_score, 4),
        "match_count": entity.match_count,
        "family": entity.family_name,
    }


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
