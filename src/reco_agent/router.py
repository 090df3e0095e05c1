"""Dispatch of classified intents to the handlers that update the cache."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from reco_agent.assessment import AssessmentAggregator
from reco_agent.config import SearchConfig
from reco_agent.intents import REFERENCE_KINDS, Intent, IntentKind
from reco_agent.resolution import EntityResolver, Resolution, ResolutionStatus
from reco_agent.retrieval.gateway import SearchGateway
from reco_agent.state import ConversationState, TypedFragment
from reco_agent.types import EntityKind, RankedEntity

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RouteResult:
    """What a handler did to the state; fed to the prompt builder."""

    intent: Intent
    resolution: Resolution | None = None
    confirmed: RankedEntity | None = None
    articles: list[RankedEntity] = field(default_factory=list)
    candidates: dict[EntityKind, list[RankedEntity]] = field(default_factory=dict)
    next_question: str | None = None
    universe_updated: bool = False

    @property
    def clarification_needed(self) -> bool:
        return (
            self.resolution is not None
            and self.resolution.status is ResolutionStatus.UNRESOLVED
        )

    @property
    def awaiting_confirmation(self) -> bool:
        return (
            self.resolution is not None
            and self.resolution.status is ResolutionStatus.RESOLVED_ABSENT
        )


_Handler = Callable[[ConversationState, Intent, str], Awaitable[RouteResult]]


class IntentRouter:
    """One handler per :class:`IntentKind`; handlers mutate ``state`` in place."""

    def __init__(
        self,
        resolver: EntityResolver,
        gateway: SearchGateway,
        aggregator: AssessmentAggregator,
        config: SearchConfig | None = None,
    ) -> None:
        self.resolver = resolver
        self.gateway = gateway
        self.aggregator = aggregator
        self.config = config or gateway.config
        self._handlers: dict[IntentKind, _Handler] = {
            IntentKind.PRACTITIONER_REFERENCE: self._handle_reference,
            IntentKind.ACTIVITY_REFERENCE: self._handle_reference,
            IntentKind.PRACTICE_REFERENCE: self._handle_reference,
            IntentKind.SUBJECT_QUESTION: self._handle_subject,
            IntentKind.CONFIRMATION: self._handle_confirmation,
            IntentKind.RECOMMENDATION_REQUEST: self._handle_recommendation,
            IntentKind.ASSESSMENT_ANSWER: self._handle_assessment_answer,
            IntentKind.OTHER: self._handle_other,
        }
        missing = set(IntentKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for intents: {sorted(k.value for k in missing)}")

    async def route(self, state: ConversationState, intent: Intent, message: str) -> RouteResult:
        result = await self._handlers[intent.kind](state, intent, message)
        logger.info(
            "Routed %s (clarify=%s, confirm=%s)",
            intent.kind.value,
            result.clarification_needed,
            result.awaiting_confirmation,
        )
        return result

    async def _handle_reference(
        self, state: ConversationState, intent: Intent, message: str
    ) -> RouteResult:
        kind = REFERENCE_KINDS[intent.kind]
        resolution = await self.resolver.resolve_and_apply(
            state.cache,
            kind,
            intent.designation or message,
            id_hint=intent.entity_id,
        )
        return RouteResult(intent=intent, resolution=resolution)

    async def _handle_subject(
        self, state: ConversationState, intent: Intent, message: str
    ) -> RouteResult:
        articles = await self.resolver.resolve_subject(state.cache, intent.designation or message)
        return RouteResult(intent=intent, articles=articles)

    async def _handle_confirmation(
        self, state: ConversationState, intent: Intent, message: str
    ) -> RouteResult:
        confirmed = self.resolver.confirm(state.cache, intent.entity_kind)
        if confirmed is None:
            logger.info("Confirmation with nothing pending; ignored")
        return RouteResult(intent=intent, confirmed=confirmed)

    async def _handle_recommendation(
        self, state: ConversationState, intent: Intent, message: str
    ) -> RouteResult:
        fragments = intent.fragments or [message]
        candidates: dict[EntityKind, list[RankedEntity]] = {}
        for kind in (EntityKind.ACTIVITY, EntityKind.PRACTICE):
            if not self.gateway.supports(kind):
                continue
            ranked = await self.gateway.search_fragments(
                kind, fragments, limit=self.config.recommendation_top_k
            )
            candidates[kind] = ranked[: self.config.recommendation_top_k]
            state.cache.remember(candidates[kind])
        return RouteResult(intent=intent, candidates=candidates)

    async def _handle_assessment_answer(
        self, state: ConversationState, intent: Intent, message: str
    ) -> RouteResult:
        if state.universe is None:
            state.universe = self.aggregator.start()
        universe = state.universe

        typed = (
            [TypedFragment(text=text) for text in intent.fragments] if intent.fragments else None
        )
        question_index = intent.question_index
        if question_index is not None and not 0 <= question_index < len(self.aggregator.questions):
            logger.warning("Ignoring out-of-range intake question index %d", question_index)
            question_index = None
        self.aggregator.record_answer(
            universe, message, question_index=question_index, fragments=typed
        )

        complete = self.aggregator.is_complete(universe)
        updated = False
        if complete or intent.refresh_universe:
            await self.aggregator.compute(universe)
            updated = True
        universe.completed = complete

        upcoming = self.aggregator.next_question(universe)
        return RouteResult(
            intent=intent,
            next_question=upcoming[1] if upcoming else None,
            universe_updated=updated,
        )

    async def _handle_other(
        self, state: ConversationState, intent: Intent, message: str
    ) -> RouteResult:
        return RouteResult(intent=intent)
