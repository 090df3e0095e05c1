"""Per-turn coordination: load, classify, route, orchestrate, save."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from reco_agent.agent.fallback import DeterministicBackend, KeywordIntentClassifier
from reco_agent.agent.orchestrator import ToolOrchestrator
from reco_agent.agent.registry import ToolRegistry
from reco_agent.agent.tools import register_builtin_tools
from reco_agent.assessment import AssessmentAggregator
from reco_agent.config import EngineConfig
from reco_agent.errors import ConversationEnded, RecoAgentError
from reco_agent.intents import IntentClassifier, ModelIntentClassifier
from reco_agent.llm import TextGenerationBackend, create_backend_from_env
from reco_agent.obs.tracing import Timer, TraceStore, TurnTrace
from reco_agent.prompts import build_prompt_context
from reco_agent.resolution import EntityResolver
from reco_agent.retrieval.gateway import SearchBackend, SearchGateway
from reco_agent.router import IntentRouter
from reco_agent.state import ChatMessage, ConversationMode, ConversationState
from reco_agent.store import ConversationStore, InMemoryConversationStore
from reco_agent.summary import ConversationSummarizer
from reco_agent.types import (
    EntityKind,
    ExtractedRecommendations,
    ModelCallTrace,
    RankedFamily,
    ToolTrace,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TurnResult:
    conversation_id: str
    response_text: str
    response_payload: dict[str, Any]
    intent: str
    recommendations: ExtractedRecommendations
    cost: int
    next_question: str | None = None
    trace_id: str | None = None


@dataclass(slots=True)
class _TurnLog:
    intent: str = "unclassified"
    model_calls: list[ModelCallTrace] = field(default_factory=list)
    tool_traces: list[ToolTrace] = field(default_factory=list)


class ConversationEngine:
    """Runs one conversation turn at a time against a conversation store.

    The loaded state is deep-copied before any handler touches it and saved
    only after the turn completes, so a failed turn leaves the previously
    persisted state intact.
    """

    def __init__(
        self,
        *,
        store: ConversationStore,
        classifier: IntentClassifier,
        router: IntentRouter,
        orchestrator: ToolOrchestrator,
        trace_store: TraceStore | None = None,
        config: EngineConfig | None = None,
        summarizer: ConversationSummarizer | None = None,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.router = router
        self.orchestrator = orchestrator
        self.trace_store = trace_store or TraceStore()
        self.config = config or EngineConfig()
        self.summarizer = summarizer or ConversationSummarizer(
            orchestrator.backend, timeout_seconds=self.config.orchestrator.model_timeout_seconds
        )

    async def start_conversation(
        self,
        user_id: str,
        *,
        mode: ConversationMode = ConversationMode.RECOMMENDATION,
        conversation_id: str | None = None,
    ) -> ConversationState:
        state = ConversationState(
            conversation_id=conversation_id or str(uuid.uuid4()),
            user_id=user_id,
            mode=mode,
        )
        if mode is ConversationMode.ASSESSMENT:
            state.universe = self.router.aggregator.start()
        await self.store.save(state.conversation_id, state)
        logger.info("Started %s conversation %s", mode.value, state.conversation_id)
        return state

    def first_question(self) -> str:
        return self.router.aggregator.questions[0]

    async def process_turn(self, conversation_id: str, message: str) -> TurnResult:
        log = _TurnLog()
        timer = Timer()
        try:
            with timer:
                result = await self._run_turn(conversation_id, message, log)
        except RecoAgentError:
            self._record(conversation_id, log, timer, succeeded=False)
            raise

        record = self._record(conversation_id, log, timer, succeeded=True)
        result.trace_id = record.trace_id
        return result

    async def finish_assessment(self, conversation_id: str) -> list[RankedFamily]:
        """End the intake flow; returns the final families and drops the universe."""

        state = await self.store.load(conversation_id)
        families = list(state.universe.families) if state.universe is not None else []
        state.universe = None
        state.mode = ConversationMode.RECOMMENDATION
        await self.store.save(conversation_id, state)
        return families

    async def end_conversation(self, conversation_id: str) -> dict[str, Any]:
        """Summarize and close the conversation; later turns raise ``ConversationEnded``.

        Ending twice returns the stored summary without another model call.
        """

        loaded = await self.store.load(conversation_id)
        if loaded.ended and loaded.summary is not None:
            return loaded.summary
        state = loaded.model_copy(deep=True)

        log = _TurnLog(intent="summary")
        timer = Timer()
        try:
            with timer:
                result = await self.summarizer.summarize(state)
        except RecoAgentError:
            self._record(conversation_id, log, timer, succeeded=False)
            raise
        log.model_calls.append(result.model_call)

        state.summary = result.summary
        state.ended = True
        state.previous_call_id = result.model_call.call_id
        state.total_cost += result.model_call.usage
        await self.store.save(conversation_id, state)
        self._record(conversation_id, log, timer, succeeded=True)
        logger.info("Ended conversation %s", conversation_id)
        return result.summary

    async def _run_turn(self, conversation_id: str, message: str, log: _TurnLog) -> TurnResult:
        loaded = await self.store.load(conversation_id)
        if loaded.ended:
            raise ConversationEnded(conversation_id)
        state = loaded.model_copy(deep=True)

        classification = await self.classifier.classify(state, message)
        log.intent = classification.intent.kind.value
        if classification.model_call is not None:
            log.model_calls.append(classification.model_call)

        route = await self.router.route(state, classification.intent, message)
        context = build_prompt_context(
            state,
            route,
            message,
            history_window=self.config.orchestrator.history_window,
        )
        outcome = await self.orchestrator.run(state, context, tool_observer=log.tool_traces.append)
        log.model_calls.extend(outcome.model_calls)

        state = outcome.updated_state
        state.messages.append(ChatMessage(role="user", content=message))
        state.messages.append(ChatMessage(role="assistant", content=outcome.response_text))
        cost = classification.usage + outcome.accumulated_cost
        state.total_cost += cost
        await self.store.save(conversation_id, state)

        return TurnResult(
            conversation_id=conversation_id,
            response_text=outcome.response_text,
            response_payload=outcome.response_payload,
            intent=log.intent,
            recommendations=outcome.extracted_recommendations,
            cost=cost,
            next_question=route.next_question,
        )

    def _record(
        self, conversation_id: str, log: _TurnLog, timer: Timer, *, succeeded: bool
    ) -> TurnTrace:
        return self.trace_store.create_record(
            conversation_id=conversation_id,
            intent=log.intent,
            model_calls=log.model_calls,
            tool_traces=log.tool_traces,
            latency_ms=timer.elapsed_ms,
            succeeded=succeeded,
        )


def build_engine(
    backends: Mapping[EntityKind, SearchBackend],
    *,
    store: ConversationStore | None = None,
    backend: TextGenerationBackend | None = None,
    config: EngineConfig | None = None,
    trace_store: TraceStore | None = None,
) -> ConversationEngine:
    """Wire the default components.

    Without an explicit ``backend`` the OpenAI adapter is used when
    ``OPENAI_API_KEY`` is set, otherwise the deterministic keyword
    classifier and backend.
    """

    config = config or EngineConfig()
    gateway = SearchGateway(backends, config.search)
    aggregator = AssessmentAggregator(gateway, config.assessment, config.search)
    router = IntentRouter(EntityResolver(gateway, config.search), gateway, aggregator, config.search)

    registry = ToolRegistry()
    register_builtin_tools(registry, gateway, config.search)

    backend = backend or create_backend_from_env()
    keywords = KeywordIntentClassifier()
    if backend is None:
        logger.info("No model backend configured; using deterministic fallbacks")
        classifier: IntentClassifier = keywords
        backend = DeterministicBackend()
    else:
        classifier = ModelIntentClassifier(
            backend,
            fallback=keywords,
            history_window=config.orchestrator.history_window,
            timeout_seconds=config.orchestrator.model_timeout_seconds,
        )

    orchestrator = ToolOrchestrator(backend, registry, config=config.orchestrator)
    return ConversationEngine(
        store=store or InMemoryConversationStore(),
        classifier=classifier,
        router=router,
        orchestrator=orchestrator,
        trace_store=trace_store,
        config=config,
    )
