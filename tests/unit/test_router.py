import pytest
from fakes import RecordingSearchBackend, make_hit

from reco_agent.assessment import AssessmentAggregator
from reco_agent.config import AssessmentConfig
from reco_agent.intents import Intent, IntentKind
from reco_agent.resolution import EntityResolver
from reco_agent.retrieval.gateway import SearchGateway
from reco_agent.router import IntentRouter
from reco_agent.state import ConversationMode, ConversationState
from reco_agent.types import EntityKind


def _router(backends: dict[EntityKind, RecordingSearchBackend]) -> IntentRouter:
    gateway = SearchGateway(backends)
    aggregator = AssessmentAggregator(gateway, AssessmentConfig(questions=["q1", "q2"]))
    return IntentRouter(EntityResolver(gateway), gateway, aggregator)


def _state(**kwargs: object) -> ConversationState:
    return ConversationState(conversation_id="c1", user_id="u1", **kwargs)


@pytest.mark.asyncio
async def test_reference_then_confirmation_promotes_entity() -> None:
    practitioners = RecordingSearchBackend(
        {"Marie": [make_hit("pr-1", kind=EntityKind.PRACTITIONER, fused=0.9)]}
    )
    router = _router({EntityKind.PRACTITIONER: practitioners})
    state = _state()

    first = await router.route(
        state,
        Intent(kind=IntentKind.PRACTITIONER_REFERENCE, designation="Marie"),
        "I saw Marie",
    )
    assert first.awaiting_confirmation
    assert state.cache.pending_practitioner is not None

    second = await router.route(state, Intent(kind=IntentKind.CONFIRMATION), "yes")

    assert second.confirmed is not None and second.confirmed.id == "pr-1"
    assert state.cache.focused_practitioner is not None
    assert "pr-1" in state.cache.practitioners


@pytest.mark.asyncio
async def test_unresolved_reference_asks_for_clarification() -> None:
    router = _router({EntityKind.ACTIVITY: RecordingSearchBackend()})

    result = await router.route(
        _state(), Intent(kind=IntentKind.ACTIVITY_REFERENCE, designation="that thing"), "that thing"
    )

    assert result.clarification_needed


@pytest.mark.asyncio
async def test_recommendation_request_remembers_candidates() -> None:
    activities = RecordingSearchBackend(
        {"stress": [make_hit("a1", kind=EntityKind.ACTIVITY)]}
    )
    practices = RecordingSearchBackend({"stress": [make_hit("p1")], "sleep": [make_hit("p1")]})
    router = _router({EntityKind.ACTIVITY: activities, EntityKind.PRACTICE: practices})
    state = _state()

    result = await router.route(
        state,
        Intent(kind=IntentKind.RECOMMENDATION_REQUEST, fragments=["stress", "sleep"]),
        "stress and sleep",
    )

    assert [entity.id for entity in result.candidates[EntityKind.PRACTICE]] == ["p1"]
    assert result.candidates[EntityKind.PRACTICE][0].match_count == 2
    assert set(state.cache.activities) == {"a1"}
    assert set(state.cache.practices) == {"p1"}


@pytest.mark.asyncio
async def test_assessment_answers_compute_universe_after_last_question() -> None:
    practices = RecordingSearchBackend(
        default=[make_hit("p1", fused=0.8, family_id="body", family_name="Body")]
    )
    router = _router(
        {EntityKind.PRACTICE: practices, EntityKind.ACTIVITY: RecordingSearchBackend()}
    )
    state = _state(mode=ConversationMode.ASSESSMENT)

    first = await router.route(
        state, Intent(kind=IntentKind.ASSESSMENT_ANSWER), "I feel tired every day."
    )
    assert first.next_question == "q2"
    assert not first.universe_updated
    assert practices.calls == []

    second = await router.route(
        state, Intent(kind=IntentKind.ASSESSMENT_ANSWER), "I want to sleep better."
    )

    assert second.universe_updated
    assert second.next_question is None
    assert state.universe is not None and state.universe.completed
    assert [family.id for family in state.universe.families] == ["body"]


@pytest.mark.asyncio
async def test_other_intent_changes_nothing() -> None:
    router = _router({})
    state = _state()

    await router.route(state, Intent(), "hello")

    assert state == _state()


@pytest.mark.asyncio
async def test_subject_question_focuses_found_articles() -> None:
    articles = RecordingSearchBackend(
        {
            "sleep hygiene": [
                make_hit("art-1", kind=EntityKind.ARTICLE, fused=0.8),
                make_hit("art-2", kind=EntityKind.ARTICLE, fused=0.6),
            ]
        }
    )
    router = _router({EntityKind.ARTICLE: articles})
    state = _state()

    result = await router.route(
        state,
        Intent(kind=IntentKind.SUBJECT_QUESTION, designation="sleep hygiene"),
        "What is sleep hygiene?",
    )

    assert [article.id for article in result.articles] == ["art-1", "art-2"]
    assert [article.id for article in state.cache.focused_articles] == ["art-1", "art-2"]
    assert set(state.cache.articles) == {"art-1", "art-2"}
    assert articles.calls == [("sleep hygiene", 3, 0.0)]


@pytest.mark.asyncio
async def test_subject_question_without_designation_searches_the_message() -> None:
    articles = RecordingSearchBackend()
    router = _router({EntityKind.ARTICLE: articles})
    state = _state()

    result = await router.route(
        state, Intent(kind=IntentKind.SUBJECT_QUESTION), "Is yoga good for back pain?"
    )

    assert result.articles == []
    assert state.cache.focused_articles == []
    assert articles.calls[0][0] == "Is yoga good for back pain?"
