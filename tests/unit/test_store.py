import pytest
from fakes import make_hit

from reco_agent.errors import ConversationNotFound
from reco_agent.state import AssessmentUniverse, ConversationMode, ConversationState
from reco_agent.store import InMemoryConversationStore, SqliteConversationStore
from reco_agent.types import EntityKind, RankedEntity


def _state() -> ConversationState:
    state = ConversationState(conversation_id="c1", user_id="u1", mode=ConversationMode.ASSESSMENT)
    entity = RankedEntity.from_hit(make_hit("a1", kind=EntityKind.ACTIVITY), "yoga")
    state.cache.remember([entity])
    state.cache.set_focused(EntityKind.ACTIVITY, entity)
    state.universe = AssessmentUniverse(answered_questions=[0])
    state.previous_call_id = "call-7"
    return state


@pytest.mark.asyncio
async def test_in_memory_store_returns_independent_copies() -> None:
    store = InMemoryConversationStore()
    await store.save("c1", _state())

    loaded = await store.load("c1")
    loaded.cache.activities.clear()

    assert (await store.load("c1")).cache.activities
    with pytest.raises(ConversationNotFound):
        await store.load("missing")


@pytest.mark.asyncio
async def test_sqlite_store_round_trips_and_upserts(tmp_path) -> None:
    store = SqliteConversationStore(str(tmp_path / "conversations.db"))
    state = _state()

    await store.save("c1", state)
    state.total_cost = 42
    await store.save("c1", state)
    loaded = await store.load("c1")

    assert loaded == state
    assert loaded.cache.focused_activity is not None
    with pytest.raises(ConversationNotFound):
        await store.load("missing")
