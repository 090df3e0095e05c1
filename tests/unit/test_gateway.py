import asyncio

import pytest
from fakes import RecordingSearchBackend, make_hit

from reco_agent.config import SearchConfig
from reco_agent.errors import SearchBackendError, SearchTimeout
from reco_agent.retrieval.gateway import SearchGateway
from reco_agent.types import EntityKind


@pytest.mark.asyncio
async def test_fragments_are_searched_concurrently_then_merged() -> None:
    backend = RecordingSearchBackend(
        {
            "tired all day": [make_hit("yoga", fused=0.6), make_hit("nap", fused=0.9)],
            "cannot sleep": [make_hit("yoga", fused=0.7)],
        },
        delay=0.1,
    )
    gateway = SearchGateway({EntityKind.PRACTICE: backend})

    merged = await asyncio.wait_for(
        gateway.search_fragments(EntityKind.PRACTICE, ["tired all day", "cannot sleep"]),
        timeout=0.18,
    )

    assert [entity.id for entity in merged] == ["yoga", "nap"]
    assert merged[0].match_count == 2
    assert {call[0] for call in backend.calls} == {"tired all day", "cannot sleep"}


@pytest.mark.asyncio
async def test_failed_fragment_does_not_abort_siblings() -> None:
    backend = RecordingSearchBackend(
        {"calm": [make_hit("breathing")]},
        fail_on={"broken"},
    )
    gateway = SearchGateway({EntityKind.PRACTICE: backend})

    merged = await gateway.search_fragments(EntityKind.PRACTICE, ["broken", "calm"])

    assert [entity.id for entity in merged] == ["breathing"]


@pytest.mark.asyncio
async def test_single_search_timeout_raises() -> None:
    backend = RecordingSearchBackend(default=[make_hit("x")], delay=0.2)
    gateway = SearchGateway(
        {EntityKind.ACTIVITY: backend}, SearchConfig(search_timeout_seconds=0.01)
    )

    with pytest.raises(SearchTimeout):
        await gateway.search(EntityKind.ACTIVITY, "slow")


@pytest.mark.asyncio
async def test_missing_backend_and_empty_fragments() -> None:
    gateway = SearchGateway({})

    with pytest.raises(SearchBackendError):
        await gateway.search(EntityKind.ARTICLE, "anything")
    assert await gateway.search_fragments(EntityKind.PRACTICE, []) == []
    assert await gateway.search_fragments(EntityKind.PRACTICE, ["  "]) == []
