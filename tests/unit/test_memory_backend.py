import pytest

from reco_agent.retrieval.memory_backend import CatalogEntry, InMemorySearchBackend
from reco_agent.types import EntityKind


@pytest.mark.asyncio
async def test_in_memory_backend_reports_both_signals() -> None:
    backend = InMemorySearchBackend(EntityKind.PRACTICE)
    backend.upsert(
        [
            CatalogEntry(id="sophro", title="Sophrology", text="breathing and relaxation for stress"),
            CatalogEntry(id="boxing", title="Boxing", text="intense cardio training"),
        ]
    )

    hits = await backend.search("stress relaxation", limit=1)

    assert [hit.id for hit in hits] == ["sophro"]
    assert hits[0].kind is EntityKind.PRACTICE
    assert hits[0].vector_score is not None
    assert hits[0].lexical_score == 1.0


@pytest.mark.asyncio
async def test_min_score_filters_weak_hits() -> None:
    backend = InMemorySearchBackend(EntityKind.ACTIVITY)
    backend.upsert([CatalogEntry(id="a", title="Pottery", text="clay wheel")])

    assert await backend.search("quantum physics lecture", min_score=0.5) == []
    assert await backend.search("") == []


def test_vector_weight_is_validated() -> None:
    with pytest.raises(ValueError):
        InMemorySearchBackend(EntityKind.ACTIVITY, vector_weight=1.5)


@pytest.mark.asyncio
async def test_punctuated_query_scores_like_its_words() -> None:
    backend = InMemorySearchBackend(EntityKind.PRACTICE)
    backend.upsert([CatalogEntry(id="sophro", title="Sophrology", text="stress, sleep.")])

    plain = await backend.search("stress sleep")
    punctuated = await backend.search("Stress? Sleep!")

    assert punctuated == plain
    assert punctuated[0].lexical_score == 1.0
    assert punctuated[0].vector_score > 0.0


def test_dimension_is_validated() -> None:
    with pytest.raises(ValueError):
        InMemorySearchBackend(EntityKind.ACTIVITY, dimension=0)
