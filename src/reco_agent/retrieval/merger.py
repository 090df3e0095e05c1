"""Deduplicating merge of per-fragment search results."""

from __future__ import annotations

from collections.abc import Sequence

from reco_agent.retrieval.ranking import Ordering, compare, sort_ranked
from reco_agent.types import RankedEntity, SearchHit

FragmentResult = tuple[str, Sequence[SearchHit]]


def merge_fragment_results(results: Sequence[FragmentResult]) -> list[RankedEntity]:
    """Fold the hits of several fragments into one entry per entity id.

    Every hit increments the entity's ``match_count``, including repeated hits
    coming from identical fragments. The score triple kept for an entity is the
    best one seen, judged by the hit comparator. The output is sorted by
    ``match_count`` descending, then by the hit comparator.
    """

    merged: dict[str, RankedEntity] = {}
    for fragment, hits in results:
        for hit in hits:
            current = merged.get(hit.id)
            if current is None:
                merged[hit.id] = RankedEntity.from_hit(hit, fragment)
                continue

            current.match_count += 1
            if fragment and fragment not in current.matched_fragments:
                current.matched_fragments.append(fragment)
            if compare(hit, current) is Ordering.BEFORE:
                current.fused_score = hit.fused_score
                current.vector_score = hit.vector_score
                current.lexical_score = hit.lexical_score
                current.matching_fragment = hit.matching_fragment

    return sort_ranked(merged.values())
