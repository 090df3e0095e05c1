"""Recommendation extraction from tool outputs."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any, Protocol

from reco_agent.types import ExtractedRecommendations, RecommendationItem


class RecommendationExtractor(Protocol):
    def __call__(self, tool_name: str, raw_output: Any) -> ExtractedRecommendations:
        """Pull recommended activities and practices out of one tool result."""


def extract_recommendations(tool_name: str, raw_output: Any) -> ExtractedRecommendations:
    """Default extractor: reads ``activities`` and ``practices`` lists.

    JSON strings are decoded first; entries without an ``id`` are skipped.
    Error strings and other shapes yield nothing.
    """

    del tool_name
    payload = raw_output
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return ExtractedRecommendations()
    if not isinstance(payload, dict):
        return ExtractedRecommendations()

    return ExtractedRecommendations(
        activities=_items(payload.get("activities")),
        practices=_items(payload.get("practices")),
    )


def merge_recommendations(
    batches: Iterable[ExtractedRecommendations],
) -> ExtractedRecommendations:
    """Merge by id, in order; the first item seen for an id is kept."""

    merged = ExtractedRecommendations()
    seen_activities: set[str] = set()
    seen_practices: set[str] = set()
    for batch in batches:
        for item in batch.activities:
            if item.id not in seen_activities:
                seen_activities.add(item.id)
                merged.activities.append(item)
        for item in batch.practices:
            if item.id not in seen_practices:
                seen_practices.add(item.id)
                merged.practices.append(item)
    return merged


def _items(entries: Any) -> list[RecommendationItem]:
    if not isinstance(entries, list):
        return []
    items: list[RecommendationItem] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("id"):
            continue
        score = entry.get("relevance_score")
        items.append(
            RecommendationItem(
                id=str(entry["id"]),
                title=str(entry.get("title") or ""),
                relevance_score=float(score) if isinstance(score, (int, float)) else None,
            )
        )
    return items
