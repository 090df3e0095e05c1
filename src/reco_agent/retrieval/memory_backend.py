"""In-memory hybrid search backend."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from hashlib import blake2b
from math import sqrt
from typing import Any

from reco_agent.retrieval.ranking import sort_hits
from reco_agent.types import EntityKind, SearchHit

_WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)

SparseVector = dict[int, float]


@dataclass(slots=True)
class CatalogEntry:
    """One searchable entity held by :class:`InMemorySearchBackend`."""

    id: str
    title: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def searchable_text(self) -> str:
        return f"{self.title} {self.text}"


@dataclass(slots=True)
class _StoredEntry:
    entry: CatalogEntry
    vector: SparseVector
    terms: set[str]


class InMemorySearchBackend:
    """Deterministic hybrid search used for tests and local prototyping.

    Both signals come from one tokenization of the entry. The vector signal is
    the cosine similarity of signed hashed term counts, clipped to ``[0, 1]``.
    The lexical signal is the share of query terms found in the entry. The
    fused score is their weighted sum.
    """

    def __init__(
        self,
        kind: EntityKind,
        *,
        dimension: int = 256,
        vector_weight: float = 0.7,
    ) -> None:
        if not 0.0 <= vector_weight <= 1.0:
            raise ValueError("vector_weight must be within [0, 1]")
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.kind = kind
        self.dimension = dimension
        self.vector_weight = vector_weight
        self._store: dict[str, _StoredEntry] = {}

    def upsert(self, entries: list[CatalogEntry]) -> None:
        for entry in entries:
            tokens = _tokens(entry.searchable_text)
            self._store[entry.id] = _StoredEntry(
                entry=entry,
                vector=_hashed_vector(tokens, self.dimension),
                terms=set(tokens),
            )

    async def search(
        self,
        text: str,
        *,
        limit: int | None = None,
        min_score: float = 0.0,
    ) -> list[SearchHit]:
        tokens = _tokens(text)
        if not tokens:
            return []
        query_terms = set(tokens)
        query_vector = _hashed_vector(tokens, self.dimension)

        hits: list[SearchHit] = []
        for stored in self._store.values():
            vector = max(0.0, _dot(query_vector, stored.vector))
            lexical = len(query_terms & stored.terms) / len(query_terms)
            fused = self.vector_weight * vector + (1.0 - self.vector_weight) * lexical
            if fused < min_score or fused <= 0.0:
                continue
            hits.append(
                SearchHit(
                    id=stored.entry.id,
                    kind=self.kind,
                    fused_score=round(fused, 6),
                    vector_score=round(vector, 6),
                    lexical_score=round(lexical, 6),
                    matching_fragment=stored.entry.text[:200],
                    title=stored.entry.title,
                    metadata=dict(stored.entry.metadata),
                )
            )

        ranked = sort_hits(hits)
        return ranked if limit is None else ranked[:limit]


def _tokens(text: str) -> list[str]:
    return [token.lower() for token in _WORD_PATTERN.findall(text)]


def _hashed_vector(tokens: list[str], dimension: int) -> SparseVector:
    """Unit-length signed bucket counts; colliding terms may cancel out."""

    buckets: Counter[int] = Counter()
    for token, count in Counter(tokens).items():
        digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
        sign = -1 if digest[4] % 2 else 1
        buckets[int.from_bytes(digest[:4], "little") % dimension] += sign * count

    norm = sqrt(sum(value * value for value in buckets.values()))
    if norm == 0:
        return {}
    return {index: value / norm for index, value in buckets.items() if value}


def _dot(a: SparseVector, b: SparseVector) -> float:
    if len(b) < len(a):
        a, b = b, a
    return sum(value * b.get(index, 0.0) for index, value in a.items())
