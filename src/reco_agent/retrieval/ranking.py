"""Ordering of hybrid search hits.

A fused score collapses a dense (vector) signal and a sparse (lexical) signal
into one number. When two hits share the same fused score, the ranker looks
at which signal led the fusion for each side and breaks the tie with the
signal that did not already explain it:

1. Higher ``fused_score`` wins.
2. A hit is *vector-led* when ``vector_score >= lexical_score``, otherwise
   *lexical-led*. Missing scores count as ``0.0``.
3. Both vector-led: higher ``lexical_score`` wins.
   Both lexical-led: higher ``vector_score`` wins.
4. Mixed: the lexical-led hit wins.
5. Otherwise the hits tie.

Within equal fused scores this yields lexical-led hits (by vector score
descending) followed by vector-led hits (by lexical score descending), which
is a total preorder, so sorting is reproducible.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum
from functools import cmp_to_key
from typing import Protocol, TypeVar


class Scored(Protocol):
    fused_score: float
    vector_score: float | None
    lexical_score: float | None


class Counted(Scored, Protocol):
    match_count: int


class Ordering(IntEnum):
    """Result of comparing two hits; usable directly as a ``cmp`` value."""

    BEFORE = -1
    TIE = 0
    AFTER = 1


_S = TypeVar("_S", bound=Scored)
_C = TypeVar("_C", bound=Counted)


def _by_higher(left: float, right: float) -> Ordering:
    if left > right:
        return Ordering.BEFORE
    if left < right:
        return Ordering.AFTER
    return Ordering.TIE


def compare(a: Scored, b: Scored) -> Ordering:
    """Compare two hits; ``BEFORE`` means ``a`` ranks ahead of ``b``."""

    primary = _by_higher(a.fused_score, b.fused_score)
    if primary is not Ordering.TIE:
        return primary

    a_vector = a.vector_score or 0.0
    a_lexical = a.lexical_score or 0.0
    b_vector = b.vector_score or 0.0
    b_lexical = b.lexical_score or 0.0
    a_vector_led = a_vector >= a_lexical
    b_vector_led = b_vector >= b_lexical

    if a_vector_led and b_vector_led:
        return _by_higher(a_lexical, b_lexical)
    if not a_vector_led and not b_vector_led:
        return _by_higher(a_vector, b_vector)
    # Mixed leads: the lexical-led side goes first.
    return Ordering.AFTER if a_vector_led else Ordering.BEFORE


def compare_ranked(a: Counted, b: Counted) -> Ordering:
    """Order by ``match_count`` descending, then by :func:`compare`."""

    by_count = _by_higher(a.match_count, b.match_count)
    if by_count is not Ordering.TIE:
        return by_count
    return compare(a, b)


def sort_hits(hits: Iterable[_S]) -> list[_S]:
    return sorted(hits, key=cmp_to_key(compare))


def sort_ranked(entities: Iterable[_C]) -> list[_C]:
    return sorted(entities, key=cmp_to_key(compare_ranked))
