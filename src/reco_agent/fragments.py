"""Splitting free-text answers into short query fragments."""

from __future__ import annotations

import re

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?;])\s+|\n+")
_CLAUSE_SPLIT = re.compile(r",\s+(?:and|but|or)\s+|\s+(?:and also|but also)\s+", re.IGNORECASE)


def split_fragments(
    text: str,
    *,
    min_tokens: int = 3,
    max_tokens: int = 24,
) -> list[str]:
    """Break an answer into fragments usable as independent search queries.

    Sentences are split first, then long sentences are split on coordinating
    clauses. Fragments shorter than ``min_tokens`` are glued to the previous
    fragment. Duplicates (case-insensitive) are dropped, first occurrence kept.
    """

    if min_tokens < 1 or max_tokens < min_tokens:
        raise ValueError("expected 1 <= min_tokens <= max_tokens")

    pieces: list[str] = []
    for sentence in _SENTENCE_SPLIT.split(text):
        sentence = _normalize(sentence)
        if not sentence:
            continue
        if _token_count(sentence) > max_tokens:
            pieces.extend(
                _normalize(part) for part in _CLAUSE_SPLIT.split(sentence) if _normalize(part)
            )
        else:
            pieces.append(sentence)

    fragments: list[str] = []
    for piece in pieces:
        if fragments and _token_count(piece) < min_tokens:
            fragments[-1] = f"{fragments[-1]} {piece}"
        else:
            fragments.append(piece)

    seen: set[str] = set()
    unique: list[str] = []
    for fragment in fragments:
        key = fragment.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(fragment)
    return unique


def _normalize(text: str) -> str:
    return " ".join(text.split()).strip(" .;")


def _token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
