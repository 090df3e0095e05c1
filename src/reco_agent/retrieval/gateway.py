"""Per-kind search backends and concurrent fragment fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Protocol

from reco_agent.config import SearchConfig
from reco_agent.errors import SearchBackendError, SearchTimeout
from reco_agent.retrieval.merger import merge_fragment_results
from reco_agent.types import EntityKind, RankedEntity, SearchHit

logger = logging.getLogger(__name__)


class SearchBackend(Protocol):
    """Hybrid search over one entity kind.

    Implementations must report ``vector_score`` and ``lexical_score`` next to
    the fused score so ties can be broken by the ranker.
    """

    async def search(
        self,
        text: str,
        *,
        limit: int | None = None,
        min_score: float = 0.0,
    ) -> list[SearchHit]:
        """Return hits for ``text`` sorted by relevance."""


class SearchGateway:
    """Routes searches to the backend of each kind and applies deadlines."""

    def __init__(
        self,
        backends: Mapping[EntityKind, SearchBackend],
        config: SearchConfig | None = None,
    ) -> None:
        self._backends = dict(backends)
        self.config = config or SearchConfig()

    def supports(self, kind: EntityKind) -> bool:
        return kind in self._backends

    async def search(
        self,
        kind: EntityKind,
        text: str,
        *,
        limit: int | None = None,
        min_score: float = 0.0,
    ) -> list[SearchHit]:
        """Run one search; failures and timeouts propagate as ``SearchBackendError``."""

        backend = self._backends.get(kind)
        if backend is None:
            raise SearchBackendError(f"No search backend registered for {kind.value}")
        try:
            return await asyncio.wait_for(
                backend.search(text, limit=limit, min_score=min_score),
                timeout=self.config.search_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise SearchTimeout(
                f"{kind.value} search timed out after {self.config.search_timeout_seconds}s"
            ) from exc
        except SearchBackendError:
            raise
        except Exception as exc:
            raise SearchBackendError(f"{kind.value} search failed: {exc}") from exc

    async def search_fragments(
        self,
        kind: EntityKind,
        fragments: Sequence[str],
        *,
        limit: int | None = None,
        min_score: float = 0.0,
    ) -> list[RankedEntity]:
        """Search every fragment concurrently, then merge and rank.

        A fragment whose search fails contributes no hits; its siblings are
        unaffected.
        """

        texts = [fragment for fragment in fragments if fragment.strip()]
        if not texts:
            return []

        hit_lists = await asyncio.gather(
            *(self._search_fragment(kind, text, limit, min_score) for text in texts)
        )
        merged = merge_fragment_results(list(zip(texts, hit_lists, strict=True)))
        logger.debug(
            "Merged %d %s fragments into %d entities", len(texts), kind.value, len(merged)
        )
        return merged

    async def _search_fragment(
        self,
        kind: EntityKind,
        text: str,
        limit: int | None,
        min_score: float,
    ) -> list[SearchHit]:
        try:
            return await self.search(kind, text, limit=limit, min_score=min_score)
        except SearchBackendError as exc:
            logger.warning("Fragment search failed for %s: %s", kind.value, exc)
            return []
