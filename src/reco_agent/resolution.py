"""Three-tier entity resolution against the conversation cache."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from reco_agent.config import SearchConfig
from reco_agent.errors import SearchBackendError
from reco_agent.retrieval.gateway import SearchGateway
from reco_agent.state import FOCUSABLE_KINDS, EntityResolutionCache
from reco_agent.types import EntityKind, RankedEntity

logger = logging.getLogger(__name__)


class ResolutionStatus(str, Enum):
    RESOLVED_PRESENT = "resolved_present"
    RESOLVED_ABSENT = "resolved_absent"
    UNRESOLVED = "unresolved"


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving one designation."""

    kind: EntityKind
    status: ResolutionStatus
    entity: RankedEntity | None = None
    designation: str = ""


class EntityResolver:
    """Turns a free-text designation plus an optional id hint into an entity.

    Resolution order:
    1. The id hint, when it is already in the cache's keyed map.
    2. A single-result search on the designation; the hit is *present* if its
       id is in the keyed map, *absent* otherwise.
    3. Nothing found: *unresolved*. The caller asks the user; it never guesses.
    """

    def __init__(self, gateway: SearchGateway, config: SearchConfig | None = None) -> None:
        self.gateway = gateway
        self.config = config or gateway.config

    async def resolve(
        self,
        cache: EntityResolutionCache,
        kind: EntityKind,
        designation: str | None,
        *,
        id_hint: str | None = None,
    ) -> Resolution:
        if kind not in FOCUSABLE_KINDS:
            raise ValueError(f"Use resolve_subject for {kind.value} lookups")

        text = (designation or "").strip()
        keyed = cache.entities(kind)
        if id_hint and id_hint in keyed:
            return Resolution(kind, ResolutionStatus.RESOLVED_PRESENT, keyed[id_hint], text)

        if not text:
            return Resolution(kind, ResolutionStatus.UNRESOLVED, designation=text)

        try:
            hits = await self.gateway.search(
                kind, text, limit=1, min_score=self.config.resolution_min_score
            )
        except SearchBackendError as exc:
            logger.warning("Resolution search failed for %s %r: %s", kind.value, text, exc)
            hits = []

        if not hits:
            return Resolution(kind, ResolutionStatus.UNRESOLVED, designation=text)

        best = hits[0]
        if best.id in keyed:
            return Resolution(kind, ResolutionStatus.RESOLVED_PRESENT, keyed[best.id], text)
        return Resolution(
            kind,
            ResolutionStatus.RESOLVED_ABSENT,
            RankedEntity.from_hit(best, text),
            text,
        )

    @staticmethod
    def apply(cache: EntityResolutionCache, resolution: Resolution) -> None:
        """Record a resolution in the cache.

        Present entities become focused; absent ones wait for confirmation;
        unresolved designations leave the cache untouched.
        """

        if resolution.entity is None:
            return
        if resolution.status is ResolutionStatus.RESOLVED_PRESENT:
            cache.set_focused(resolution.kind, resolution.entity)
        elif resolution.status is ResolutionStatus.RESOLVED_ABSENT:
            cache.set_pending(resolution.kind, resolution.entity)

    async def resolve_and_apply(
        self,
        cache: EntityResolutionCache,
        kind: EntityKind,
        designation: str | None,
        *,
        id_hint: str | None = None,
    ) -> Resolution:
        resolution = await self.resolve(cache, kind, designation, id_hint=id_hint)
        self.apply(cache, resolution)
        logger.info(
            "Resolved %s %r -> %s", kind.value, resolution.designation, resolution.status.value
        )
        return resolution

    @staticmethod
    def confirm(
        cache: EntityResolutionCache, kind: EntityKind | None = None
    ) -> RankedEntity | None:
        """Promote a pending entity after the user confirmed it.

        With no kind given, the first pending kind in precedence order
        (practitioner, activity, practice) is promoted and the others stay
        pending. Returns ``None`` when there is nothing to promote.
        """

        if kind is None:
            pending_kinds = cache.pending_kinds()
            if not pending_kinds:
                return None
            kind = pending_kinds[0]
        if kind not in FOCUSABLE_KINDS:
            return None
        return cache.promote_pending(kind)

    async def resolve_subject(
        self, cache: EntityResolutionCache, subject: str | None
    ) -> list[RankedEntity]:
        """Look up knowledge-base articles for a subject.

        Every hit of the top-k search is remembered and becomes a focused
        article; there is no confirmation tier for articles.
        """

        text = (subject or "").strip()
        if not text:
            return []
        try:
            hits = await self.gateway.search(
                EntityKind.ARTICLE, text, limit=self.config.subject_top_k
            )
        except SearchBackendError as exc:
            logger.warning("Subject search failed for %r: %s", text, exc)
            return []

        articles = [RankedEntity.from_hit(hit, text) for hit in hits]
        cache.remember(articles)
        if articles:
            cache.focused_articles = [cache.articles[article.id] for article in articles]
        return articles
