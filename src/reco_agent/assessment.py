"""Assessment-universe aggregation for the fixed intake flow.

Every answer contributes fragments. On demand (typically after the last
question) all accumulated fragments are searched against practices,
activities and practitioners, deduplicated with match counts, and the
taxonomy families are ranked by dominance.

Only practices feed the family statistics: the practice taxonomy is curated
and closed, while activities are authored by practitioners with uneven
wording. Activities are still attached to their family for display and counted
in ``total_matches``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from reco_agent.config import AssessmentConfig, SearchConfig
from reco_agent.fragments import split_fragments
from reco_agent.retrieval.gateway import SearchGateway
from reco_agent.retrieval.ranking import sort_ranked
from reco_agent.state import AssessmentUniverse, TurnLogEntry, TypedFragment
from reco_agent.types import EntityKind, RankedEntity, RankedFamily

logger = logging.getLogger(__name__)


class AssessmentAggregator:
    """Accumulates intake answers and computes the assessment universe."""

    def __init__(
        self,
        gateway: SearchGateway,
        config: AssessmentConfig | None = None,
        search_config: SearchConfig | None = None,
    ) -> None:
        self.gateway = gateway
        self.config = config or AssessmentConfig()
        self.search_config = search_config or gateway.config

    @property
    def questions(self) -> list[str]:
        return self.config.questions

    def start(self) -> AssessmentUniverse:
        return AssessmentUniverse()

    def next_question(self, universe: AssessmentUniverse) -> tuple[int, str] | None:
        for index, question in enumerate(self.questions):
            if index not in universe.answered_questions:
                return index, question
        return None

    def is_complete(self, universe: AssessmentUniverse) -> bool:
        return self.next_question(universe) is None

    def record_answer(
        self,
        universe: AssessmentUniverse,
        answer: str,
        *,
        question_index: int | None = None,
        fragments: Sequence[TypedFragment] | None = None,
    ) -> list[TypedFragment]:
        """Log one answer and append its fragments to the universe.

        Without an explicit ``question_index`` the answer goes to the next
        unanswered question. Without typed ``fragments`` the answer text is
        split into free-text fragments.
        """

        if question_index is None:
            upcoming = self.next_question(universe)
            question_index = upcoming[0] if upcoming else None
        if question_index is not None and not 0 <= question_index < len(self.questions):
            raise ValueError(f"Unknown intake question index: {question_index}")

        question = self.questions[question_index] if question_index is not None else None
        universe.turn_log.append(TurnLogEntry(question=question, answer=answer))
        if question_index is not None and question_index not in universe.answered_questions:
            universe.answered_questions.append(question_index)

        if fragments is not None:
            added = [
                fragment.model_copy(update={"question_index": question_index})
                if fragment.question_index is None
                else fragment
                for fragment in fragments
                if fragment.text.strip()
            ]
        else:
            added = [
                TypedFragment(text=text, question_index=question_index)
                for text in split_fragments(answer)
            ]
        universe.fragments.extend(added)
        return added

    async def compute(self, universe: AssessmentUniverse) -> AssessmentUniverse:
        """Search every accumulated fragment and rank families by dominance."""

        texts = [fragment.text for fragment in universe.fragments]
        floor = self.search_config.universe_min_score
        kinds = [EntityKind.PRACTICE, EntityKind.ACTIVITY]
        if self.gateway.supports(EntityKind.PRACTITIONER):
            kinds.append(EntityKind.PRACTITIONER)

        results = await asyncio.gather(
            *(
                self.gateway.search_fragments(kind, texts, limit=None, min_score=floor)
                for kind in kinds
            )
        )
        by_kind = dict(zip(kinds, results, strict=True))

        universe.practices = _union(universe.practices, by_kind[EntityKind.PRACTICE])
        universe.activities = _union(universe.activities, by_kind[EntityKind.ACTIVITY])
        universe.practitioners = _union(
            universe.practitioners, by_kind.get(EntityKind.PRACTITIONER, [])
        )
        universe.families = rank_families(
            universe.practices,
            universe.activities,
            top_per_family=self.config.top_per_family,
        )
        logger.info(
            "Assessment universe: %d fragments, %d practices, %d activities, %d families",
            len(texts),
            len(universe.practices),
            len(universe.activities),
            len(universe.families),
        )
        return universe


def rank_families(
    practices: Sequence[RankedEntity],
    activities: Sequence[RankedEntity] = (),
    *,
    top_per_family: int = 4,
) -> list[RankedFamily]:
    """Rank taxonomy families by the practices matched for them.

    ``practice_match_weight`` sums the match counts of a family's practices and
    ``dominance_score`` sums ``fused_score * match_count`` over them.
    """

    families: dict[str, RankedFamily] = {}

    for practice in practices:
        family = _family_for(families, practice)
        if family is None:
            continue
        family.practice_match_weight += practice.match_count
        family.dominance_score += practice.fused_score * practice.match_count
        family.total_matches += practice.match_count
        if len(family.top_practice_ids) < top_per_family:
            family.top_practice_ids.append(practice.id)

    for activity in activities:
        family = _family_for(families, activity)
        if family is None:
            continue
        family.total_matches += activity.match_count
        if len(family.top_activity_ids) < top_per_family:
            family.top_activity_ids.append(activity.id)

    ranked = sorted(
        families.values(),
        key=lambda family: (-family.dominance_score, -family.practice_match_weight, family.name),
    )
    _assign_percentages(ranked)
    return ranked


def _family_for(
    families: dict[str, RankedFamily], entity: RankedEntity
) -> RankedFamily | None:
    family_id = entity.family_id
    if family_id is None:
        return None
    family = families.get(family_id)
    if family is None:
        family = RankedFamily(id=family_id, name=entity.family_name or family_id)
        families[family_id] = family
    return family


def _assign_percentages(families: list[RankedFamily]) -> None:
    total = sum(family.dominance_score for family in families)
    if total <= 0:
        for family in families:
            family.dominance_percentage = 0.0
        return

    for family in families:
        family.dominance_percentage = round(family.dominance_score / total * 100, 2)

    # Fold the rounding remainder into the last contributing family.
    contributing = [family for family in families if family.dominance_score > 0]
    remainder = round(100 - sum(family.dominance_percentage for family in families), 2)
    if remainder and contributing:
        last = contributing[-1]
        last.dominance_percentage = round(last.dominance_percentage + remainder, 2)


def _union(
    previous: Sequence[RankedEntity], fresh: Sequence[RankedEntity]
) -> list[RankedEntity]:
    if not previous:
        return list(fresh)
    merged = {entity.id: entity for entity in fresh}
    for entity in previous:
        merged.setdefault(entity.id, entity)
    return sort_ranked(merged.values())
