"""
Box aggregator: per-box counts and due totals for display.

`aggregate` is pure and tolerant of malformed rows. `BoxStatsService` wraps
it with a store fetch and turns store failures into a typed outcome.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from leitner.domain.exceptions import StoreError
from leitner.domain.models import BoxAggregate, Card, CardFilter, CardQuery, DuePolicy
from leitner.domain.ports import CardStore
from leitner.domain.scheduling import classify, is_valid_box

logger = logging.getLogger(__name__)


def aggregate(
    cards: Iterable[Card],
    now: datetime,
    card_filter: CardFilter | None = None,
    policy: DuePolicy = DuePolicy.CALENDAR_DAY,
) -> BoxAggregate:
    """
    Count cards per box and how many are due at ``now``.

    Only study-bank cards are counted. A card with an out-of-range box is
    left out of the per-box counts but still counts toward the totals.
    """
    result = BoxAggregate()

    for card in cards:
        if not card.in_study_bank:
            continue
        if card_filter is not None and not card_filter.matches(card):
            continue

        result.total_in_study_bank += 1
        valid_box = is_valid_box(card.box_number)
        if valid_box:
            key = f"box{card.box_number}"
            setattr(result, key, getattr(result, key) + 1)
        else:
            logger.warning(f"Card {card.id} has invalid box number {card.box_number!r}")

        if classify(card, now, policy).is_frozen:
            result.total_frozen += 1
        else:
            result.total_due += 1
            if valid_box:
                result.due_by_box[card.box_number] += 1

    return result


@dataclass
class StatsOutcome:
    """Either an aggregate or the store error that prevented computing one."""

    aggregate: BoxAggregate | None = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BoxStatsService:
    """
    Application service for fetching a scoped card set and aggregating it.

    Depends on the CardStore abstraction, not a concrete adapter.
    """

    def __init__(self, store: CardStore, policy: DuePolicy = DuePolicy.CALENDAR_DAY):
        self._store = store
        self._policy = policy

    async def load(self, query: CardQuery, now: datetime) -> StatsOutcome:
        """
        Fetch cards for ``query`` and aggregate them at ``now``.

        Store failures are returned in the outcome, never raised.
        """
        try:
            cards = await self._store.fetch_cards(query)
        except (StoreError, TimeoutError) as e:
            logger.error(f"Failed to load cards for user={query.user_id}: {e}")
            error = e if isinstance(e, StoreError) else StoreError(f"Timed out: {e}")
            return StatsOutcome(error=error)

        # Store scoping is trusted, the local filter only narrows further
        result = aggregate(cards, now, query.to_filter(), self._policy)
        logger.debug(
            f"Aggregated {result.total_in_study_bank} cards, {result.total_due} due"
        )
        return StatsOutcome(aggregate=result)
