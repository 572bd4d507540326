"""
Card ordering policies applied before a study session starts.

Every policy is a stable sort: cards that compare equal keep the order the
store returned them in. None of them randomize.
"""

from collections.abc import Sequence
from datetime import datetime
from enum import Enum

from leitner.domain.constants import MAX_BOX
from leitner.domain.models import Card, DuePolicy
from leitner.domain.scheduling import align_zone, classify, is_valid_box


class OrderingPolicy(str, Enum):
    DUE_FIRST = "due_first"
    BOX_ASCENDING = "box_ascending"
    REVIEW_DATE_ASCENDING = "review_date_ascending"


def order_cards(
    cards: Sequence[Card],
    policy: OrderingPolicy,
    now: datetime,
    due_policy: DuePolicy = DuePolicy.CALENDAR_DAY,
) -> list[Card]:
    """
    Return a new list of ``cards`` sorted by ``policy``.

    Args:
        cards: Cards in store order.
        policy: Which ordering to apply.
        now: Reference instant for due classification (DUE_FIRST only).
        due_policy: Comparison used to decide due vs frozen.
    """
    if policy == OrderingPolicy.DUE_FIRST:
        return sorted(cards, key=lambda c: classify(c, now, due_policy).is_frozen)

    if policy == OrderingPolicy.BOX_ASCENDING:
        # Malformed boxes sort after box 5
        return sorted(
            cards, key=lambda c: c.box_number if is_valid_box(c.box_number) else MAX_BOX + 1
        )

    if policy == OrderingPolicy.REVIEW_DATE_ASCENDING:
        # Cards without a date are due immediately, so they lead
        undated = [c for c in cards if c.next_review_date is None]
        dated = [c for c in cards if c.next_review_date is not None]
        return undated + sorted(dated, key=lambda c: align_zone(c.next_review_date, now))

    raise ValueError(f"Unknown ordering policy: {policy!r}")
