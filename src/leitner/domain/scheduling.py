"""
Leitner box transitions, review scheduling and due/frozen classification.

This is a pure computation module with no I/O. Every caller that moves a
card between boxes or decides whether it is due goes through here.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from .constants import DEFAULT_REVIEW_INTERVALS, MAX_BOX, MIN_BOX
from .exceptions import OutOfRangeError
from .models import Card, DuePolicy, ReviewStatus

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class IntervalTable:
    """
    Days until the next review, indexed by target box.

    Attributes:
        days: One entry per box, boxes 1..5 in order. Must be positive and
            non-decreasing.
    """

    days: tuple[int, ...] = DEFAULT_REVIEW_INTERVALS

    def __post_init__(self):
        days = tuple(self.days)
        if len(days) != MAX_BOX:
            raise ValueError(f"Interval table needs {MAX_BOX} entries, got {len(days)}")
        if any(d < 1 for d in days):
            raise ValueError(f"Intervals must be at least 1 day: {days}")
        if any(a > b for a, b in zip(days, days[1:])):
            raise ValueError(f"Intervals must be non-decreasing: {days}")
        object.__setattr__(self, "days", days)

    @classmethod
    def from_sequence(cls, days: Sequence[int]) -> "IntervalTable":
        return cls(days=tuple(int(d) for d in days))

    def days_for(self, box_number: int) -> int:
        """Return the interval for ``box_number``; raises OutOfRangeError outside 1-5."""
        if not is_valid_box(box_number):
            raise OutOfRangeError(box_number)
        return self.days[box_number - 1]

    def schedule(self, box_number: int, now: datetime) -> datetime:
        """Next review instant for a card that has just moved into ``box_number``."""
        return now + timedelta(days=self.days_for(box_number))


DEFAULT_TABLE = IntervalTable()


def is_valid_box(box_number: object) -> bool:
    return (
        isinstance(box_number, int)
        and not isinstance(box_number, bool)
        and MIN_BOX <= box_number <= MAX_BOX
    )


def next_box(current_box: int, correct: bool) -> int:
    """
    Box a card lands in after an answer.

    A correct answer promotes by one box, capped at the top box. Any wrong
    answer sends the card back to box 1.
    """
    if correct:
        return min(current_box + 1, MAX_BOX)
    return MIN_BOX


def schedule(box_number: int, now: datetime, table: IntervalTable = DEFAULT_TABLE) -> datetime:
    """
    Calendar-day addition of the box interval to ``now``.

    Wall-clock time is preserved: a card answered at 23:00 and scheduled one
    day out becomes eligible at 23:00 the next day.
    """
    return table.schedule(box_number, now)


def align_zone(value: datetime, now: datetime) -> datetime:
    """Express ``value`` in the same zone convention as ``now``."""
    if now.tzinfo is None:
        if value.tzinfo is None:
            return value
        # Naive reference instants are local wall time
        return value.astimezone().replace(tzinfo=None)
    if value.tzinfo is None:
        return value.replace(tzinfo=now.tzinfo)
    return value.astimezone(now.tzinfo)


def classify(
    card: Card | datetime | None,
    now: datetime,
    policy: DuePolicy = DuePolicy.CALENDAR_DAY,
) -> ReviewStatus:
    """
    Decide whether a card is due at ``now`` or frozen, and for how long.

    Args:
        card: A Card, or a bare review date.
        now: The reference instant, captured once by the caller.
        policy: CALENDAR_DAY ignores time of day (a card due at 15:00 is due
            at 09:00 the same day). EXACT compares full timestamps.

    Returns:
        ReviewStatus. A missing review date counts as due.
    """
    review_date = card.next_review_date if isinstance(card, Card) else card
    if review_date is None:
        return ReviewStatus(is_frozen=False, days_until_review=0)

    review_date = align_zone(review_date, now)

    if policy == DuePolicy.EXACT:
        if review_date <= now:
            return ReviewStatus(is_frozen=False, days_until_review=0)
        seconds = (review_date - now).total_seconds()
        return ReviewStatus(is_frozen=True, days_until_review=math.ceil(seconds / SECONDS_PER_DAY))

    review_day = review_date.date()
    today = now.date()
    if review_day > today:
        return ReviewStatus(is_frozen=True, days_until_review=(review_day - today).days)
    return ReviewStatus(is_frozen=False, days_until_review=0)
