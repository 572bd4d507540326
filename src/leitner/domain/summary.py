"""
End-of-session summary: success rate, points and deferred cards.

Pure computation over a finished (or abandoned) session's tally.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .constants import (
    BONUS_MIN_CARDS,
    GREAT_SESSION_BONUS,
    GREAT_SESSION_RATE,
    MIN_BOX,
    PERFECT_SESSION_BONUS,
    POINTS_PER_CORRECT,
    POINTS_PER_INCORRECT,
)
from .models import Card, ReviewStatus, SessionStats


@dataclass
class SessionSummary:
    correct: int
    incorrect: int
    total: int
    success_rate: float  # percent, 0-100
    points_earned: int
    duration_seconds: int
    deferred_card_ids: list[str] = field(default_factory=list)  # back in box 1, due tomorrow


def success_rate(stats: SessionStats) -> float:
    if stats.total == 0:
        return 0.0
    return stats.correct / stats.total * 100


def points_for(stats: SessionStats) -> int:
    """
    Points earned for a session.

    10 per correct answer, 2 per incorrect answer, plus a bonus for sessions
    of at least five cards: 50 for a perfect run, otherwise 25 at 70% or more.
    """
    points = stats.correct * POINTS_PER_CORRECT + stats.incorrect * POINTS_PER_INCORRECT
    if stats.total < BONUS_MIN_CARDS:
        return points

    rate = success_rate(stats)
    if rate == 100:
        points += PERFECT_SESSION_BONUS
    elif rate >= GREAT_SESSION_RATE:
        points += GREAT_SESSION_BONUS
    return points


def summarize(
    stats: SessionStats,
    duration_seconds: int,
    cards: Iterable[tuple[Card, ReviewStatus]] = (),
) -> SessionSummary:
    deferred = [
        card.id for card, status in cards if status.is_frozen and card.box_number == MIN_BOX
    ]
    return SessionSummary(
        correct=stats.correct,
        incorrect=stats.incorrect,
        total=stats.total,
        success_rate=success_rate(stats),
        points_earned=points_for(stats),
        duration_seconds=max(0, int(duration_seconds)),
        deferred_card_ids=deferred,
    )
