"""
Domain models for the Leitner scheduler.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DuePolicy(str, Enum):
    """How a card's review date is compared against the reference instant."""

    CALENDAR_DAY = "calendar_day"  # midnight-normalised, time of day ignored
    EXACT = "exact"  # full timestamp comparison


@dataclass
class Card:
    """
    A flashcard as far as scheduling is concerned.

    Attributes:
        id: Opaque identifier assigned by the store.
        box_number: Leitner box, 1-5 for well-formed rows.
        next_review_date: When the card becomes eligible again. None only for
            malformed rows; such cards are treated as due.
        subject_name: Scoping label.
        topic_name: Scoping label.
        in_study_bank: Cards outside the study bank are never scheduled.
    """

    id: str
    box_number: int = 1
    next_review_date: datetime | None = None
    subject_name: str = ""
    topic_name: str = ""
    in_study_bank: bool = True

    # Content (for display purposes)
    question: str | None = None
    answer: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class ReviewStatus:
    """Derived due/frozen state of a card at a reference instant."""

    is_frozen: bool
    days_until_review: int = 0

    @property
    def is_due(self) -> bool:
        return not self.is_frozen


@dataclass(frozen=True)
class CardFilter:
    """Local scoping filter applied by the aggregator. None means "any"."""

    subject_name: str | None = None
    topic_name: str | None = None
    box_number: int | None = None

    def matches(self, card: Card) -> bool:
        if self.subject_name is not None and card.subject_name != self.subject_name:
            return False
        if self.topic_name is not None and card.topic_name != self.topic_name:
            return False
        if self.box_number is not None and card.box_number != self.box_number:
            return False
        return True


@dataclass(frozen=True)
class CardQuery:
    """Store-side query for fetching a user's cards."""

    user_id: str
    subject_name: str | None = None
    topic_name: str | None = None
    box_number: int | None = None
    in_study_bank: bool = True
    active_subjects_only: bool = True

    def to_filter(self) -> CardFilter:
        return CardFilter(
            subject_name=self.subject_name,
            topic_name=self.topic_name,
            box_number=self.box_number,
        )


@dataclass
class BoxAggregate:
    """
    Per-box counts and due totals over a scoped card collection.

    Recomputed on demand, never persisted.
    """

    box1: int = 0
    box2: int = 0
    box3: int = 0
    box4: int = 0
    box5: int = 0
    total_due: int = 0
    total_frozen: int = 0
    total_in_study_bank: int = 0
    due_by_box: dict[int, int] = field(
        default_factory=lambda: {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
    )

    @property
    def counts(self) -> dict[int, int]:
        return {1: self.box1, 2: self.box2, 3: self.box3, 4: self.box4, 5: self.box5}


@dataclass
class SessionStats:
    """Running tally for one study session."""

    correct: int = 0
    incorrect: int = 0
    total: int = 0

    def record(self, correct: bool) -> None:
        if correct:
            self.correct += 1
        else:
            self.incorrect += 1
        self.total += 1


@dataclass(frozen=True)
class ReviewRecord:
    """
    A single review log entry.

    Attributes:
        card_id: The card that was reviewed.
        user_id: Owner of the card, if known.
        was_correct: Self-assessed or checker-provided correctness.
        quality: 5 for a correct answer, 1 for an incorrect one.
        previous_box: Box before the answer.
        new_box: Box after the answer.
        reviewed_at: Instant the answer was given.
    """

    card_id: str
    user_id: str | None
    was_correct: bool
    quality: int
    previous_box: int
    new_box: int
    reviewed_at: datetime
