"""Exception hierarchy for the scheduling core."""


class LeitnerError(Exception):
    """Base class for all scheduler errors."""


class OutOfRangeError(LeitnerError, ValueError):
    """A box number outside [1, 5] was passed where a valid box is required."""

    def __init__(self, box_number: int):
        self.box_number = box_number
        super().__init__(f"Box number {box_number!r} is outside the range 1-5")


class StoreError(LeitnerError):
    """A card store read or write failed. Recoverable; callers may retry."""

    def __init__(self, message: str, card_id: str | None = None):
        self.card_id = card_id
        super().__init__(message)


class SessionStateError(LeitnerError):
    """An operation was attempted in a session state that does not allow it."""


class FrozenCardError(SessionStateError):
    """An answer was submitted for a card that is not due yet."""

    def __init__(self, card_id: str, days_until_review: int):
        self.card_id = card_id
        self.days_until_review = days_until_review
        super().__init__(
            f"Card {card_id} is frozen for another {days_until_review} day(s)"
        )
