"""
Ports (interfaces) for card storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import Card, CardQuery, ReviewRecord


class CardStore(ABC):
    """
    Port for reading and patching a user's flashcards.

    Implementations:
        - MemoryCardStore: In-process dictionary, for tests and demos.
        - SqliteCardStore: Local SQLite file.
        - RestCardStore: Remote PostgREST-style table over HTTP.

    Every I/O failure must surface as StoreError.
    """

    @abstractmethod
    async def fetch_cards(self, query: CardQuery) -> list[Card]:
        """
        Fetch the cards matching ``query``.

        Returns an unordered list; ordering is the caller's job. When
        ``query.active_subjects_only`` is set, cards whose subject is not in
        the user's active subjects are excluded.
        """
        pass

    @abstractmethod
    async def update_card(
        self, card_id: str, box_number: int, next_review_date: datetime
    ) -> None:
        """
        Persist a box transition. Both fields are written together or not at all.
        """
        pass

    @abstractmethod
    async def fetch_active_subjects(self, user_id: str) -> list[str]:
        """Names of the subjects the user currently studies."""
        pass

    @abstractmethod
    async def record_review(self, record: ReviewRecord) -> None:
        """Append an entry to the review log."""
        pass
