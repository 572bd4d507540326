"""
In-memory card store. Used by tests, the demo server and dry runs.
"""

import dataclasses
import logging
from collections.abc import Iterable
from datetime import datetime

from leitner.domain.exceptions import StoreError
from leitner.domain.models import Card, CardQuery, ReviewRecord
from leitner.domain.ports import CardStore

logger = logging.getLogger(__name__)


class MemoryCardStore(CardStore):
    """
    Keeps cards in a dict keyed by id.

    Fetches return copies, so a session mutating its cards never changes
    the store behind its back; only `update_card` does.
    """

    def __init__(
        self,
        cards: Iterable[Card] = (),
        active_subjects: dict[str, list[str]] | None = None,
    ):
        self._cards: dict[str, Card] = {c.id: dataclasses.replace(c) for c in cards}
        self._active: dict[str, list[str]] = dict(active_subjects or {})
        self.reviews: list[ReviewRecord] = []

    def add_card(self, card: Card) -> None:
        self._cards[card.id] = dataclasses.replace(card)

    def set_active_subjects(self, user_id: str, subjects: list[str]) -> None:
        self._active[user_id] = list(subjects)

    def get(self, card_id: str) -> Card | None:
        card = self._cards.get(card_id)
        return dataclasses.replace(card) if card else None

    async def fetch_cards(self, query: CardQuery) -> list[Card]:
        active = set(self._active.get(query.user_id, [])) if query.active_subjects_only else None
        result = []
        for card in self._cards.values():
            if card.user_id is not None and card.user_id != query.user_id:
                continue
            if query.in_study_bank and not card.in_study_bank:
                continue
            if active is not None and card.subject_name not in active:
                continue
            if query.subject_name is not None and card.subject_name != query.subject_name:
                continue
            if query.topic_name is not None and card.topic_name != query.topic_name:
                continue
            if query.box_number is not None and card.box_number != query.box_number:
                continue
            result.append(dataclasses.replace(card))
        return result

    async def update_card(
        self, card_id: str, box_number: int, next_review_date: datetime
    ) -> None:
        card = self._cards.get(card_id)
        if card is None:
            raise StoreError(f"Card {card_id} not found", card_id=card_id)
        card.box_number = box_number
        card.next_review_date = next_review_date

    async def fetch_active_subjects(self, user_id: str) -> list[str]:
        return list(self._active.get(user_id, []))

    async def record_review(self, record: ReviewRecord) -> None:
        self.reviews.append(record)
