"""
Daily digest of due cards, as sent in the "cards due today" reminder.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from leitner.domain.constants import BOX_NUMBERS
from leitner.domain.exceptions import StoreError
from leitner.domain.models import BoxAggregate, CardQuery, DuePolicy
from leitner.domain.ports import CardStore

from .aggregator import BoxStatsService

logger = logging.getLogger(__name__)


@dataclass
class DueDigest:
    due_count: int
    due_by_box: dict[int, int] = field(default_factory=dict)


@dataclass
class DigestOutcome:
    digest: DueDigest | None = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_digest(aggregate: BoxAggregate) -> DueDigest:
    return DueDigest(
        due_count=aggregate.total_due,
        due_by_box={n: aggregate.due_by_box.get(n, 0) for n in BOX_NUMBERS},
    )


def format_digest(digest: DueDigest) -> str:
    """
    Reminder text, e.g. "You have 4 cards due for review today. (B1 3 • B4 1)".

    Boxes with nothing due are left out of the breakdown.
    """
    parts = [f"B{n} {count}" for n, count in sorted(digest.due_by_box.items()) if count]
    breakdown = f" ({' • '.join(parts)})" if parts else ""
    return f"You have {digest.due_count} cards due for review today.{breakdown}"


class DigestService:
    """Builds a user's daily digest across all of their active subjects."""

    def __init__(self, store: CardStore, policy: DuePolicy = DuePolicy.CALENDAR_DAY):
        self._stats = BoxStatsService(store, policy)

    async def for_user(self, user_id: str, now: datetime) -> DigestOutcome:
        outcome = await self._stats.load(
            CardQuery(user_id=user_id, active_subjects_only=True), now
        )
        if not outcome.ok:
            return DigestOutcome(error=outcome.error)

        digest = build_digest(outcome.aggregate)
        logger.info(f"Digest for user={user_id}: {digest.due_count} due")
        return DigestOutcome(digest=digest)
