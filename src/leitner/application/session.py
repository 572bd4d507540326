"""
Study session controller.

Steps through an ordered card set one card at a time:

    LOADING -> EMPTY | VIEWING
    VIEWING -> ANSWERING -> ADVANCING -> VIEWING | COMPLETED

Frozen cards can be viewed and skipped but never answered. Removing cards
(preview/edit flows) may end the session in DEPLETED, which is distinct
from COMPLETED. A failed initial fetch ends in LOAD_FAILED and `start` may
be called again.

Each answer updates the in-memory card immediately. The store write is
either awaited before advancing (default) or run in the background; in both
cases a failed write is recorded as a PersistenceFailure that the caller can
retry or dismiss. A failed write never ends the session.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from leitner.domain.constants import QUALITY_CORRECT, QUALITY_INCORRECT
from leitner.domain.exceptions import FrozenCardError, SessionStateError, StoreError
from leitner.domain.models import (
    Card,
    CardQuery,
    DuePolicy,
    ReviewRecord,
    ReviewStatus,
    SessionStats,
)
from leitner.domain.ports import CardStore
from leitner.domain.scheduling import DEFAULT_TABLE, IntervalTable, classify, next_box
from leitner.domain.summary import SessionSummary, summarize

from .ordering import OrderingPolicy, order_cards

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    EMPTY = "empty"
    VIEWING = "viewing"
    ANSWERING = "answering"
    ADVANCING = "advancing"
    COMPLETED = "completed"
    DEPLETED = "depleted"  # every card was removed
    LOAD_FAILED = "load_failed"


class StudyMode(str, Enum):
    """Screen that opened the session. Each one has a fixed ordering policy."""

    SUBJECT = "subject"  # whole-subject free study
    BOX = "box"  # single-box review
    DAILY = "daily"  # daily digest across active subjects


MODE_ORDERING: dict[StudyMode, OrderingPolicy] = {
    StudyMode.SUBJECT: OrderingPolicy.DUE_FIRST,
    StudyMode.BOX: OrderingPolicy.REVIEW_DATE_ASCENDING,
    StudyMode.DAILY: OrderingPolicy.BOX_ASCENDING,
}


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class SessionCard:
    card: Card
    status: ReviewStatus


@dataclass
class PersistenceFailure:
    card_id: str
    box_number: int
    next_review_date: datetime
    error: StoreError
    record: ReviewRecord | None = None


@dataclass
class AnswerResult:
    card_id: str
    correct: bool
    previous_box: int
    new_box: int
    next_review_date: datetime
    state: SessionState
    failure: PersistenceFailure | None = None
    pending: bool = False  # write still running in the background

    @property
    def persisted(self) -> bool:
        return self.failure is None and not self.pending


class StudySession:
    """
    One bounded pass through a filtered, ordered set of cards.

    Args:
        store: Card store used for the initial fetch and for every write.
        table: Interval table used to schedule answered cards.
        due_policy: Comparison used to decide whether a card may be answered.
        await_persistence: Await each write before advancing. When False,
            writes run as background tasks and `close()` drains them.
        clock: Returns the current instant. Called once per start/answer.
        on_failure: Called with every PersistenceFailure as it happens.
        on_transition: Awaited after each answer, before advancing. The session
            still advances if it raises; the exception propagates.
    """

    def __init__(
        self,
        store: CardStore,
        *,
        table: IntervalTable = DEFAULT_TABLE,
        due_policy: DuePolicy = DuePolicy.CALENDAR_DAY,
        await_persistence: bool = True,
        clock: Callable[[], datetime] = local_now,
        on_failure: Callable[[PersistenceFailure], None] | None = None,
        on_transition: Callable[[Card, bool], Awaitable[None]] | None = None,
    ):
        self._store = store
        self._table = table
        self._due_policy = due_policy
        self._await_persistence = await_persistence
        self._clock = clock
        self._on_failure = on_failure
        self._on_transition = on_transition

        self._state = SessionState.LOADING
        self._entries: list[SessionCard] = []
        self._index = 0
        self._user_id: str | None = None
        self._failures: list[PersistenceFailure] = []
        self._pending: set[asyncio.Task] = set()

        self.stats = SessionStats()
        self.now: datetime | None = None
        self.policy: OrderingPolicy | None = None
        self.load_error: StoreError | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def cards(self) -> list[SessionCard]:
        return list(self._entries)

    @property
    def current(self) -> SessionCard | None:
        if self._state not in (SessionState.VIEWING, SessionState.ANSWERING):
            return None
        return self._entries[self._index]

    @property
    def can_answer(self) -> bool:
        entry = self.current
        return (
            self._state == SessionState.VIEWING
            and entry is not None
            and not entry.status.is_frozen
        )

    @property
    def failures(self) -> list[PersistenceFailure]:
        return list(self._failures)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        query: CardQuery,
        mode: StudyMode = StudyMode.SUBJECT,
        policy: OrderingPolicy | None = None,
    ) -> SessionState:
        """
        Fetch, classify and order the session's cards.

        ``policy`` overrides the ordering implied by ``mode``.
        """
        self._state = SessionState.LOADING
        self._user_id = query.user_id
        self.load_error = None

        try:
            cards = await self._store.fetch_cards(query)
        except (StoreError, TimeoutError) as e:
            logger.error(f"Failed to load session cards for user={query.user_id}: {e}")
            self.load_error = e if isinstance(e, StoreError) else StoreError(f"Timed out: {e}")
            self._state = SessionState.LOAD_FAILED
            return self._state

        return self.begin(cards, policy or MODE_ORDERING[mode])

    def begin(self, cards: list[Card], policy: OrderingPolicy) -> SessionState:
        """Start over an already fetched card list."""
        self.now = self._clock()
        self.policy = policy
        ordered = order_cards(
            [c for c in cards if c.in_study_bank], policy, self.now, self._due_policy
        )
        self._entries = [
            SessionCard(card=c, status=classify(c, self.now, self._due_policy)) for c in ordered
        ]
        self._index = 0
        self.stats = SessionStats()
        self._failures = []

        self._state = SessionState.VIEWING if self._entries else SessionState.EMPTY
        due = sum(1 for e in self._entries if not e.status.is_frozen)
        logger.info(
            f"Session started: {len(self._entries)} cards ({due} due), policy={policy.value}"
        )
        return self._state

    async def close(self) -> SessionSummary:
        """Wait for background writes, then report the session tally."""
        await self.flush()
        return self.summary()

    def summary(self) -> SessionSummary:
        started = self.now or self._clock()
        duration = (self._clock() - started).total_seconds()
        return summarize(
            self.stats, int(duration), ((e.card, e.status) for e in self._entries)
        )

    # ------------------------------------------------------------------
    # Answering and navigation
    # ------------------------------------------------------------------

    async def answer(self, correct: bool, now: datetime | None = None) -> AnswerResult:
        """
        Apply an answer to the current card and move on.

        Raises:
            SessionStateError: Not currently viewing a card.
            FrozenCardError: The current card is not due yet.
        """
        if self._state != SessionState.VIEWING:
            raise SessionStateError(f"Cannot answer while {self._state.value}")

        entry = self._entries[self._index]
        if entry.status.is_frozen:
            raise FrozenCardError(entry.card.id, entry.status.days_until_review)

        self._state = SessionState.ANSWERING
        answered_at = now or self._clock()
        card = entry.card

        previous_box = card.box_number
        new_box = next_box(previous_box, correct)
        next_review_date = self._table.schedule(new_box, answered_at)

        # Local state moves first so the UI never waits on the store
        card.box_number = new_box
        card.next_review_date = next_review_date
        entry.status = classify(card, answered_at, self._due_policy)

        record = ReviewRecord(
            card_id=card.id,
            user_id=card.user_id or self._user_id,
            was_correct=correct,
            quality=QUALITY_CORRECT if correct else QUALITY_INCORRECT,
            previous_box=previous_box,
            new_box=new_box,
            reviewed_at=answered_at,
        )

        self.stats.record(correct)
        logger.debug(f"Card {card.id}: box {previous_box} -> {new_box}, next {next_review_date}")

        failure = None
        pending = False
        try:
            if self._await_persistence:
                failure = await self._persist(card.id, new_box, next_review_date, record)
            else:
                task = asyncio.create_task(
                    self._persist(card.id, new_box, next_review_date, record)
                )
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                pending = True

            if self._on_transition is not None:
                await self._on_transition(card, correct)
        finally:
            # The answer is already applied locally; never leave the session in ANSWERING
            self._state = SessionState.ADVANCING
            self._step_forward()

        return AnswerResult(
            card_id=card.id,
            correct=correct,
            previous_box=previous_box,
            new_box=new_box,
            next_review_date=next_review_date,
            state=self._state,
            failure=failure,
            pending=pending,
        )

    def advance(self) -> SessionState:
        """Move to the next card without answering (e.g. past a frozen card)."""
        self._require_viewing("advance")
        self._step_forward()
        return self._state

    def back(self) -> SessionState:
        self._require_viewing("go back")
        if self._index > 0:
            self._index -= 1
        return self._state

    def remove_card(self, card_id: str) -> SessionState:
        """
        Drop a card from the session (preview/edit flows).

        Raises:
            KeyError: The card is not part of this session.
        """
        if self._state not in (SessionState.VIEWING, SessionState.COMPLETED):
            raise SessionStateError(f"Cannot remove cards while {self._state.value}")

        position = next(
            (i for i, e in enumerate(self._entries) if e.card.id == card_id), None
        )
        if position is None:
            raise KeyError(card_id)

        del self._entries[position]
        if position < self._index:
            self._index -= 1

        if not self._entries:
            self._index = 0
            self._state = SessionState.DEPLETED
            logger.info("Session depleted: no cards left")
        else:
            self._index = min(self._index, len(self._entries) - 1)
        return self._state

    def reclassify(self, now: datetime | None = None) -> int:
        """Re-derive due/frozen status for every card. Returns the due count."""
        self.now = now or self._clock()
        for entry in self._entries:
            entry.status = classify(entry.card, self.now, self._due_policy)
        return sum(1 for e in self._entries if not e.status.is_frozen)

    # ------------------------------------------------------------------
    # Persistence failures
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait for every background write to settle."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def retry_failures(self) -> list[PersistenceFailure]:
        """Retry failed writes. Returns the failures that are still failing."""
        failures, self._failures = self._failures, []
        for failure in failures:
            await self._persist(
                failure.card_id, failure.box_number, failure.next_review_date, failure.record
            )
        return list(self._failures)

    def dismiss_failures(self) -> int:
        count = len(self._failures)
        self._failures = []
        return count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_viewing(self, action: str) -> None:
        if self._state != SessionState.VIEWING:
            raise SessionStateError(f"Cannot {action} while {self._state.value}")

    def _step_forward(self) -> None:
        if self._index + 1 >= len(self._entries):
            self._state = SessionState.COMPLETED
            logger.info(
                f"Session completed: {self.stats.correct} correct, "
                f"{self.stats.incorrect} incorrect"
            )
        else:
            self._index += 1
            self._state = SessionState.VIEWING

    async def _persist(
        self,
        card_id: str,
        box_number: int,
        next_review_date: datetime,
        record: ReviewRecord | None,
    ) -> PersistenceFailure | None:
        try:
            await self._store.update_card(card_id, box_number, next_review_date)
        except (StoreError, TimeoutError) as e:
            logger.error(f"Failed to save card {card_id}: {e}")
            error = e if isinstance(e, StoreError) else StoreError(f"Timed out: {e}", card_id)
            failure = PersistenceFailure(card_id, box_number, next_review_date, error, record)
            self._failures.append(failure)
            if self._on_failure is not None:
                self._on_failure(failure)
            return failure

        if record is not None:
            try:
                await self._store.record_review(record)
            except (StoreError, TimeoutError) as e:
                logger.warning(f"Failed to log review for card {card_id}: {e}")
        return None
