"""Tests for the study session controller."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from leitner.application.ordering import OrderingPolicy
from leitner.application.session import (
    MODE_ORDERING,
    SessionState,
    StudyMode,
    StudySession,
)
from leitner.domain.exceptions import FrozenCardError, SessionStateError, StoreError
from leitner.domain.models import CardQuery
from leitner.domain.scheduling import IntervalTable
from leitner.infrastructure.adapters.memory_store import MemoryCardStore

QUERY = CardQuery(user_id="u1")


class Clock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.value = start

    def __call__(self) -> datetime:
        return self.value

    def tick(self, **kwargs):
        self.value += timedelta(**kwargs)


@pytest.fixture
def clock(now):
    return Clock(now)


def _store(cards):
    return MemoryCardStore(cards, active_subjects={"u1": ["Biology", "History"]})


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_empty_collection(self, clock):
        session = StudySession(_store([]), clock=clock)
        state = await session.start(QUERY)
        assert state == SessionState.EMPTY
        assert session.current is None
        assert session.stats.total == 0

    @pytest.mark.asyncio
    async def test_start_orders_due_first(self, clock, card_factory):
        store = _store([
            card_factory("frozen", due_in_days=2),
            card_factory("due", due_in_days=0),
        ])
        session = StudySession(store, clock=clock)

        state = await session.start(QUERY, StudyMode.SUBJECT)

        assert state == SessionState.VIEWING
        assert session.policy == OrderingPolicy.DUE_FIRST
        assert [e.card.id for e in session.cards] == ["due", "frozen"]
        assert session.cards[1].status.is_frozen
        assert session.cards[1].status.days_until_review == 2

    @pytest.mark.asyncio
    async def test_every_mode_has_a_policy(self, clock, card_factory):
        for mode in StudyMode:
            session = StudySession(_store([card_factory("a")]), clock=clock)
            await session.start(QUERY, mode)
            assert session.policy == MODE_ORDERING[mode]

    @pytest.mark.asyncio
    async def test_explicit_policy_overrides_mode(self, clock, card_factory):
        store = _store([card_factory("b3", box=3), card_factory("b1", box=1)])
        session = StudySession(store, clock=clock)
        await session.start(QUERY, StudyMode.SUBJECT, policy=OrderingPolicy.BOX_ASCENDING)
        assert [e.card.id for e in session.cards] == ["b1", "b3"]

    @pytest.mark.asyncio
    async def test_load_failure(self, clock):
        store = AsyncMock()
        store.fetch_cards.side_effect = StoreError("offline")
        session = StudySession(store, clock=clock)

        state = await session.start(QUERY)

        assert state == SessionState.LOAD_FAILED
        assert "offline" in str(session.load_error)

        # Retry succeeds
        store.fetch_cards.side_effect = None
        store.fetch_cards.return_value = []
        assert await session.start(QUERY) == SessionState.EMPTY
        assert session.load_error is None

    @pytest.mark.asyncio
    async def test_cards_outside_study_bank_are_dropped(self, clock, card_factory):
        session = StudySession(AsyncMock(), clock=clock)
        session.begin(
            [card_factory("a"), card_factory("b", in_study_bank=False)],
            OrderingPolicy.DUE_FIRST,
        )
        assert [e.card.id for e in session.cards] == ["a"]


class TestAnswering:
    @pytest.mark.asyncio
    async def test_session_completion(self, clock, card_factory):
        cards = [card_factory(f"c{i}", box=(i % 5) + 1, due_in_days=-i) for i in range(4)]
        store = _store(cards)
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        results = []
        for i in range(4):
            results.append(await session.answer(i % 2 == 0))

        assert session.state == SessionState.COMPLETED
        assert session.stats.total == 4
        assert session.stats.correct == 2
        assert session.stats.incorrect == 2
        assert results[-1].state == SessionState.COMPLETED
        assert all(r.persisted for r in results)
        assert len(store.reviews) == 4

    @pytest.mark.asyncio
    async def test_answer_updates_card_and_store(self, clock, card_factory):
        # Box 3 card, due since 2024-01-01, answered on 2024-01-05 10:00
        card = card_factory("c", box=3)
        card.next_review_date = datetime(2024, 1, 1, 10, 0)
        store = _store([card])
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        result = await session.answer(True)

        assert result.previous_box == 3
        assert result.new_box == 4
        assert result.next_review_date == datetime(2024, 1, 12, 10, 0)

        stored = store.get("c")
        assert stored.box_number == 4
        assert stored.next_review_date == datetime(2024, 1, 12, 10, 0)

        local = session.cards[0]
        assert local.card.box_number == 4
        assert local.status.is_frozen

        review = store.reviews[0]
        assert review.was_correct is True
        assert review.quality == 5
        assert (review.previous_box, review.new_box) == (3, 4)
        assert review.user_id == "u1"

    @pytest.mark.asyncio
    async def test_wrong_answer_resets_to_box_one_tomorrow(self, clock, now, card_factory):
        store = _store([card_factory("c", box=4)])
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        result = await session.answer(False)

        assert result.new_box == 1
        assert result.next_review_date == now + timedelta(days=1)
        assert store.reviews[0].quality == 1

    @pytest.mark.asyncio
    async def test_answer_uses_interval_table(self, clock, now, card_factory):
        store = _store([card_factory("c", box=4)])
        table = IntervalTable(days=(1, 2, 3, 7, 30))
        session = StudySession(store, table=table, clock=clock)
        await session.start(QUERY)

        result = await session.answer(True)

        assert result.next_review_date == now + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_answer_time_taken_from_clock(self, clock, card_factory):
        store = _store([card_factory("c", box=1)])
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        clock.tick(hours=5)
        result = await session.answer(True)

        assert result.next_review_date == clock.value + timedelta(days=2)

    @pytest.mark.asyncio
    async def test_frozen_card_cannot_be_answered(self, clock, card_factory):
        session = StudySession(_store([card_factory("c", due_in_days=3)]), clock=clock)
        await session.start(QUERY)

        assert not session.can_answer
        with pytest.raises(FrozenCardError) as exc:
            await session.answer(True)

        assert exc.value.days_until_review == 3
        assert session.state == SessionState.VIEWING
        assert session.stats.total == 0

    @pytest.mark.asyncio
    async def test_answer_after_completion_rejected(self, clock, card_factory):
        session = StudySession(_store([card_factory("c")]), clock=clock)
        await session.start(QUERY)
        await session.answer(True)

        with pytest.raises(SessionStateError):
            await session.answer(True)

    @pytest.mark.asyncio
    async def test_transition_hook_awaited_before_advance(self, clock, card_factory):
        seen = []
        session = None

        async def on_transition(card, correct):
            seen.append((card.id, correct, session.state, session.current_index))

        session = StudySession(
            _store([card_factory("a"), card_factory("b")]),
            clock=clock,
            on_transition=on_transition,
        )
        await session.start(QUERY)
        await session.answer(True)

        assert seen == [("a", True, SessionState.ANSWERING, 0)]
        assert session.current_index == 1


    @pytest.mark.asyncio
    async def test_failing_transition_hook_still_advances(self, clock, card_factory):
        async def on_transition(card, correct):
            raise RuntimeError("animation crashed")

        store = _store([card_factory("a"), card_factory("b")])
        session = StudySession(store, clock=clock, on_transition=on_transition)
        await session.start(QUERY)

        with pytest.raises(RuntimeError):
            await session.answer(True)

        assert session.state == SessionState.VIEWING
        assert session.current.card.id == "b"
        assert session.stats.total == 1
        assert store.get("a").box_number == 2

        result = await session.answer(False)
        assert result.state == SessionState.COMPLETED

    @pytest.mark.asyncio
    async def test_unexpected_store_error_still_advances(self, clock, card_factory):
        store = AsyncMock()
        store.fetch_cards.return_value = [card_factory("a")]
        store.update_card.side_effect = RuntimeError("driver bug")
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        with pytest.raises(RuntimeError):
            await session.answer(True)

        assert session.state == SessionState.COMPLETED
        assert session.stats.correct == 1


class TestNavigation:
    @pytest.mark.asyncio
    async def test_skip_frozen_card(self, clock, card_factory):
        store = _store([card_factory("due"), card_factory("frozen", due_in_days=1)])
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        await session.answer(True)
        assert session.current.card.id == "frozen"

        assert session.advance() == SessionState.COMPLETED
        assert session.stats.total == 1

    @pytest.mark.asyncio
    async def test_back(self, clock, card_factory):
        session = StudySession(_store([card_factory("a"), card_factory("b")]), clock=clock)
        await session.start(QUERY)

        session.back()
        assert session.current_index == 0
        session.advance()
        session.back()
        assert session.current.card.id == "a"

    @pytest.mark.asyncio
    async def test_navigation_requires_viewing(self, clock):
        session = StudySession(_store([]), clock=clock)
        await session.start(QUERY)
        with pytest.raises(SessionStateError):
            session.advance()

    @pytest.mark.asyncio
    async def test_reclassify(self, clock, card_factory):
        session = StudySession(_store([card_factory("a", due_in_days=1)]), clock=clock)
        await session.start(QUERY)
        assert not session.can_answer

        clock.tick(days=1)
        assert session.reclassify() == 1
        assert session.can_answer


class TestRemoval:
    @pytest.mark.asyncio
    async def test_remove_current_card_clamps_cursor(self, clock, card_factory):
        session = StudySession(
            _store([card_factory("a"), card_factory("b"), card_factory("c")]), clock=clock
        )
        await session.start(QUERY)
        session.advance()
        session.advance()
        assert session.current.card.id == "c"

        session.remove_card("c")

        assert session.current_index == 1
        assert session.current.card.id == "b"
        assert session.state == SessionState.VIEWING

    @pytest.mark.asyncio
    async def test_remove_earlier_card_keeps_current(self, clock, card_factory):
        session = StudySession(_store([card_factory("a"), card_factory("b")]), clock=clock)
        await session.start(QUERY)
        session.advance()

        session.remove_card("a")

        assert session.current.card.id == "b"
        assert session.current_index == 0

    @pytest.mark.asyncio
    async def test_removing_every_card_depletes(self, clock, card_factory):
        session = StudySession(_store([card_factory("a")]), clock=clock)
        await session.start(QUERY)

        state = session.remove_card("a")

        assert state == SessionState.DEPLETED
        assert state != SessionState.COMPLETED
        assert session.current is None

    @pytest.mark.asyncio
    async def test_remove_unknown_card(self, clock, card_factory):
        session = StudySession(_store([card_factory("a")]), clock=clock)
        await session.start(QUERY)
        with pytest.raises(KeyError):
            session.remove_card("zzz")


class TestPersistenceFailures:
    @pytest.fixture
    def failing_store(self, card_factory):
        store = AsyncMock()
        store.fetch_cards.return_value = [card_factory("a", box=2), card_factory("b")]
        store.update_card.side_effect = StoreError("write rejected")
        return store

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_fatal(self, clock, failing_store):
        reported = []
        session = StudySession(failing_store, clock=clock, on_failure=reported.append)
        await session.start(QUERY)

        result = await session.answer(True)

        assert not result.persisted
        assert "write rejected" in str(result.failure.error)
        assert reported == [result.failure]
        assert session.state == SessionState.VIEWING
        assert session.current.card.id == "b"
        # Optimistic local update still applied
        assert session.cards[0].card.box_number == 3
        # Review log is only written after a successful update
        failing_store.record_review.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_failures(self, clock, failing_store):
        session = StudySession(failing_store, clock=clock)
        await session.start(QUERY)
        result = await session.answer(True)

        failing_store.update_card.side_effect = None
        remaining = await session.retry_failures()

        assert remaining == []
        assert session.failures == []
        failing_store.update_card.assert_awaited_with("a", 3, result.next_review_date)
        failing_store.record_review.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_still_failing(self, clock, failing_store):
        session = StudySession(failing_store, clock=clock)
        await session.start(QUERY)
        await session.answer(True)

        remaining = await session.retry_failures()

        assert len(remaining) == 1
        assert len(session.failures) == 1

    @pytest.mark.asyncio
    async def test_dismiss_failures(self, clock, failing_store):
        session = StudySession(failing_store, clock=clock)
        await session.start(QUERY)
        await session.answer(False)

        assert session.dismiss_failures() == 1
        assert session.failures == []

    @pytest.mark.asyncio
    async def test_review_log_failure_is_ignored(self, clock, card_factory):
        store = AsyncMock()
        store.fetch_cards.return_value = [card_factory("a")]
        store.record_review.side_effect = StoreError("log table missing")
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        result = await session.answer(True)

        assert result.persisted
        assert session.failures == []

    @pytest.mark.asyncio
    async def test_timeout_becomes_failure(self, clock, card_factory):
        store = AsyncMock()
        store.fetch_cards.return_value = [card_factory("a")]
        store.update_card.side_effect = TimeoutError()
        session = StudySession(store, clock=clock)
        await session.start(QUERY)

        result = await session.answer(True)

        assert isinstance(result.failure.error, StoreError)


class TestBackgroundPersistence:
    @pytest.mark.asyncio
    async def test_advances_before_write_finishes(self, clock, card_factory):
        release = asyncio.Event()
        store = AsyncMock()
        store.fetch_cards.return_value = [card_factory("a"), card_factory("b")]

        async def slow_update(*args):
            await release.wait()

        store.update_card.side_effect = slow_update
        session = StudySession(store, clock=clock, await_persistence=False)
        await session.start(QUERY)

        result = await session.answer(True)

        assert result.pending
        assert not result.persisted
        assert session.current.card.id == "b"
        assert session.pending_writes == 1

        release.set()
        summary = await session.close()

        assert session.pending_writes == 0
        assert summary.total == 1
        store.update_card.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_background_failure_surfaces(self, clock, card_factory):
        reported = []
        store = AsyncMock()
        store.fetch_cards.return_value = [card_factory("a")]
        store.update_card.side_effect = StoreError("nope")
        session = StudySession(
            store, clock=clock, await_persistence=False, on_failure=reported.append
        )
        await session.start(QUERY)

        await session.answer(True)
        await session.flush()

        assert len(reported) == 1
        assert len(session.failures) == 1


class TestSummary:
    @pytest.mark.asyncio
    async def test_summary(self, clock, card_factory):
        cards = [card_factory(f"c{i}") for i in range(5)]
        session = StudySession(_store(cards), clock=clock)
        await session.start(QUERY)

        for correct in (True, True, True, True, False):
            clock.tick(seconds=30)
            await session.answer(correct)

        summary = session.summary()

        assert summary.total == 5
        assert summary.success_rate == 80.0
        assert summary.points_earned == 40 + 2 + 25
        assert summary.duration_seconds == 150
        assert summary.deferred_card_ids == ["c4"]
