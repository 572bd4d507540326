from datetime import timedelta

import pytest

from leitner.domain.exceptions import StoreError
from leitner.domain.models import CardQuery


@pytest.mark.asyncio
async def test_fetch_scoped_to_active_subjects(memory_store):
    cards = await memory_store.fetch_cards(CardQuery(user_id="u1"))
    assert {c.id for c in cards} == {"c1", "c2", "c3", "c4"}

    memory_store.set_active_subjects("u1", ["History"])
    cards = await memory_store.fetch_cards(CardQuery(user_id="u1"))
    assert [c.id for c in cards] == ["c4"]


@pytest.mark.asyncio
async def test_no_active_subjects_means_no_cards(memory_store):
    memory_store.set_active_subjects("u1", [])
    assert await memory_store.fetch_cards(CardQuery(user_id="u1")) == []

    unscoped = CardQuery(user_id="u1", active_subjects_only=False)
    assert len(await memory_store.fetch_cards(unscoped)) == 4


@pytest.mark.asyncio
async def test_filters(memory_store):
    by_box = await memory_store.fetch_cards(CardQuery(user_id="u1", box_number=1))
    assert {c.id for c in by_box} == {"c1", "c4"}

    by_topic = await memory_store.fetch_cards(CardQuery(user_id="u1", topic_name="Tudors"))
    assert [c.id for c in by_topic] == ["c4"]

    other_user = await memory_store.fetch_cards(CardQuery(user_id="u2"))
    assert other_user == []


@pytest.mark.asyncio
async def test_fetch_returns_copies(memory_store):
    [card] = await memory_store.fetch_cards(CardQuery(user_id="u1", subject_name="History"))
    card.box_number = 5
    assert memory_store.get("c4").box_number == 1


@pytest.mark.asyncio
async def test_update_card(memory_store, now):
    await memory_store.update_card("c1", 2, now + timedelta(days=2))
    stored = memory_store.get("c1")
    assert stored.box_number == 2
    assert stored.next_review_date == now + timedelta(days=2)


@pytest.mark.asyncio
async def test_update_missing_card(memory_store, now):
    with pytest.raises(StoreError) as exc:
        await memory_store.update_card("nope", 2, now)
    assert exc.value.card_id == "nope"


@pytest.mark.asyncio
async def test_fetch_active_subjects(memory_store):
    assert await memory_store.fetch_active_subjects("u1") == ["Biology", "History"]
    assert await memory_store.fetch_active_subjects("nobody") == []
