import os
from datetime import datetime, timedelta

import pytest

from leitner.domain.models import Card
from leitner.infrastructure.adapters.memory_store import MemoryCardStore

NOW = datetime(2024, 1, 5, 10, 0)


@pytest.fixture(autouse=True)
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir and clears LEITNER_* env vars."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("LEITNER_"):
            monkeypatch.delenv(key)
    return home


@pytest.fixture
def now():
    return NOW


def make_card(card_id, box=1, due_in_days=0, subject="Biology", topic="Cells", **kwargs):
    """Card due ``due_in_days`` after NOW (negative means overdue)."""
    return Card(
        id=card_id,
        box_number=box,
        next_review_date=NOW + timedelta(days=due_in_days),
        subject_name=subject,
        topic_name=topic,
        question=kwargs.pop("question", f"Q {card_id}"),
        answer=kwargs.pop("answer", f"A {card_id}"),
        user_id=kwargs.pop("user_id", "u1"),
        **kwargs,
    )


@pytest.fixture
def card_factory():
    return make_card


@pytest.fixture
def memory_store():
    store = MemoryCardStore(
        [
            make_card("c1", box=1, due_in_days=-1),
            make_card("c2", box=2, due_in_days=3),
            make_card("c3", box=3, due_in_days=0),
            make_card("c4", box=1, due_in_days=0, subject="History", topic="Tudors"),
        ],
        active_subjects={"u1": ["Biology", "History"]},
    )
    return store
