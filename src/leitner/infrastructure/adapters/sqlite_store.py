"""
SQLite Card Store: Infrastructure adapter for a local database file.

Implements CardStore with the standard library sqlite3 driver.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from ulid import ULID

from leitner.domain.exceptions import StoreError
from leitner.domain.models import Card, CardQuery, ReviewRecord
from leitner.domain.ports import CardStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS flashcards (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject_name TEXT NOT NULL DEFAULT '',
    topic_name TEXT NOT NULL DEFAULT '',
    question TEXT,
    answer TEXT,
    box_number INTEGER NOT NULL DEFAULT 1,
    next_review_date TEXT,
    in_study_bank INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_user_due
    ON flashcards (user_id, next_review_date);
CREATE TABLE IF NOT EXISTS user_subjects (
    user_id TEXT NOT NULL,
    subject_name TEXT NOT NULL,
    PRIMARY KEY (user_id, subject_name)
);
CREATE TABLE IF NOT EXISTS card_reviews (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    flashcard_id TEXT NOT NULL,
    user_id TEXT,
    was_correct INTEGER NOT NULL,
    quality INTEGER NOT NULL,
    previous_box INTEGER NOT NULL,
    new_box INTEGER NOT NULL,
    reviewed_at TEXT NOT NULL
);
"""


def _parse_date(value: str | None, card_id: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Card {card_id} has unparseable review date {value!r}")
        return None


class SqliteCardStore(CardStore):
    """
    Stores cards, active subjects and the review log in one SQLite file.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.db_path)
                conn.row_factory = sqlite3.Row
                conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise StoreError(f"Could not open {self.db_path}: {e}") from e
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self._connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _execute(self, query: str, params: list | tuple = ()) -> sqlite3.Cursor:
        conn = self._connect()
        try:
            with conn:
                return conn.execute(query, params)
        except sqlite3.Error as e:
            logger.error(f"SQLite query failed: {e}")
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------
    # Authoring helpers (not part of the CardStore port)
    # ------------------------------------------------------------------

    def add_card(self, card: Card) -> Card:
        """Insert a card, assigning an id if it has none."""
        card_id = card.id or str(ULID())
        self._execute(
            """
            INSERT INTO flashcards (id, user_id, subject_name, topic_name, question, answer,
                                    box_number, next_review_date, in_study_bank, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                card_id,
                card.user_id or "",
                card.subject_name,
                card.topic_name,
                card.question,
                card.answer,
                card.box_number,
                card.next_review_date.isoformat() if card.next_review_date else None,
                int(card.in_study_bank),
                datetime.now().astimezone().isoformat(),
            ],
        )
        card.id = card_id
        return card

    def set_active_subjects(self, user_id: str, subjects: list[str]) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM user_subjects WHERE user_id = ?", [user_id])
                conn.executemany(
                    "INSERT INTO user_subjects (user_id, subject_name) VALUES (?, ?)",
                    [(user_id, s) for s in subjects],
                )
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def review_count(self, card_id: str) -> int:
        row = self._execute(
            "SELECT COUNT(*) FROM card_reviews WHERE flashcard_id = ?", [card_id]
        ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # CardStore
    # ------------------------------------------------------------------

    async def fetch_cards(self, query: CardQuery) -> list[Card]:
        sql = "SELECT * FROM flashcards WHERE user_id = ?"
        params: list = [query.user_id]

        if query.in_study_bank:
            sql += " AND in_study_bank = 1"
        if query.active_subjects_only:
            sql += " AND subject_name IN (SELECT subject_name FROM user_subjects WHERE user_id = ?)"
            params.append(query.user_id)
        if query.subject_name is not None:
            sql += " AND subject_name = ?"
            params.append(query.subject_name)
        if query.topic_name is not None:
            sql += " AND topic_name = ?"
            params.append(query.topic_name)
        if query.box_number is not None:
            sql += " AND box_number = ?"
            params.append(query.box_number)

        rows = self._execute(sql, params).fetchall()
        return [
            Card(
                id=row["id"],
                box_number=row["box_number"],
                next_review_date=_parse_date(row["next_review_date"], row["id"]),
                subject_name=row["subject_name"],
                topic_name=row["topic_name"],
                in_study_bank=bool(row["in_study_bank"]),
                question=row["question"],
                answer=row["answer"],
                user_id=row["user_id"],
            )
            for row in rows
        ]

    async def update_card(
        self, card_id: str, box_number: int, next_review_date: datetime
    ) -> None:
        cursor = self._execute(
            "UPDATE flashcards SET box_number = ?, next_review_date = ? WHERE id = ?",
            [box_number, next_review_date.isoformat(), card_id],
        )
        if cursor.rowcount == 0:
            raise StoreError(f"Card {card_id} not found", card_id=card_id)

    async def fetch_active_subjects(self, user_id: str) -> list[str]:
        rows = self._execute(
            "SELECT subject_name FROM user_subjects WHERE user_id = ? ORDER BY subject_name",
            [user_id],
        ).fetchall()
        return [row[0] for row in rows]

    async def record_review(self, record: ReviewRecord) -> None:
        self._execute(
            """
            INSERT INTO card_reviews (flashcard_id, user_id, was_correct, quality,
                                      previous_box, new_box, reviewed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                record.card_id,
                record.user_id,
                int(record.was_correct),
                record.quality,
                record.previous_box,
                record.new_box,
                record.reviewed_at.isoformat(),
            ],
        )
