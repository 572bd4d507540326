import logging
from datetime import datetime
from typing import Any

import httpx

from leitner.domain.constants import (
    ACTIVE_SUBJECTS_TABLE,
    CARDS_TABLE,
    REQUEST_TIMEOUT,
    REVIEWS_TABLE,
)
from leitner.domain.exceptions import StoreError
from leitner.domain.models import Card, CardQuery, ReviewRecord
from leitner.domain.ports import CardStore


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class RestCardStore(CardStore):
    """Adapter for a remote PostgREST-style card table (HTTP API)."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["apikey"] = api_key
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._client = client
        self.logger.debug(f"RestCardStore initialized with url={self.url}")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = await self._get_client().request(
                method, f"{self.url}/{table}", params=params, json=json, headers=headers
            )
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            self.logger.error(f"{method} {table} timed out: {e}")
            raise StoreError(f"Request to {table} timed out") from e
        except httpx.HTTPError as e:
            self.logger.error(f"{method} {table} failed: {e}")
            raise StoreError(f"Request to {table} failed: {e}") from e
        except httpx.InvalidURL as e:
            self.logger.error(f"Invalid store URL {self.url!r}: {e}")
            raise StoreError(f"Invalid store URL {self.url!r}: {e}") from e

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from {table}") from e

    def _row_to_card(self, row: dict[str, Any]) -> Card:
        raw_date = row.get("next_review_date")
        review_date = None
        if raw_date:
            try:
                review_date = datetime.fromisoformat(raw_date)
            except (TypeError, ValueError):
                self.logger.warning(f"Card {row.get('id')} has unparseable review date {raw_date!r}")

        raw_box = row.get("box_number")
        return Card(
            id=str(row["id"]),
            box_number=raw_box if isinstance(raw_box, int) else 0,
            next_review_date=review_date,
            subject_name=row.get("subject_name") or "",
            topic_name=row.get("topic") or row.get("topic_name") or "",
            in_study_bank=bool(row.get("in_study_bank", True)),
            question=row.get("question"),
            answer=row.get("answer"),
            user_id=row.get("user_id"),
        )

    async def fetch_cards(self, query: CardQuery) -> list[Card]:
        params = {"select": "*", "user_id": f"eq.{query.user_id}"}

        if query.in_study_bank:
            params["in_study_bank"] = "eq.true"
        if query.active_subjects_only:
            subjects = await self.fetch_active_subjects(query.user_id)
            if not subjects:
                return []
            if query.subject_name is not None and query.subject_name not in subjects:
                return []
            params["subject_name"] = f"in.({','.join(_quote(s) for s in subjects)})"
        if query.subject_name is not None:
            params["subject_name"] = f"eq.{query.subject_name}"
        if query.topic_name is not None:
            params["topic"] = f"eq.{query.topic_name}"
        if query.box_number is not None:
            params["box_number"] = f"eq.{query.box_number}"

        rows = await self._request("GET", CARDS_TABLE, params=params) or []
        self.logger.debug(f"Fetched {len(rows)} cards for user={query.user_id}")
        return [self._row_to_card(row) for row in rows]

    async def update_card(
        self, card_id: str, box_number: int, next_review_date: datetime
    ) -> None:
        rows = await self._request(
            "PATCH",
            CARDS_TABLE,
            params={"id": f"eq.{card_id}"},
            json={"box_number": box_number, "next_review_date": next_review_date.isoformat()},
            prefer="return=representation",
        )
        if not rows:
            raise StoreError(f"Card {card_id} not found", card_id=card_id)

    async def fetch_active_subjects(self, user_id: str) -> list[str]:
        rows = await self._request(
            "GET",
            ACTIVE_SUBJECTS_TABLE,
            params={
                "select": "subject:exam_board_subjects(subject_name)",
                "user_id": f"eq.{user_id}",
            },
        ) or []

        names = []
        for row in rows:
            subject = row.get("subject") or {}
            name = subject.get("subject_name")
            if name:
                names.append(name)
        return names

    async def record_review(self, record: ReviewRecord) -> None:
        await self._request(
            "POST",
            REVIEWS_TABLE,
            json={
                "flashcard_id": record.card_id,
                "user_id": record.user_id,
                "was_correct": record.was_correct,
                "quality": record.quality,
                "previous_box": record.previous_box,
                "new_box": record.new_box,
                "reviewed_at": record.reviewed_at.isoformat(),
            },
            prefer="return=minimal",
        )
