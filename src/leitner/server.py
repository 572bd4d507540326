import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from ulid import ULID

from leitner.application.aggregator import BoxStatsService
from leitner.application.config import AppConfig, resolve_config
from leitner.application.digest import DigestService, format_digest
from leitner.application.factory import get_card_store
from leitner.application.session import (
    SessionState,
    StudyMode,
    StudySession,
    local_now,
)
from leitner.consts import VERSION
from leitner.domain.constants import FINISHED_SESSION_TIMEOUT, SESSION_IDLE_TIMEOUT
from leitner.domain.boxes import all_box_info
from leitner.domain.exceptions import SessionStateError
from leitner.domain.models import CardQuery
from leitner.domain.ports import CardStore

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("leitner.server")

_sessions: dict[str, StudySession] = {}
_last_seen: dict[str, float] = {}
_clock = time.monotonic

FINISHED_STATES = (SessionState.COMPLETED, SessionState.DEPLETED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Leitner Server v{VERSION} starting up...")
    yield
    # Shutdown
    for session in _sessions.values():
        await session.flush()
    _sessions.clear()
    _last_seen.clear()
    logger.info("Leitner Server shutting down...")


app = FastAPI(
    title="Leitner Server",
    description="Spaced-repetition scheduling API for flashcard clients.",
    version=VERSION,
    lifespan=lifespan,
)

start_time = time.time()


@lru_cache
def get_config() -> AppConfig:
    return resolve_config()


@lru_cache
def get_store() -> CardStore:
    return get_card_store(get_config())


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class BoxInfoResponse(BaseModel):
    number: int
    name: str
    emoji: str
    days: int
    display_interval: str


class StatsResponse(BaseModel):
    box1: int
    box2: int
    box3: int
    box4: int
    box5: int
    total_due: int
    total_frozen: int
    total_in_study_bank: int


class DigestResponse(BaseModel):
    due_count: int
    due_by_box: dict[int, int]
    message: str


class SessionRequest(BaseModel):
    user_id: str
    subject_name: str | None = None
    topic_name: str | None = None
    box_number: int | None = None
    mode: StudyMode = StudyMode.SUBJECT


class CardView(BaseModel):
    id: str
    question: str | None
    answer: str | None
    box_number: int
    next_review_date: datetime | None
    is_frozen: bool
    days_until_review: int


class SessionView(BaseModel):
    session_id: str
    state: SessionState
    current_index: int
    card_count: int
    correct: int
    incorrect: int
    total: int
    current: CardView | None = None
    failed_writes: int = 0


class AnswerRequest(BaseModel):
    correct: bool


class AnswerResponse(BaseModel):
    card_id: str
    previous_box: int
    new_box: int
    next_review_date: datetime
    persisted: bool
    error: str | None = None
    session: SessionView


class SummaryResponse(BaseModel):
    correct: int
    incorrect: int
    total: int
    success_rate: float
    points_earned: int
    duration_seconds: int
    deferred_card_ids: list[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_view(session_id: str, session: StudySession) -> SessionView:
    current = None
    entry = session.current
    if entry is not None:
        current = CardView(
            id=entry.card.id,
            question=entry.card.question,
            answer=entry.card.answer,
            box_number=entry.card.box_number,
            next_review_date=entry.card.next_review_date,
            is_frozen=entry.status.is_frozen,
            days_until_review=entry.status.days_until_review,
        )
    return SessionView(
        session_id=session_id,
        state=session.state,
        current_index=session.current_index,
        card_count=len(session.cards),
        correct=session.stats.correct,
        incorrect=session.stats.incorrect,
        total=session.stats.total,
        current=current,
        failed_writes=len(session.failures),
    )


def _drop_session(session_id: str) -> None:
    _sessions.pop(session_id, None)
    _last_seen.pop(session_id, None)


def _evict_idle_sessions() -> int:
    """Forget sessions whose client went away. Finished sessions expire sooner."""
    now = _clock()
    expired = []
    for session_id, session in _sessions.items():
        timeout = (
            FINISHED_SESSION_TIMEOUT if session.state in FINISHED_STATES else SESSION_IDLE_TIMEOUT
        )
        if now - _last_seen.get(session_id, now) > timeout:
            expired.append(session_id)

    for session_id in expired:
        _drop_session(session_id)
    if expired:
        logger.info(f"Evicted {len(expired)} idle session(s)")
    return len(expired)


def _get_session(session_id: str) -> StudySession:
    _evict_idle_sessions()
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    _last_seen[session_id] = _clock()
    return session


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/boxes", response_model=list[BoxInfoResponse])
async def list_boxes(config: AppConfig = Depends(get_config)):
    return [
        BoxInfoResponse(
            number=info.number,
            name=info.name,
            emoji=info.emoji,
            days=info.days,
            display_interval=info.display_interval,
        )
        for info in all_box_info(config.interval_table)
    ]


@app.get("/stats", response_model=StatsResponse)
async def box_stats(
    user_id: str,
    subject_name: str | None = None,
    topic_name: str | None = None,
    box_number: int | None = None,
    config: AppConfig = Depends(get_config),
    store: CardStore = Depends(get_store),
):
    query = CardQuery(
        user_id=user_id,
        subject_name=subject_name,
        topic_name=topic_name,
        box_number=box_number,
    )
    outcome = await BoxStatsService(store, config.due_policy).load(query, local_now())
    if not outcome.ok:
        raise HTTPException(status_code=502, detail=str(outcome.error))

    agg = outcome.aggregate
    return StatsResponse(
        box1=agg.box1,
        box2=agg.box2,
        box3=agg.box3,
        box4=agg.box4,
        box5=agg.box5,
        total_due=agg.total_due,
        total_frozen=agg.total_frozen,
        total_in_study_bank=agg.total_in_study_bank,
    )


@app.get("/digest", response_model=DigestResponse)
async def daily_digest(
    user_id: str,
    config: AppConfig = Depends(get_config),
    store: CardStore = Depends(get_store),
):
    outcome = await DigestService(store, config.due_policy).for_user(user_id, local_now())
    if not outcome.ok:
        raise HTTPException(status_code=502, detail=str(outcome.error))
    return DigestResponse(
        due_count=outcome.digest.due_count,
        due_by_box=outcome.digest.due_by_box,
        message=format_digest(outcome.digest),
    )


@app.post("/sessions", response_model=SessionView)
async def start_session(
    req: SessionRequest,
    config: AppConfig = Depends(get_config),
    store: CardStore = Depends(get_store),
):
    session = StudySession(
        store,
        table=config.interval_table,
        due_policy=config.due_policy,
        await_persistence=config.await_persistence,
    )
    query = CardQuery(
        user_id=req.user_id,
        subject_name=req.subject_name,
        topic_name=req.topic_name,
        box_number=req.box_number,
    )
    state = await session.start(query, req.mode)
    if state == SessionState.LOAD_FAILED:
        raise HTTPException(status_code=502, detail=str(session.load_error))

    _evict_idle_sessions()
    session_id = str(ULID())
    if state != SessionState.EMPTY:
        # Nothing to study, so there is nothing for the client to come back to
        _sessions[session_id] = session
        _last_seen[session_id] = _clock()
    logger.info(f"Session {session_id} opened for user={req.user_id} ({state.value})")
    return _session_view(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(session_id: str):
    return _session_view(session_id, _get_session(session_id))


@app.post("/sessions/{session_id}/answer", response_model=AnswerResponse)
async def answer_card(session_id: str, req: AnswerRequest):
    session = _get_session(session_id)
    try:
        result = await session.answer(req.correct)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return AnswerResponse(
        card_id=result.card_id,
        previous_box=result.previous_box,
        new_box=result.new_box,
        next_review_date=result.next_review_date,
        persisted=result.persisted,
        error=str(result.failure.error) if result.failure else None,
        session=_session_view(session_id, session),
    )


@app.post("/sessions/{session_id}/advance", response_model=SessionView)
async def advance_session(session_id: str):
    session = _get_session(session_id)
    try:
        session.advance()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session_id, session)


@app.post("/sessions/{session_id}/back", response_model=SessionView)
async def back_session(session_id: str):
    session = _get_session(session_id)
    try:
        session.back()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session_id, session)


@app.delete("/sessions/{session_id}/cards/{card_id}", response_model=SessionView)
async def remove_session_card(session_id: str, card_id: str):
    session = _get_session(session_id)
    try:
        session.remove_card(card_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Card {card_id} not in session")
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session_id, session)


@app.post("/sessions/{session_id}/retry", response_model=SessionView)
async def retry_failed_writes(session_id: str):
    session = _get_session(session_id)
    remaining = await session.retry_failures()
    if remaining:
        logger.warning(f"Session {session_id}: {len(remaining)} write(s) still failing")
    return _session_view(session_id, session)


@app.delete("/sessions/{session_id}", response_model=SummaryResponse)
async def close_session(session_id: str):
    session = _get_session(session_id)
    summary = await session.close()
    _drop_session(session_id)
    return SummaryResponse(
        correct=summary.correct,
        incorrect=summary.incorrect,
        total=summary.total,
        success_rate=summary.success_rate,
        points_earned=summary.points_earned,
        duration_seconds=summary.duration_seconds,
        deferred_card_ids=summary.deferred_card_ids,
    )
