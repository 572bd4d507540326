# Application Package
from .aggregator import BoxStatsService, StatsOutcome, aggregate
from .digest import DigestService, DueDigest, build_digest, format_digest
from .ordering import OrderingPolicy, order_cards
from .session import (
    MODE_ORDERING,
    AnswerResult,
    PersistenceFailure,
    SessionState,
    StudyMode,
    StudySession,
)

__all__ = [
    "AnswerResult",
    "BoxStatsService",
    "DigestService",
    "DueDigest",
    "MODE_ORDERING",
    "OrderingPolicy",
    "PersistenceFailure",
    "SessionState",
    "StatsOutcome",
    "StudyMode",
    "StudySession",
    "aggregate",
    "build_digest",
    "format_digest",
    "order_cards",
]
