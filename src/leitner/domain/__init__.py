# Domain Package
from .exceptions import (
    FrozenCardError,
    LeitnerError,
    OutOfRangeError,
    SessionStateError,
    StoreError,
)
from .models import (
    BoxAggregate,
    Card,
    CardFilter,
    CardQuery,
    DuePolicy,
    ReviewRecord,
    ReviewStatus,
    SessionStats,
)
from .ports import CardStore
from .scheduling import DEFAULT_TABLE, IntervalTable, classify, next_box, schedule

__all__ = [
    "BoxAggregate",
    "Card",
    "CardFilter",
    "CardQuery",
    "CardStore",
    "DEFAULT_TABLE",
    "DuePolicy",
    "FrozenCardError",
    "IntervalTable",
    "LeitnerError",
    "OutOfRangeError",
    "ReviewRecord",
    "ReviewStatus",
    "SessionStateError",
    "SessionStats",
    "StoreError",
    "classify",
    "next_box",
    "schedule",
]
