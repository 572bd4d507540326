"""
Card Store Factory
Centralizes the logic for selecting the appropriate store adapter.
"""

from leitner.application.config import AppConfig
from leitner.domain.ports import CardStore
from leitner.infrastructure.adapters.memory_store import MemoryCardStore
from leitner.infrastructure.adapters.rest_store import RestCardStore
from leitner.infrastructure.adapters.sqlite_store import SqliteCardStore


def get_card_store(config: AppConfig) -> CardStore:
    """
    Returns the CardStore implementation selected by ``config.backend``.
    """
    if config.backend == "rest":
        return RestCardStore(
            url=config.rest_url,
            api_key=config.rest_api_key,
            timeout=config.request_timeout,
        )

    if config.backend == "memory":
        return MemoryCardStore()

    return SqliteCardStore(config.db_path)
