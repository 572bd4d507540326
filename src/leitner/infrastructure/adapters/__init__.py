# Infrastructure Card Store Adapters Package
from .memory_store import MemoryCardStore
from .rest_store import RestCardStore
from .sqlite_store import SqliteCardStore

__all__ = ["MemoryCardStore", "RestCardStore", "SqliteCardStore"]
