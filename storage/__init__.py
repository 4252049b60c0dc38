"""
Storage Module
Curation store contract plus in-memory and SQL adapters.
"""
import logging
from typing import Optional

from .base import CurationStore, DEFAULT_RUN_SLOT
from .memory_store import InMemoryCurationStore
from .sql_store import SqlCurationStore


logger = logging.getLogger(__name__)


def get_store(database_url: Optional[str] = None, echo: Optional[bool] = None) -> CurationStore:
    """
    Build a store for the configured database URL.

    ``memory://`` selects the in-memory adapter; anything else is handed to
    SQLAlchemy (e.g. ``sqlite:///./data/curation.db``).
    """
    from config import get_storage_settings

    settings = get_storage_settings()
    url = (database_url or settings.database_url or "memory://").strip()
    if url.startswith("memory://"):
        logger.info("[Storage] Using in-memory curation store")
        return InMemoryCurationStore()
    return SqlCurationStore(url, echo=settings.echo if echo is None else echo)


__all__ = [
    "CurationStore",
    "DEFAULT_RUN_SLOT",
    "InMemoryCurationStore",
    "SqlCurationStore",
    "get_store",
]
