"""Backend selection for the document store"""

from tsumugi.config import Settings
from tsumugi.store.base import DocumentStore
from tsumugi.store.files import FileStore
from tsumugi.store.memory import MemoryStore


def make_store(settings: Settings) -> DocumentStore:
    """Build the store named by settings.store_backend."""
    if settings.store_backend == "file":
        return FileStore(settings.docs_dir)
    if settings.store_backend == "memory":
        return MemoryStore()
    from tsumugi.store.sql import SqlStore
    return SqlStore.from_url(settings.db_url, max_versions=settings.max_versions)


