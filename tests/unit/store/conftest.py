"""Shared fixtures for store unit tests"""

import pytest

from tsumugi.store.files import FileStore
from tsumugi.store.sql import SqlStore


@pytest.fixture(name="file_store")
def file_store_fixture(tmp_path):
    return FileStore(tmp_path / "docs")


@pytest.fixture(name="sql_store")
def sql_store_fixture():
    """SqlStore on an in-memory SQLite database, keeping at most 3 versions."""
    return SqlStore.from_url("sqlite://", max_versions=3)
