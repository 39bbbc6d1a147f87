"""Shared fixtures for core unit tests"""

import threading
import time

import pytest
from bs4 import BeautifulSoup

from tsumugi.config import Settings
from tsumugi.core.gateway import ConversionGateway
from tsumugi.store.memory import MemoryStore


SAMPLE_MD = """\
# 見出し

本文です。


｜東京《とうきょう》へ行く。
"""


class RecordingStore(MemoryStore):
    """MemoryStore that records writes, can fail, and can be slowed down."""

    def __init__(self, docs: dict = None, fail: bool = False, delay: float = 0.0):
        super().__init__(dict(docs or {}))
        self.fail = fail
        self.delay = delay
        self.writes: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self._counter = threading.Lock()

    def write(self, doc_id: str, text: str) -> None:
        with self._counter:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            if self.fail:
                raise OSError("disk full")
            self.writes.append((doc_id, text))
            super().write(doc_id, text)
        finally:
            with self._counter:
                self.active -= 1


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(debounce_seconds=0.02, save_grace_seconds=0.05)


@pytest.fixture(name="store")
def store_fixture():
    return RecordingStore({"doc.md": SAMPLE_MD})


@pytest.fixture(name="gateway")
def gateway_fixture(store, settings):
    return ConversionGateway(store, settings)


@pytest.fixture(name="soup")
def soup_fixture():
    """Parse an HTML fragment with the same parser the pipelines use."""
    return lambda html: BeautifulSoup(html, "html.parser")


@pytest.fixture(name="recording_store")
def recording_store_fixture():
    """Factory for stores with failure and delay knobs."""
    return RecordingStore


@pytest.fixture(name="sample_md")
def sample_md_fixture():
    return SAMPLE_MD
