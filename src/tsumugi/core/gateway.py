"""Conversion gateway: the façade the host application drives

Owns the per-document Idle/Saving state machine, the edit debounce timer and
the per-document lock that keeps conversions for one document from interleaving.
Conversions are pure; only store reads and writes are awaited.
"""

import asyncio
import logging
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from typing import Callable, Optional

from tsumugi.config import Settings
from tsumugi.core.commit import commit
from tsumugi.core.models import ConversionState
from tsumugi.core.render import render
from tsumugi.core.sanitize import DEFAULT_POLICY, SanitizationPolicy
from tsumugi.core.utils.hashing import sha256
from tsumugi.store.base import DocumentStore


logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A store write failed; the stored text is unchanged."""

    def __init__(self, doc_id: str, cause: Exception):
        super().__init__(f"Failed to save {doc_id}: {cause}")
        self.doc_id = doc_id


class ConversionGateway:
    """Pairs the two conversion pipelines with a document store for one editing session."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        policy: SanitizationPolicy = DEFAULT_POLICY,
        on_error: Optional[Callable[[PersistenceError], None]] = None,
        ):
        self.store = store
        self.settings = settings or Settings()
        self.policy = policy
        self.on_error = on_error
        self._states: dict[str, ConversionState] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Counter[str] = Counter()
        self._timers: dict[str, asyncio.Task] = {}
        self._idle_handles: dict[str, asyncio.TimerHandle] = {}
        self._pending: dict[str, str] = {}
        self._hashes: dict[str, str] = {}

    # --- pure conversions ---

    def render(self, source: str) -> str:
        return render(
            source,
            preset=self.settings.parser_preset,
            blank_line_class=self.settings.blank_line_class,
            empty_message=self.settings.empty_message,
            policy=self.policy,
        )

    def commit(self, html: str) -> str:
        return commit(
            html,
            blank_line_class=self.settings.blank_line_class,
            empty_message=self.settings.empty_message,
        )

    # --- state ---

    def state(self, doc_id: str) -> ConversionState:
        return self._states.get(doc_id, ConversionState.idle)

    def has_pending(self, doc_id: str) -> bool:
        return doc_id in self._pending

    def _set_idle(self, doc_id: str) -> None:
        self._idle_handles.pop(doc_id, None)
        self._states[doc_id] = ConversionState.idle

    def _enter_saving(self, doc_id: str) -> None:
        handle = self._idle_handles.pop(doc_id, None)
        if handle is not None:
            handle.cancel()
        self._states[doc_id] = ConversionState.saving

    def _leave_saving(self, doc_id: str) -> None:
        """Return to Idle after the grace period, absorbing the store's own change notice."""
        grace = self.settings.save_grace_seconds
        if grace <= 0:
            self._set_idle(doc_id)
            return
        loop = asyncio.get_running_loop()
        self._idle_handles[doc_id] = loop.call_later(grace, self._set_idle, doc_id)

    # --- load / save ---

    @asynccontextmanager
    async def _exclusive(self, doc_id: str):
        """Hold the document's lock, counting waiters so close() keeps it while in use."""
        self._lock_users[doc_id] += 1
        try:
            async with self._locks[doc_id]:
                yield
        finally:
            self._lock_users[doc_id] -= 1
            if not self._lock_users[doc_id]:
                del self._lock_users[doc_id]

    async def load(self, doc_id: str) -> str:
        """Read a document from the store and render it for editing."""
        async with self._exclusive(doc_id):
            source = await asyncio.to_thread(self.store.read, doc_id)
            self._hashes[doc_id] = sha256(source)
            return self.render(source)

    async def save(self, doc_id: str, html: str) -> str:
        """Convert edited HTML and write it to the store. Returns the stored text.

        Raises PersistenceError if the write fails; the document goes straight
        back to Idle in that case.
        """
        async with self._exclusive(doc_id):
            self._enter_saving(doc_id)
            text = self.commit(html)
            digest = sha256(text)
            if self._hashes.get(doc_id) == digest:
                logger.debug("Skipping write for %s: content unchanged", doc_id)
                self._leave_saving(doc_id)
                return text
            try:
                await asyncio.to_thread(self.store.write, doc_id, text)
            except Exception as e:
                self._set_idle(doc_id)
                logger.error("Failed to save %s: %s", doc_id, e)
                raise PersistenceError(doc_id, e) from e
            self._hashes[doc_id] = digest
            self._leave_saving(doc_id)
            return text

    # --- edits ---

    def notify_edit(self, doc_id: str, html: str) -> None:
        """Record the latest editor HTML and (re)start the quiescence timer."""
        self._pending[doc_id] = html
        timer = self._timers.pop(doc_id, None)
        if timer is not None:
            timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[doc_id] = loop.create_task(self._save_when_quiet(doc_id))

    async def _save_when_quiet(self, doc_id: str) -> None:
        await asyncio.sleep(self.settings.debounce_seconds)
        self._timers.pop(doc_id, None)
        try:
            await self.flush(doc_id)
        except PersistenceError as e:
            if self.on_error is not None:
                self.on_error(e)

    async def flush(self, doc_id: str) -> Optional[str]:
        """Save the pending edit now. Returns the stored text, or None if nothing was pending.

        On failure the edit stays pending (unless a newer one arrived) so it can be retried.
        """
        timer = self._timers.pop(doc_id, None)
        if timer is not None:
            timer.cancel()
        html = self._pending.pop(doc_id, None)
        if html is None:
            return None
        try:
            return await self.save(doc_id, html)
        except PersistenceError:
            self._pending.setdefault(doc_id, html)
            raise

    async def close(self, doc_id: str) -> Optional[str]:
        """Flush pending edits and forget per-document state.

        State is kept while another load or save of the document holds or awaits its lock.
        """
        try:
            return await self.flush(doc_id)
        finally:
            if doc_id not in self._pending and not self._lock_users[doc_id]:
                handle = self._idle_handles.pop(doc_id, None)
                if handle is not None:
                    handle.cancel()
                self._states.pop(doc_id, None)
                self._hashes.pop(doc_id, None)
                self._locks.pop(doc_id, None)

    # --- external changes ---

    async def on_external_change(self, doc_id: str) -> Optional[str]:
        """Reload after the store reports a change; ignored while our own save is in flight."""
        if self.state(doc_id) is ConversionState.saving:
            logger.debug("Ignoring change notification for %s while saving", doc_id)
            return None
        return await self.load(doc_id)
