"""Unit tests for core/gateway.py"""

import asyncio

import pytest

from tsumugi.core.gateway import ConversionGateway, PersistenceError
from tsumugi.core.models import ConversionState
from tsumugi.store.base import DocumentNotFoundError


# --- load ---

def test_load_renders_stored_text(gateway):
    """load returns the rendered form of the stored document."""
    html = asyncio.run(gateway.load("doc.md"))
    assert "<ruby>東京<rt>とうきょう</rt></ruby>" in html
    assert "<h1>見出し</h1>" in html


def test_load_missing_document(gateway):
    """A missing document surfaces the store's DocumentNotFoundError."""
    with pytest.raises(DocumentNotFoundError):
        asyncio.run(gateway.load("nope.md"))


# --- save ---

def test_save_writes_committed_text(gateway, store):
    """save converts HTML and writes the resulting text."""
    text = asyncio.run(gateway.save("doc.md", "<p><ruby>猫<rt>ねこ</rt></ruby></p>"))
    assert text == "｜猫《ねこ》"
    assert store.read("doc.md") == "｜猫《ねこ》"


def test_save_skips_unchanged_text(gateway, store):
    """Saving the rendered form of the stored text does not write again."""
    async def scenario():
        await gateway.save("doc.md", "<p><ruby>猫<rt>ねこ</rt></ruby></p>")
        html = await gateway.load("doc.md")
        return await gateway.save("doc.md", html)

    assert asyncio.run(scenario()) == "｜猫《ねこ》"
    assert store.writes == [("doc.md", "｜猫《ねこ》")]


def test_save_after_load_drops_trailing_newline(gateway, store, sample_md):
    """The round trip does not keep a final newline, so the first save writes."""
    async def scenario():
        html = await gateway.load("doc.md")
        return await gateway.save("doc.md", html)

    assert asyncio.run(scenario()) == sample_md.rstrip("\n")
    assert len(store.writes) == 1


def test_save_skips_second_identical_write(gateway, store):
    """Two saves of the same HTML write once."""
    async def scenario():
        await gateway.save("doc.md", "<p>one</p>")
        await gateway.save("doc.md", "<p>one</p>")

    asyncio.run(scenario())
    assert store.writes == [("doc.md", "one")]


def test_save_state_saving_until_grace_expires(gateway, settings):
    """The document stays Saving for the grace period after a write."""
    async def scenario():
        await gateway.save("doc.md", "<p>new</p>")
        during = gateway.state("doc.md")
        await asyncio.sleep(settings.save_grace_seconds * 4)
        return during, gateway.state("doc.md")

    during, after = asyncio.run(scenario())
    assert during is ConversionState.saving
    assert after is ConversionState.idle


def test_save_failure_raises_persistence_error(settings, recording_store):
    """A failed write raises PersistenceError and leaves the stored text alone."""
    store = recording_store({"doc.md": "old"}, fail=True)
    gateway = ConversionGateway(store, settings)
    with pytest.raises(PersistenceError, match="doc.md"):
        asyncio.run(gateway.save("doc.md", "<p>new</p>"))
    assert store.read("doc.md") == "old"
    assert gateway.state("doc.md") is ConversionState.idle


def test_saves_for_one_document_do_not_overlap(settings, recording_store):
    """Concurrent saves of the same document run one at a time, in order."""
    store = recording_store(delay=0.02)
    gateway = ConversionGateway(store, settings)

    async def scenario():
        await asyncio.gather(
            gateway.save("doc.md", "<p>one</p>"),
            gateway.save("doc.md", "<p>two</p>"),
        )

    asyncio.run(scenario())
    assert store.max_active == 1
    assert store.writes == [("doc.md", "one"), ("doc.md", "two")]


def test_saves_for_different_documents_may_overlap(settings, recording_store):
    """The lock is per document."""
    store = recording_store(delay=0.05)
    gateway = ConversionGateway(store, settings)

    async def scenario():
        await asyncio.gather(
            gateway.save("a.md", "<p>a</p>"),
            gateway.save("b.md", "<p>b</p>"),
        )

    asyncio.run(scenario())
    assert sorted(store.writes) == [("a.md", "a"), ("b.md", "b")]


# --- debounced edits ---

def test_edits_are_coalesced(gateway, store, settings):
    """A burst of edits produces one write of the final state."""
    async def scenario():
        gateway.notify_edit("doc.md", "<p>one</p>")
        gateway.notify_edit("doc.md", "<p>two</p>")
        gateway.notify_edit("doc.md", "<p>three</p>")
        await asyncio.sleep(settings.debounce_seconds * 10)

    asyncio.run(scenario())
    assert store.writes == [("doc.md", "three")]


def test_edit_not_saved_before_quiet_period(gateway, store, settings):
    """Nothing is written while edits keep arriving."""
    async def scenario():
        gateway.notify_edit("doc.md", "<p>one</p>")
        await asyncio.sleep(settings.debounce_seconds / 4)
        pending = gateway.has_pending("doc.md")
        written = list(store.writes)
        await asyncio.sleep(settings.debounce_seconds * 10)
        return pending, written

    pending, written = asyncio.run(scenario())
    assert pending
    assert written == []
    assert store.writes == [("doc.md", "one")]


def test_flush_saves_immediately(gateway, store):
    """flush writes the pending edit without waiting."""
    async def scenario():
        gateway.notify_edit("doc.md", "<p>now</p>")
        return await gateway.flush("doc.md")

    assert asyncio.run(scenario()) == "now"
    assert store.writes == [("doc.md", "now")]
    assert not gateway.has_pending("doc.md")


def test_flush_without_pending_edit(gateway, store):
    """flush is a no-op when nothing is pending."""
    assert asyncio.run(gateway.flush("doc.md")) is None
    assert store.writes == []


def test_debounced_failure_reports_and_keeps_edit(settings, recording_store):
    """A failed debounced save goes to on_error and the edit stays pending for retry."""
    errors = []
    store = recording_store({"doc.md": "old"}, fail=True)
    gateway = ConversionGateway(store, settings, on_error=errors.append)

    async def scenario():
        gateway.notify_edit("doc.md", "<p>new</p>")
        await asyncio.sleep(settings.debounce_seconds * 10)
        pending = gateway.has_pending("doc.md")
        store.fail = False
        return pending, await gateway.flush("doc.md")

    pending, retried = asyncio.run(scenario())
    assert len(errors) == 1
    assert isinstance(errors[0], PersistenceError)
    assert pending
    assert retried == "new"
    assert store.read("doc.md") == "new"


def test_close_flushes_pending_edit(gateway, store):
    """close saves what is pending and resets the document's state."""
    async def scenario():
        gateway.notify_edit("doc.md", "<p>bye</p>")
        return await gateway.close("doc.md")

    assert asyncio.run(scenario()) == "bye"
    assert gateway.state("doc.md") is ConversionState.idle


def test_close_during_save_keeps_document_lock(settings, recording_store):
    """Closing while a save is writing does not let the next save overlap it."""
    store = recording_store(delay=0.05)
    gateway = ConversionGateway(store, settings)

    async def scenario():
        first = asyncio.create_task(gateway.save("doc.md", "<p>one</p>"))
        await asyncio.sleep(0.01)
        await gateway.close("doc.md")
        await gateway.save("doc.md", "<p>two</p>")
        await first

    asyncio.run(scenario())
    assert store.max_active == 1
    assert store.writes == [("doc.md", "one"), ("doc.md", "two")]


def test_close_forgets_document_after_saves_finish(gateway):
    """Once no save holds the lock, close drops the document's lock and state."""
    async def scenario():
        await gateway.save("doc.md", "<p>done</p>")
        await gateway.close("doc.md")

    asyncio.run(scenario())
    assert "doc.md" not in gateway._locks
    assert gateway.state("doc.md") is ConversionState.idle


# --- external changes ---

def test_external_change_ignored_while_saving(gateway, store, settings):
    """A change notice during Saving does not reload; after the grace period it does."""
    async def scenario():
        await gateway.save("doc.md", "<p>mine</p>")
        ignored = await gateway.on_external_change("doc.md")
        await asyncio.sleep(settings.save_grace_seconds * 4)
        store.write("doc.md", "theirs")
        reloaded = await gateway.on_external_change("doc.md")
        return ignored, reloaded

    ignored, reloaded = asyncio.run(scenario())
    assert ignored is None
    assert "<p>theirs</p>" in reloaded


def test_external_change_reloads_with_pending_edit(gateway, store, settings):
    """A change notice while an edit is pending still reloads; the edit is saved later."""
    async def scenario():
        gateway.notify_edit("doc.md", "<p>mine</p>")
        reloaded = await gateway.on_external_change("doc.md")
        await asyncio.sleep(settings.debounce_seconds * 10)
        return reloaded

    reloaded = asyncio.run(scenario())
    assert "<h1>見出し</h1>" in reloaded
    assert store.read("doc.md") == "mine"


# --- pure conversions ---

def test_gateway_uses_settings(store):
    """render and commit follow the configured marker class and placeholder."""
    from tsumugi.config import Settings

    gateway = ConversionGateway(store, Settings(blank_line_class="gap", empty_message="空"))
    assert '<p class="gap"><br></p>' in gateway.render("A\n\nB")
    assert "空" in gateway.render("")
    assert gateway.commit('<p>A</p><p class="gap"><br></p><p class="gap"><br></p><p>B</p>') == "A\n\n\nB"
