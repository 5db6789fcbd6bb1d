"""Tests for debounced auto-save and render scheduling."""

import pytest

from astrolabe.core.errors import QuotaExceededError, ReadOnlyViewError
from astrolabe.models.entities import ViewMode
from astrolabe.resolve import ReferenceResolver, RenderScheduler
from astrolabe.stores.autosave import DraftSession, EditOrigin
from astrolabe.stores.datasets import DatasetStore
from astrolabe.stores.snippets import SnippetStore
from astrolabe.utils.debounce import Debouncer

from conftest import FakeClock


def test_debouncer_delivers_only_the_last_call(clock: FakeClock) -> None:
    calls: list[str] = []
    debouncer = Debouncer(1.0, calls.append, timer_factory=clock)
    for text in ("a", "ab", "abc"):
        debouncer.trigger(text)
    assert len(clock.live) == 1
    assert clock.fire_all() == 1
    assert calls == ["abc"]
    assert not debouncer.pending


def test_superseded_timer_callback_is_ignored(clock: FakeClock) -> None:
    calls: list[str] = []
    debouncer = Debouncer(1.0, calls.append, timer_factory=clock)
    debouncer.trigger("old")
    stale = clock.timers[0]
    debouncer.trigger("new")
    # A timer that already started running when it was cancelled still fires.
    stale.function()
    assert calls == []
    clock.fire_all()
    assert calls == ["new"]


def test_flush_forces_pending_call(clock: FakeClock) -> None:
    calls: list[str] = []
    debouncer = Debouncer(1.0, calls.append, timer_factory=clock)
    assert debouncer.flush() is False
    debouncer.trigger("x")
    assert debouncer.flush() is True
    assert calls == ["x"]
    assert clock.fire_all() == 0


def test_burst_of_edits_saves_once(snippet_store: SnippetStore, clock: FakeClock) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    saved = []
    session = DraftSession(snippet_store, snippet.id, delay=1.0, timer_factory=clock, on_saved=saved.append)
    for text in ('{"mark": "l', '{"mark": "li', '{"mark": "line"}'):
        session.edit(text)
    assert session.pending
    assert snippet_store.require(snippet.id).draft_spec is None

    clock.fire_all()
    assert len(saved) == 1
    assert snippet_store.require(snippet.id).draft_spec == '{"mark": "line"}'


def test_programmatic_updates_never_save(snippet_store: SnippetStore, clock: FakeClock) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    session = DraftSession(snippet_store, snippet.id, timer_factory=clock)
    session.edit('{"mark": "point"}', origin=EditOrigin.PROGRAMMATIC)
    assert session.buffer == '{"mark": "point"}'
    assert not session.pending
    assert clock.timers == []


def test_close_flushes_the_last_edit(snippet_store: SnippetStore, clock: FakeClock) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    session = DraftSession(snippet_store, snippet.id, timer_factory=clock)
    session.edit('{"mark": "area"}')
    session.close()
    assert snippet_store.require(snippet.id).draft_spec == '{"mark": "area"}'
    assert clock.fire_all() == 0


def test_published_view_switches_to_draft_when_clean(snippet_store: SnippetStore, clock: FakeClock) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    session = DraftSession(snippet_store, snippet.id, view=ViewMode.PUBLISHED, timer_factory=clock)
    assert not session.read_only
    session.edit('{"mark": "rule"}')
    assert session.view is ViewMode.DRAFT
    session.flush()

    text = session.switch_view(ViewMode.PUBLISHED)
    assert text == snippet.spec
    assert session.read_only
    with pytest.raises(ReadOnlyViewError):
        session.edit('{"mark": "tick"}')
    assert session.switch_view(ViewMode.DRAFT) == '{"mark": "rule"}'


def test_failed_timer_save_is_reported(tmp_path, clock: FakeClock) -> None:
    from astrolabe.db.sqlite import SQLiteDatabase

    store = SnippetStore(SQLiteDatabase(tmp_path / "tiny.db"), quota_bytes=600)
    snippet = store.create({"mark": "bar"})
    errors = []
    session = DraftSession(store, snippet.id, timer_factory=clock, on_error=errors.append)
    session.edit('{"description": "%s"}' % ("x" * 1000))
    clock.fire_all()
    assert isinstance(session.last_error, QuotaExceededError)
    assert errors == [session.last_error]
    assert store.require(snippet.id).draft_spec is None
    store.db.close()


def test_render_discards_stale_results(dataset_store: DatasetStore, clock: FakeClock) -> None:
    dataset_store.create("sales", [{"x": 1}], "json")
    shown = []
    scheduler = RenderScheduler(
        ReferenceResolver(dataset_store),
        renderer=lambda spec, container: spec,
        timer_factory=clock,
        on_display=shown.append,
    )
    first = scheduler.request(1, '{"data": {"name": "sales"}, "mark": "bar"}')
    second = scheduler.request(1, '{"data": {"name": "sales"}, "mark": "line"}')
    assert second > first

    # An older request finishing late must not reach the display.
    assert scheduler.run(first, 1, '{"mark": "bar"}') is None
    clock.fire_all()
    assert [outcome.request_id for outcome in shown] == [second]
    assert scheduler.displayed.artifact["mark"] == "line"
    assert scheduler.displayed.artifact["data"] == {"values": [{"x": 1}]}


def test_render_for_other_snippet_is_discarded(dataset_store: DatasetStore, clock: FakeClock) -> None:
    scheduler = RenderScheduler(ReferenceResolver(dataset_store), renderer=lambda spec, container: spec, timer_factory=clock)
    scheduler.request(1, '{"mark": "bar"}', immediate=True)
    current = scheduler.request(2, '{"mark": "line"}', immediate=True)
    assert scheduler.displayed.request_id == current
    assert scheduler.run(current, 1, '{"mark": "bar"}') is None
    assert scheduler.displayed.snippet_id == 2


def test_render_errors_become_outcomes(dataset_store: DatasetStore, clock: FakeClock) -> None:
    def failing_renderer(spec, container):
        raise RuntimeError("bad encoding")

    resolver = ReferenceResolver(dataset_store)
    scheduler = RenderScheduler(resolver, renderer=lambda spec, container: spec, timer_factory=clock)
    scheduler.request(1, '{"data": {"name": "ghost"}}', immediate=True)
    assert not scheduler.displayed.ok
    assert 'Dataset "ghost" not found' in scheduler.displayed.error

    scheduler.request(1, '{"mark": ', immediate=True)
    assert scheduler.displayed.error.startswith("Invalid JSON")

    failing = RenderScheduler(resolver, renderer=failing_renderer, timer_factory=clock)
    failing.request(1, '{"mark": "bar"}', immediate=True)
    assert failing.displayed.error == "bad encoding"


def test_render_delay_follows_setting_changes(dataset_store: DatasetStore, clock: FakeClock) -> None:
    scheduler = RenderScheduler(
        ReferenceResolver(dataset_store), renderer=lambda spec, container: spec, delay=1.5, timer_factory=clock
    )
    scheduler.request(1, '{"mark": "bar"}')
    assert clock.timers[-1].interval == 1.5

    scheduler.set_delay(0.25)
    latest = scheduler.request(1, '{"mark": "line"}')
    assert clock.timers[-1].interval == 0.25
    assert scheduler.latest_request_id == latest
    assert scheduler.flush()
    assert scheduler.displayed.request_id == latest
