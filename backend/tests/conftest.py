"""Test fixtures for Astrolabe."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from astrolabe.db.sqlite import SQLiteDatabase  # noqa: E402
from astrolabe.ingest.fetch import RemoteFetcher  # noqa: E402
from astrolabe.stores.datasets import DatasetStore  # noqa: E402
from astrolabe.stores.snippets import SnippetStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("ASTRO_SNIPPETS_PATH", str(tmp_path / "snippets.db"))
    monkeypatch.setenv("ASTRO_DATASETS_PATH", str(tmp_path / "datasets.db"))
    monkeypatch.delenv("ASTRO_CONFIG", raising=False)

    from astrolabe.api import dependencies as deps
    from astrolabe.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps.reset_workspace()
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps.reset_workspace()


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200, headers: dict[str, str] | None = None) -> None:
        self.text = text
        self.status_code = status_code
        self.headers = headers or {}
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class FakeSession:
    """Stands in for ``requests.Session``; maps URLs to canned responses."""

    def __init__(self, routes: dict[str, FakeResponse | Exception] | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[str] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.calls.append(url)
        outcome = self.routes.get(url)
        if outcome is None:
            return FakeResponse("", status_code=404)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeTimer:
    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Timer factory whose timers fire only when the test says so."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if timer.started and not timer.cancelled]

    def fire_all(self) -> int:
        fired = 0
        for timer in self.live:
            timer.cancelled = True
            timer.function()
            fired += 1
        return fired


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fetcher(fake_session: FakeSession) -> RemoteFetcher:
    return RemoteFetcher(timeout=1.0, session=fake_session)


@pytest.fixture
def dataset_store(tmp_path: Path, fetcher: RemoteFetcher) -> DatasetStore:
    store = DatasetStore(SQLiteDatabase(tmp_path / "datasets-unit.db"), fetcher=fetcher)
    yield store
    store.db.close()


@pytest.fixture
def snippet_store(tmp_path: Path) -> SnippetStore:
    store = SnippetStore(SQLiteDatabase(tmp_path / "snippets-unit.db"))
    yield store
    store.db.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
