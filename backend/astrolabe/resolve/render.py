"""Render scheduling: debounce edits, resolve, hand off to the renderer."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable

import orjson

from astrolabe.core.errors import AstrolabeError
from astrolabe.core.logging import get_logger
from astrolabe.resolve.resolver import ReferenceResolver
from astrolabe.utils.debounce import Debouncer, TimerFactory, default_timer_factory

logger = get_logger(__name__)

# (resolved spec, container) -> rendered artifact; raises on failure.
Renderer = Callable[[Any, Any], Any]


@dataclass(slots=True)
class RenderOutcome:
    request_id: int
    snippet_id: int | None
    ok: bool
    artifact: Any = None
    error: str | None = None


class RenderScheduler:
    """Debounced rendering that never lets a stale result reach the display.

    Every request gets a new id. In-flight work is not cancelled; when it
    finishes, its outcome is dropped unless it is still the latest request
    for the snippet on display.
    """

    def __init__(
        self,
        resolver: ReferenceResolver,
        renderer: Renderer,
        container: Any = None,
        delay: float = 1.5,
        timer_factory: TimerFactory = default_timer_factory,
        on_display: Callable[[RenderOutcome], None] | None = None,
    ) -> None:
        self.resolver = resolver
        self.renderer = renderer
        self.container = container
        self.on_display = on_display
        self.displayed: RenderOutcome | None = None
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._latest_id = 0
        self._current_snippet: int | None = None
        self._debouncer = Debouncer(delay, self.run, timer_factory=timer_factory)

    @property
    def latest_request_id(self) -> int:
        return self._latest_id

    def request(self, snippet_id: int | None, spec_text: str, immediate: bool = False) -> int:
        """Schedule a render of ``spec_text``; ``immediate`` skips the debounce."""
        with self._lock:
            request_id = next(self._ids)
            self._latest_id = request_id
            self._current_snippet = snippet_id
        if immediate:
            self._debouncer.cancel()
            self.run(request_id, snippet_id, spec_text)
        else:
            self._debouncer.trigger(request_id, snippet_id, spec_text)
        return request_id

    def set_delay(self, delay: float) -> None:
        self._debouncer.delay = delay

    def flush(self) -> bool:
        return self._debouncer.flush()

    def run(self, request_id: int, snippet_id: int | None, spec_text: str) -> RenderOutcome | None:
        outcome = self._render(request_id, snippet_id, spec_text)
        with self._lock:
            stale = request_id != self._latest_id or snippet_id != self._current_snippet
            if not stale:
                self.displayed = outcome
        if stale:
            logger.debug("Discarding stale render %s for snippet %s", request_id, snippet_id)
            return None
        if self.on_display is not None:
            self.on_display(outcome)
        return outcome

    def _render(self, request_id: int, snippet_id: int | None, spec_text: str) -> RenderOutcome:
        try:
            spec = orjson.loads(spec_text)
            resolved = self.resolver.resolve(spec)
        except orjson.JSONDecodeError as exc:
            return RenderOutcome(request_id, snippet_id, ok=False, error=f"Invalid JSON: {exc}")
        except AstrolabeError as exc:
            return RenderOutcome(request_id, snippet_id, ok=False, error=str(exc))
        try:
            artifact = self.renderer(resolved, self.container)
        except Exception as exc:  # noqa: BLE001 - renderer is an opaque collaborator
            logger.warning("Render of snippet %s failed: %s", snippet_id, exc)
            return RenderOutcome(request_id, snippet_id, ok=False, error=str(exc))
        return RenderOutcome(request_id, snippet_id, ok=True, artifact=artifact)


__all__ = ["RenderOutcome", "RenderScheduler", "Renderer"]
