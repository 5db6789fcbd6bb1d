"""Debounced auto-save of editor text into a snippet draft."""

from __future__ import annotations

from enum import Enum
from typing import Callable

from astrolabe.core.errors import AstrolabeError, ReadOnlyViewError
from astrolabe.core.logging import get_logger
from astrolabe.models.entities import Snippet, ViewMode
from astrolabe.stores.snippets import SnippetStore
from astrolabe.utils.debounce import Debouncer, TimerFactory, default_timer_factory

logger = get_logger(__name__)


class EditOrigin(str, Enum):
    """Who changed the editor buffer.

    Programmatic changes (loading a snippet into the editor, switching views)
    are passed explicitly and never schedule a save.
    """

    USER = "user"
    PROGRAMMATIC = "programmatic"


class DraftSession:
    """Editing state for one open snippet.

    User edits are committed to the store at most once per debounce window;
    the window restarts on every edit and the last edit of a burst is always
    saved. Saves that fail inside the timer are kept in ``last_error`` and
    passed to ``on_error``.
    """

    def __init__(
        self,
        store: SnippetStore,
        snippet_id: int,
        delay: float = 1.0,
        view: ViewMode = ViewMode.DRAFT,
        timer_factory: TimerFactory = default_timer_factory,
        on_saved: Callable[[Snippet], None] | None = None,
        on_error: Callable[[AstrolabeError], None] | None = None,
    ) -> None:
        self.store = store
        self.snippet_id = snippet_id
        self.view = view
        self.on_saved = on_saved
        self.on_error = on_error
        self.last_error: AstrolabeError | None = None
        self.buffer = self._text_for_view(store.require(snippet_id))
        self._debouncer = Debouncer(delay, self._save, timer_factory=timer_factory)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    @property
    def read_only(self) -> bool:
        if self.view is ViewMode.DRAFT:
            return False
        return self.store.require(self.snippet_id).has_pending_changes

    def edit(self, text: str, origin: EditOrigin = EditOrigin.USER) -> None:
        if origin is EditOrigin.PROGRAMMATIC:
            self.buffer = text
            return
        if self.view is ViewMode.PUBLISHED:
            if self.read_only:
                raise ReadOnlyViewError("Switch to the draft view to edit this snippet")
            # A clean snippet edited in the published view starts a draft.
            self.view = ViewMode.DRAFT
        self.buffer = text
        self._debouncer.trigger(text)

    def switch_view(self, view: ViewMode) -> str:
        """Flush pending edits, change view and return the text to display."""
        self.flush()
        self.view = view
        self.edit(self._text_for_view(self.store.require(self.snippet_id)), origin=EditOrigin.PROGRAMMATIC)
        return self.buffer

    def flush(self) -> bool:
        return self._debouncer.flush()

    def close(self) -> None:
        self.flush()
        self._debouncer.cancel()

    def _text_for_view(self, snippet: Snippet) -> str:
        return snippet.working_spec if self.view is ViewMode.DRAFT else snippet.spec

    def _save(self, text: str) -> None:
        try:
            snippet = self.store.update_draft(self.snippet_id, text, view=ViewMode.DRAFT)
        except AstrolabeError as exc:
            self.last_error = exc
            logger.warning("Auto-save of snippet %s failed: %s", self.snippet_id, exc)
            if self.on_error is None:
                raise
            self.on_error(exc)
            return
        self.last_error = None
        logger.debug("Auto-saved snippet %s", self.snippet_id)
        if self.on_saved is not None:
            self.on_saved(snippet)


__all__ = ["DraftSession", "EditOrigin"]
