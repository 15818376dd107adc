"""Synchronous publish/subscribe for change events and refresh signals."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from remote_contents._models import ChangeEvent, ChangeKind
from remote_contents._path import parent_of, to_display_path

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    ChangeObserver = Callable[[Sequence[ChangeEvent]], None]
    RefreshListener = Callable[[], None]

log = logging.getLogger(__name__)


def _pair(kind: ChangeKind, path: str) -> list[ChangeEvent]:
    display = to_display_path(path)
    return [ChangeEvent(kind, display), ChangeEvent(ChangeKind.CHANGED, parent_of(display))]


def created_events(path: str) -> list[ChangeEvent]:
    """``Created`` for ``path`` plus ``Changed`` for its parent."""
    return _pair(ChangeKind.CREATED, path)


def changed_events(path: str) -> list[ChangeEvent]:
    """``Changed`` for ``path`` plus ``Changed`` for its parent."""
    return _pair(ChangeKind.CHANGED, path)


def deleted_events(path: str) -> list[ChangeEvent]:
    """``Deleted`` for ``path`` plus ``Changed`` for its parent; the removed path is not re-announced."""
    return _pair(ChangeKind.DELETED, path)


class ChangeNotifier:
    """Delivers change events to observers in emission order.

    Delivery is synchronous and unbuffered: each ``notify`` call reaches every
    observer registered at that moment before it returns. Coalescing bursts
    into a single redraw is up to the observer.
    """

    def __init__(self) -> None:
        self._observers: list[ChangeObserver] = []
        self._refresh_listeners: list[RefreshListener] = []

    def __repr__(self) -> str:
        return f"ChangeNotifier(observers={len(self._observers)}, refresh_listeners={len(self._refresh_listeners)})"

    def subscribe(self, observer: ChangeObserver) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unsubscribes it."""
        self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: ChangeObserver) -> None:
        """Remove ``observer``. Removing an unknown observer is a no-op."""
        if observer in self._observers:
            self._observers.remove(observer)

    def subscribe_refresh(self, listener: RefreshListener) -> Callable[[], None]:
        """Register a listener for whole-tree refresh signals."""
        self._refresh_listeners.append(listener)
        return lambda: self.unsubscribe_refresh(listener)

    def unsubscribe_refresh(self, listener: RefreshListener) -> None:
        if listener in self._refresh_listeners:
            self._refresh_listeners.remove(listener)

    def notify(self, events: Sequence[ChangeEvent]) -> None:
        """Deliver ``events`` to every observer.

        An observer that raises is logged and skipped; the others still receive the events.
        """
        if not events:
            return
        for observer in list(self._observers):
            try:
                observer(events)
            except Exception:
                log.exception("Change observer %r failed", observer)

    def refresh(self) -> None:
        """Signal that the whole tree should be re-read."""
        for listener in list(self._refresh_listeners):
            try:
                listener()
            except Exception:
                log.exception("Refresh listener %r failed", listener)
