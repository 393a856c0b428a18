"""
shadowapi/utils/observer.py
Minimal signal/observer primitives for change notifications.

Signals are emitted from traffic worker threads. A presentation layer that
needs thread affinity (a UI event loop, for example) installs a dispatcher:
a callable that receives a zero-argument thunk and runs it wherever the
presentation layer wants. Without one, callbacks run inline on the emitting
thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Callable[[], None]], None]


def _inline(thunk: Callable[[], None]) -> None:
    thunk()


class Signal:
    """A thread-safe pure-Python signal."""

    def __init__(self, name: str = ""):
        self.name = name
        self._lock = threading.Lock()
        self._observers: List[Callable[..., Any]] = []
        self._dispatcher: Dispatcher = _inline

    def connect(self, callback: Callable[..., Any]) -> None:
        """Subscribe a callback function."""
        with self._lock:
            if callback not in self._observers:
                self._observers.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        """Unsubscribe a callback function."""
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)

    def set_dispatcher(self, dispatcher: Optional[Dispatcher]) -> None:
        self._dispatcher = dispatcher or _inline

    def emit(self, *args, **kwargs) -> None:
        """Notify all subscribers through the dispatcher."""
        with self._lock:
            observers = list(self._observers)
        for callback in observers:
            self._dispatcher(lambda cb=callback: self._invoke(cb, args, kwargs))

    def _invoke(self, callback: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        try:
            callback(*args, **kwargs)
        except Exception as e:
            # One failing subscriber must not starve the others
            logger.error(f"[Signal:{self.name}] Error in observer callback: {e}", exc_info=True)


class Observable:
    """
    Base class for objects that expose Signals.

    Subclasses declare Signal instances in __init__; set_dispatcher()
    applies one dispatcher to every Signal attribute at once.
    """

    def signals(self) -> List[Signal]:
        return [v for v in vars(self).values() if isinstance(v, Signal)]

    def set_dispatcher(self, dispatcher: Optional[Dispatcher]) -> None:
        for signal in self.signals():
            signal.set_dispatcher(dispatcher)
