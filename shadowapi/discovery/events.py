# shadowapi/discovery/events.py: notification stream for the presentation layer

from __future__ import annotations

from typing import Callable, Dict

from shadowapi.utils.observer import Observable, Signal


class DiscoveryEvents(Observable):
    """
    discovered(finding)   a new Finding was inserted
    verified(host, path)  a Finding moved SHADOW -> VERIFIED
    updated(host, path)   a Finding's captured traffic was replaced
    removed(host, path)   a Finding was deleted by the user
    cleared()             the whole store was cleared

    Every signal is emitted after the store mutation completed.
    """

    def __init__(self) -> None:
        self.discovered = Signal("discovered")
        self.verified = Signal("verified")
        self.updated = Signal("updated")
        self.removed = Signal("removed")
        self.cleared = Signal("cleared")
        self._any: Dict[Callable[[], None], Callable[..., None]] = {}

    def connect_all(self, callback: Callable[[], None]) -> None:
        """Subscribe one payload-less callback to every signal."""
        if callback in self._any:
            return
        wrapper = lambda *args, **kwargs: callback()  # noqa: E731
        self._any[callback] = wrapper
        for signal in self.signals():
            signal.connect(wrapper)

    def disconnect_all(self, callback: Callable[[], None]) -> None:
        wrapper = self._any.pop(callback, None)
        if wrapper is None:
            return
        for signal in self.signals():
            signal.disconnect(wrapper)
