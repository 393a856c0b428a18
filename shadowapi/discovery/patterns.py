"""
shadowapi/discovery/patterns.py
PatternSet: user-configurable endpoint regexes compiled into one matcher.

Each fragment is expected to capture the endpoint path in a capturing group;
a group-less fragment matches the path literally. Fragments are joined into a
single case-insensitive alternation.

The compiled matcher is an immutable snapshot swapped by reference, so a scan
that already started keeps using the matcher it began with while every scan
started after configure() sees the new one.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple, Optional, Pattern, Tuple

from shadowapi.config import DEFAULT_FRAGMENTS

logger = logging.getLogger(__name__)

FALLBACK_FRAGMENT = r"""['"](\/api\/[a-zA-Z0-9_\-/]+)['"]"""


class PatternMatch(NamedTuple):
    path: str
    start: int
    end: int


@dataclass(frozen=True)
class _Matcher:
    fragments: Tuple[str, ...]
    regex: Pattern[str]
    fallback: bool


def _fallback_matcher(fragments: Tuple[str, ...]) -> _Matcher:
    return _Matcher(
        fragments=fragments,
        regex=re.compile(FALLBACK_FRAGMENT, re.IGNORECASE),
        fallback=True,
    )


def _compile(fragments: Tuple[str, ...]) -> _Matcher:
    if not fragments:
        logger.warning("[PatternSet] No patterns configured, using default /api/ pattern")
        return _fallback_matcher(fragments)
    combined = "|".join(fragments)
    try:
        regex = re.compile(combined, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"[PatternSet] Invalid pattern ({e}), falling back to default /api/ pattern")
        return _fallback_matcher(fragments)
    return _Matcher(fragments=fragments, regex=regex, fallback=False)


def _path_of(m: "re.Match[str]") -> str:
    for group in m.groups():
        if group:
            return group
    return m.group(0)


class PatternSet:
    """Thread-safe, copy-on-write endpoint matcher."""

    def __init__(self, fragments: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._matcher = _fallback_matcher(())
        self.configure(DEFAULT_FRAGMENTS if fragments is None else fragments)

    def configure(self, fragments: Iterable[str]) -> None:
        """
        Replace the fragment list and recompile.

        Never raises: an invalid combined pattern, or an empty list, leaves the
        fallback /api/ matcher in place.
        """
        cleaned = tuple(f.strip() for f in fragments if f and f.strip())
        matcher = _compile(cleaned)
        with self._lock:
            self._matcher = matcher
        logger.debug(f"[PatternSet] Configured {len(cleaned)} fragment(s), fallback={matcher.fallback}")

    @property
    def fragments(self) -> Tuple[str, ...]:
        return self._matcher.fragments

    @property
    def using_fallback(self) -> bool:
        return self._matcher.fallback

    def extract(self, text: str) -> Iterator[PatternMatch]:
        """
        Lazily yield every non-overlapping match in text.

        The matcher snapshot is taken when iteration starts.
        """
        matcher = self._matcher
        for m in matcher.regex.finditer(text):
            yield PatternMatch(_path_of(m), m.start(), m.end())

    def first_match(self, text: str) -> Optional[PatternMatch]:
        m = self._matcher.regex.search(text)
        if m is None:
            return None
        return PatternMatch(_path_of(m), m.start(), m.end())
