"""
shadowapi/discovery/engine.py
The discovery engine: turns traffic events into findings and state changes.

Two entry points, one per event kind, callable concurrently from any number
of transport worker threads. The engine keeps no per-connection state; the
FindingStore is the only shared mutable state and guards itself.

Neither entry point raises. Malformed or oversized input is treated as "no
matches" and the transport always continues unmodified.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol

from shadowapi.discovery.events import DiscoveryEvents
from shadowapi.discovery.heuristics import (
    METHOD_LOOKBACK_CHARS,
    infer_method,
    looks_like_script,
)
from shadowapi.discovery.models import (
    CapturedTraffic,
    FindingState,
    HttpRequestRecord,
    HttpResponseRecord,
)
from shadowapi.discovery.patterns import PatternSet

if TYPE_CHECKING:
    from shadowapi.data.findings_store import FindingStore

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 5_000_000


class ScopeOracle(Protocol):
    def is_in_scope(self, url: str) -> bool: ...


class DiscoveryEngine:
    """
    Drives PatternSet + FindingStore from outbound requests and inbound
    responses.

    Note on request handling: outbound request paths are themselves matched
    against the endpoint patterns, so a directly called, never-seen route can
    be recorded as VERIFIED. A very broad pattern therefore turns most
    outbound requests into VERIFIED findings. That is intended behaviour.
    """

    def __init__(
        self,
        store: FindingStore,
        patterns: PatternSet,
        events: Optional[DiscoveryEvents] = None,
        scope: Optional[ScopeOracle] = None,
        scope_only: bool = False,
        max_body_chars: int = MAX_BODY_CHARS,
        method_lookback: int = METHOD_LOOKBACK_CHARS,
    ):
        self.store = store
        self.patterns = patterns
        self.events = events or DiscoveryEvents()
        self.scope = scope
        self.scope_only = scope_only
        self.max_body_chars = max_body_chars
        self.method_lookback = method_lookback

    def _out_of_scope(self, url: str) -> bool:
        if not self.scope_only or self.scope is None:
            return False
        return not self.scope.is_in_scope(url)

    # ------------------------------------------------------------------
    # Outbound requests
    # ------------------------------------------------------------------

    def on_request(self, request: HttpRequestRecord) -> None:
        try:
            self._handle_request(request)
        except Exception as e:
            logger.error(f"[Discovery] Request processing error for {request.host}{request.path}: {e}", exc_info=True)

    def _handle_request(self, request: HttpRequestRecord) -> None:
        host, path = request.host, request.path

        if self.store.contains(host, path):
            if self.store.mark_verified(host, path):
                logger.info(f"[*] Verified Shadow API: {host}{path}")
                self.events.verified.emit(host, path)
            return

        if self._out_of_scope(request.url):
            return

        match = self.patterns.first_match(path)
        if match is None or not match.path:
            return
        if self.store.contains(host, match.path):
            return

        finding, inserted = self.store.try_insert(
            host,
            match.path,
            request.method,
            CapturedTraffic(request=request),
            span=(0, 0),
            initial_state=FindingState.VERIFIED,
        )
        if inserted:
            logger.info(f"[Discovery] Live endpoint observed: {request.method} {host}{match.path}")
            self.events.discovered.emit(finding)

    # ------------------------------------------------------------------
    # Inbound responses
    # ------------------------------------------------------------------

    def on_response(self, request: HttpRequestRecord, response: HttpResponseRecord) -> None:
        try:
            self._handle_response(request, response)
        except Exception as e:
            logger.error(f"[Discovery] Response processing error for {request.host}{request.path}: {e}", exc_info=True)

    def _handle_response(self, request: HttpRequestRecord, response: HttpResponseRecord) -> None:
        host = request.host
        traffic = CapturedTraffic(request=request, response=response)

        # A live-discovered finding picks up its response half
        if self.store.update_traffic(host, request.path, traffic):
            self.events.updated.emit(host, request.path)

        if self._out_of_scope(request.url):
            return

        body = response.text
        if not looks_like_script(response.content_type, body):
            return

        if len(body) > self.max_body_chars:
            logger.debug(f"[Discovery] Skipping {len(body)} char body from {request.url}: over size cap")
            return

        new_count = 0
        for match in self.patterns.extract(body):
            if not match.path or self.store.contains(host, match.path):
                continue
            method = infer_method(body, match.start, self.method_lookback)
            finding, inserted = self.store.try_insert(
                host,
                match.path,
                method,
                traffic,
                span=(match.start, match.end),
                initial_state=FindingState.SHADOW,
            )
            if inserted:
                new_count += 1
                self.events.discovered.emit(finding)

        if new_count:
            logger.info(f"[Discovery] {new_count} shadow endpoint(s) found in {request.url}")
