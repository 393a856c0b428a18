"""
shadowapi/session.py
ShadowSession: one running discovery workspace.

Builds the store, pattern set, scope oracle, engine and persistence writer
from configuration, restores the persisted findings, and wires every
mutating notification to a coalesced background save.

It is also the surface the presentation layer drives: remove, clear,
export, pattern updates and the scope-only toggle. None of these can fail
from the user's point of view; problems are logged.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from shadowapi.config import ShadowConfig, get_config
from shadowapi.data.blackbox import SessionWriter
from shadowapi.data.db import SessionDatabase
from shadowapi.data.findings_store import FindingStore
from shadowapi.data.session_codec import deserialize
from shadowapi.discovery.engine import DiscoveryEngine
from shadowapi.discovery.events import DiscoveryEvents
from shadowapi.discovery.models import Finding
from shadowapi.discovery.patterns import PatternSet
from shadowapi.errors import ShadowError
from shadowapi.scope.enforcer import ScopeEnforcer
from shadowapi.views.tree import TreeNode, build_tree, export_paths

logger = logging.getLogger(__name__)


class ShadowSession:
    def __init__(self, config: Optional[ShadowConfig] = None, persist: bool = True):
        self.config = config or get_config()
        discovery = self.config.discovery

        self.store = FindingStore()
        self.events = DiscoveryEvents()
        self.patterns = PatternSet(discovery.fragments)
        self.scope = ScopeEnforcer.from_lines(list(discovery.scope_rules))
        self.engine = DiscoveryEngine(
            self.store,
            self.patterns,
            events=self.events,
            scope=self.scope,
            scope_only=discovery.scope_only,
            max_body_chars=discovery.max_body_chars,
            method_lookback=discovery.method_lookback_chars,
        )

        self.writer: Optional[SessionWriter] = None
        if persist:
            storage = self.config.storage
            self.writer = SessionWriter(
                SessionDatabase(storage.db_path),
                storage.session_key,
                self.store.snapshot,
                io_timeout=storage.io_timeout_seconds,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "ShadowSession":
        """Start persistence, restore the saved session, then listen for changes."""
        if self.writer is not None:
            try:
                self.config.ensure_dirs()
                self.writer.start()
                restored = self.store.load(deserialize(self.writer.load()))
                logger.info(f"[ShadowSession] Restored {restored} finding(s) from {self.writer.session_key!r}")
            except (ShadowError, OSError) as e:
                logger.warning(f"[ShadowSession] Could not restore session, starting empty: {e}")
            self.events.connect_all(self._persist)
        return self

    def close(self) -> None:
        if self.writer is not None:
            self.events.disconnect_all(self._persist)
            self.writer.shutdown()

    def __enter__(self) -> "ShadowSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _persist(self) -> None:
        if self.writer is not None:
            self.writer.request_save()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def snapshot(self) -> List[Finding]:
        return self.store.snapshot()

    def tree(self) -> TreeNode:
        return build_tree(self.store.snapshot())

    def export(self) -> str:
        return export_paths(self.store.snapshot())

    def remove(self, host: str, path: str) -> bool:
        removed = self.store.remove(host, path)
        if removed:
            self.events.removed.emit(host, path)
        return removed

    def clear(self) -> None:
        count = self.store.clear()
        logger.info(f"[ShadowSession] Cleared {count} finding(s)")
        self.events.cleared.emit()

    def configure_patterns(self, fragments: Iterable[str]) -> None:
        self.patterns.configure(fragments)

    def set_scope_only(self, enabled: bool) -> None:
        self.engine.scope_only = enabled
        logger.info(f"[ShadowSession] Scope-only analysis {'enabled' if enabled else 'disabled'}")

    def set_scope_rules(self, lines: Iterable[str]) -> None:
        self.scope.replace(list(lines))
