"""
shadowapi/data/findings_store.py

Concurrency-safe inventory of discovered endpoints, keyed by (host, path).

Every mutation happens under one re-entrant lock, which makes each
operation atomic per key: concurrent inserts of the same key yield exactly
one stored Finding, and a Finding's state only ever moves SHADOW -> VERIFIED.

Readers never get the live objects. snapshot()/get()/try_insert() hand back
detached copies, so a reader can not observe a Finding mid-update.

The store does not notify anyone. Callers use the return values to decide
whether to emit change notifications; this keeps observer callbacks from
ever running under the store lock.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Tuple

from shadowapi.discovery.models import (
    CapturedTraffic,
    Finding,
    FindingKey,
    FindingState,
)


class FindingStore:
    """Flat key -> Finding map; host grouping is always derived from it."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._findings: Dict[FindingKey, Finding] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def try_insert(
        self,
        host: str,
        path: str,
        method: Optional[str],
        traffic: CapturedTraffic,
        span: Optional[Tuple[int, int]] = None,
        initial_state: FindingState = FindingState.SHADOW,
    ) -> Tuple[Finding, bool]:
        """
        Insert if absent. Returns (finding, inserted).

        When the key already exists the stored finding is returned untouched
        and inserted is False.
        """
        key = (host, path)
        with self._lock:
            existing = self._findings.get(key)
            if existing is not None:
                return existing.copy(), False
            finding = Finding(
                host=host,
                path=path,
                method=method,
                state=initial_state,
                traffic=traffic,
                span=span,
            )
            self._findings[key] = finding
            return finding.copy(), True

    def mark_verified(self, host: str, path: str) -> bool:
        """SHADOW -> VERIFIED. True only if a transition actually happened."""
        with self._lock:
            finding = self._findings.get((host, path))
            if finding is None or finding.state is FindingState.VERIFIED:
                return False
            finding.state = FindingState.VERIFIED
            return True

    def update_traffic(self, host: str, path: str, traffic: CapturedTraffic) -> bool:
        """Replace captured traffic, but only while the stored pair has no response."""
        with self._lock:
            finding = self._findings.get((host, path))
            if finding is None or finding.traffic.has_response:
                return False
            finding.traffic = traffic
            return True

    def remove(self, host: str, path: str) -> bool:
        with self._lock:
            return self._findings.pop((host, path), None) is not None

    def clear(self) -> int:
        """Drop everything. Returns how many findings were removed."""
        with self._lock:
            count = len(self._findings)
            self._findings.clear()
            return count

    def load(self, findings: Iterable[Finding]) -> int:
        """
        Bulk-restore persisted findings. First writer wins: keys already
        present (discovered before the restore finished) are kept.
        """
        added = 0
        with self._lock:
            for f in findings:
                if f.key in self._findings:
                    continue
                self._findings[f.key] = f.copy()
                added += 1
        return added

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def contains(self, host: str, path: str) -> bool:
        with self._lock:
            return (host, path) in self._findings

    def get(self, host: str, path: str) -> Optional[Finding]:
        with self._lock:
            finding = self._findings.get((host, path))
            return finding.copy() if finding is not None else None

    def hosts(self) -> List[str]:
        with self._lock:
            return list(dict.fromkeys(host for host, _ in self._findings))

    def snapshot(self) -> List[Finding]:
        """
        Consistent copy of all findings, grouped by host.

        Hosts appear in the order their first surviving finding was inserted;
        findings keep insertion order within a host.
        """
        with self._lock:
            grouped: Dict[str, List[Finding]] = {}
            for (host, _), finding in self._findings.items():
                grouped.setdefault(host, []).append(finding.copy())
        return [f for group in grouped.values() for f in group]

    def __len__(self) -> int:
        with self._lock:
            return len(self._findings)

    def __contains__(self, key: FindingKey) -> bool:
        return self.contains(*key)
