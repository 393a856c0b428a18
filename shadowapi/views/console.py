# shadowapi/views/console.py: headless observer that logs the notification stream

from __future__ import annotations

import logging

from shadowapi.discovery.events import DiscoveryEvents
from shadowapi.discovery.models import Finding
from shadowapi.views.tree import finding_label

logger = logging.getLogger("shadowapi.console")


class ConsoleObserver:
    def __init__(self, events: DiscoveryEvents):
        self.events = events

    def attach(self) -> None:
        self.events.discovered.connect(self.on_discovered)
        self.events.verified.connect(self.on_verified)
        self.events.updated.connect(self.on_updated)
        self.events.removed.connect(self.on_removed)
        self.events.cleared.connect(self.on_cleared)

    def detach(self) -> None:
        self.events.discovered.disconnect(self.on_discovered)
        self.events.verified.disconnect(self.on_verified)
        self.events.updated.disconnect(self.on_updated)
        self.events.removed.disconnect(self.on_removed)
        self.events.cleared.disconnect(self.on_cleared)

    def on_discovered(self, finding: Finding) -> None:
        logger.info(f"[+] {finding.host} {finding_label(finding)}")

    def on_verified(self, host: str, path: str) -> None:
        logger.info(f"[✓] {host} {path} [Verified]")

    def on_updated(self, host: str, path: str) -> None:
        logger.debug(f"[~] {host} {path} response captured")

    def on_removed(self, host: str, path: str) -> None:
        logger.info(f"[-] {host} {path}")

    def on_cleared(self) -> None:
        logger.info("[-] All findings cleared")
