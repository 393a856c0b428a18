"""
shadowapi/scope/enforcer.py
ScopeEnforcer: the scope oracle consulted when "scope only" is enabled.

Evaluation order (first match wins):
  1. Exclusion rules  (!staging.example.com)  -> out of scope
  2. Inclusion rules  (*.example.com)          -> in scope
  3. Inclusion rules exist but none matched    -> out of scope
  4. No inclusion rules at all                 -> in scope

An enforcer with no rules allows everything. Rules are immutable after
construction; replace() swaps the whole list, so the enforcer is safe to
share across traffic threads.
"""

from __future__ import annotations

import logging
from typing import List, Tuple
from urllib.parse import urlsplit

from shadowapi.scope.models import ScopeRule, parse_rules

logger = logging.getLogger(__name__)


class ScopeEnforcer:
    """
    Example:
        enforcer = ScopeEnforcer.from_lines(["*.example.com", "!staging.example.com"])
        enforcer.is_in_scope("https://app.example.com/login")  # True
        enforcer.is_in_scope("https://staging.example.com")    # False
        enforcer.is_in_scope("https://evil.com")               # False
    """

    def __init__(self, rules: List[ScopeRule]):
        self._rules: Tuple[ScopeRule, ...] = tuple(rules)

    @classmethod
    def from_lines(cls, lines: List[str]) -> "ScopeEnforcer":
        return cls(parse_rules(lines))

    def replace(self, lines: List[str]) -> None:
        self._rules = tuple(parse_rules(lines))
        logger.info(f"[ScopeEnforcer] Loaded {self.describe()}")

    @property
    def rules(self) -> Tuple[ScopeRule, ...]:
        return self._rules

    @property
    def is_permissive(self) -> bool:
        return not self._rules

    def describe(self) -> str:
        rules = self._rules
        if not rules:
            return "permissive (no rules)"
        exc = sum(1 for r in rules if r.is_exclusion)
        return f"{len(rules) - exc} inclusion(s), {exc} exclusion(s)"

    def is_in_scope(self, url: str) -> bool:
        """Never raises; an unparseable URL is out of scope unless permissive."""
        rules = self._rules
        if not rules:
            return True

        host, path = self._parse_url(url)
        if not host:
            return False

        for rule in rules:
            if rule.is_exclusion and rule.matches(host, path):
                return False

        inclusions = [r for r in rules if not r.is_exclusion]
        if not inclusions:
            return True
        return any(r.matches(host, path) for r in inclusions)

    @staticmethod
    def _parse_url(url: str) -> Tuple[str, str]:
        if "://" not in url:
            url = "https://" + url
        try:
            parsed = urlsplit(url)
            return (parsed.hostname or "").lower().rstrip("."), parsed.path or "/"
        except ValueError:
            return "", ""
