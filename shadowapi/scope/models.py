"""
shadowapi/scope/models.py
Scope rules parsed from user-entered lines.

Supported line formats:
    *.example.com            wildcard domain (also matches example.com)
    example.com              exact domain
    example.com/api/v2       domain + path prefix
    10.0.0.0/8               CIDR block
    192.168.1.5              exact IP
    !staging.example.com     exclusion (any of the above, prefixed with !)

Lines starting with # are comments; blank lines are ignored.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class ScopeRuleKind(str, Enum):
    WILDCARD_DOMAIN = "wildcard_domain"
    EXACT_DOMAIN = "exact_domain"
    DOMAIN_PREFIX = "domain_prefix"
    CIDR = "cidr"


@dataclass(frozen=True)
class ScopeRule:
    raw: str
    kind: ScopeRuleKind
    is_exclusion: bool = False
    hostname: str = ""
    path_prefix: str = "/"
    network: Optional[IPNetwork] = None

    def matches(self, host: str, path: str = "/") -> bool:
        host = host.lower().rstrip(".")

        if self.kind is ScopeRuleKind.WILDCARD_DOMAIN:
            return host == self.hostname or host.endswith("." + self.hostname)

        if self.kind is ScopeRuleKind.EXACT_DOMAIN:
            return host == self.hostname

        if self.kind is ScopeRuleKind.DOMAIN_PREFIX:
            return host == self.hostname and (path or "/").startswith(self.path_prefix)

        if self.kind is ScopeRuleKind.CIDR:
            try:
                return ipaddress.ip_address(host) in self.network
            except ValueError:
                return False

        return False

    @classmethod
    def parse(cls, raw: str) -> Optional["ScopeRule"]:
        """Parse one line; None for comments, blanks and unusable lines."""
        raw = raw.strip()
        if not raw or raw.startswith("#"):
            return None

        is_exclusion = raw.startswith("!")
        token = raw[1:].strip() if is_exclusion else raw
        token = re.sub(r"^https?://", "", token, flags=re.IGNORECASE)
        if not token:
            return None

        if token.startswith("*."):
            return cls(raw, ScopeRuleKind.WILDCARD_DOMAIN, is_exclusion, hostname=token[2:].lower())

        # exact IPs are single-address networks
        try:
            network = ipaddress.ip_network(token, strict=False)
            return cls(raw, ScopeRuleKind.CIDR, is_exclusion, network=network)
        except ValueError:
            pass

        hostname, sep, prefix = token.partition("/")
        if sep:
            return cls(
                raw,
                ScopeRuleKind.DOMAIN_PREFIX,
                is_exclusion,
                hostname=hostname.lower(),
                path_prefix="/" + prefix.lstrip("/"),
            )
        return cls(raw, ScopeRuleKind.EXACT_DOMAIN, is_exclusion, hostname=hostname.lower())


def parse_rules(lines: List[str]) -> List[ScopeRule]:
    rules = []
    for line in lines:
        rule = ScopeRule.parse(line)
        if rule is not None:
            rules.append(rule)
    return rules
