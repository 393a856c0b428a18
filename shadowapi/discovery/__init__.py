"""
shadowapi.discovery

Passive endpoint discovery: regex extraction from client-side code, the
SHADOW -> VERIFIED state machine, and the heuristics around them.

KEY MODULES:
- **patterns.py**: PatternSet, the combined endpoint matcher
- **engine.py**: DiscoveryEngine, per-event state machine
- **heuristics.py**: method inference and script detection
- **models.py**: Finding and captured traffic records
- **events.py**: the notification stream
"""

from .engine import DiscoveryEngine, ScopeOracle
from .events import DiscoveryEvents
from .models import (
    CapturedTraffic,
    Finding,
    FindingState,
    HttpRequestRecord,
    HttpResponseRecord,
)
from .patterns import PatternMatch, PatternSet

__all__ = [
    "CapturedTraffic",
    "DiscoveryEngine",
    "DiscoveryEvents",
    "Finding",
    "FindingState",
    "HttpRequestRecord",
    "HttpResponseRecord",
    "PatternMatch",
    "PatternSet",
    "ScopeOracle",
]
