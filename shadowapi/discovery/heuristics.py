"""
shadowapi/discovery/heuristics.py
Best-effort lexical heuristics. These are proximity checks, not a parser:
false positives and false negatives are expected and accepted.
"""

from __future__ import annotations

from typing import Optional

METHOD_LOOKBACK_CHARS = 50

# Priority order matters: the first keyword found wins.
METHOD_KEYWORDS = (
    ("post", "POST"),
    ("get", "GET"),
    ("put", "PUT"),
    ("delete", "DELETE"),
)

SCRIPT_TOKENS = ("function ", "const ")


def infer_method(body: str, index: int, lookback: int = METHOD_LOOKBACK_CHARS) -> Optional[str]:
    """
    Guess the HTTP method of an endpoint literal found at body[index].

    Looks at the `lookback` characters immediately before the match,
    lowercased, for post/get/put/delete in that order. Returns None when
    nothing matches (method unknown).
    """
    context = body[max(0, index - lookback):index].lower()
    for keyword, method in METHOD_KEYWORDS:
        if keyword in context:
            return method
    return None


def looks_like_script(content_type: str, body: str) -> bool:
    """Script if the content type says so, or the body has code-ish tokens."""
    if "script" in (content_type or "").lower():
        return True
    return any(token in body for token in SCRIPT_TOKENS)
