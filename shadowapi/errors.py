"""
shadowapi/errors.py
Structured error taxonomy for the Shadow API visualizer.

Errors carry a searchable code plus a details dictionary. None of them are
meant to reach the user as a failure: they are raised at the point a problem
is detected and caught at the recovery points (codec, writer, addon), where
they are logged and the system keeps running.

USAGE:
  from shadowapi.errors import ShadowError, ErrorCode

  raise ShadowError(
      ErrorCode.SESSION_RECORD_INVALID,
      "Record has no request bytes",
      details={"index": 3},
  )
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Config Errors
    CONFIG_INVALID = "CONFIG_001"
    CONFIG_FILE_NOT_FOUND = "CONFIG_002"

    # Session Errors
    SESSION_DECODE_FAILED = "SESSION_001"
    SESSION_RECORD_INVALID = "SESSION_002"

    # Persistence Errors
    PERSIST_WRITE_FAILED = "PERSIST_001"
    PERSIST_LOAD_FAILED = "PERSIST_002"
    PERSIST_NOT_RUNNING = "PERSIST_003"

    # Transport Errors
    TRANSPORT_CONVERSION_FAILED = "TRANSPORT_001"


class ShadowError(Exception):
    """
    Base exception with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "SESSION_002")
        message: Human-readable error message
        details: Optional dictionary with additional context
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


__all__ = ["ErrorCode", "ShadowError"]
