"""
shadowapi/data/session_codec.py
Serialize findings (with their raw traffic) to a JSON blob and back.

Each finding becomes one record:
  {version, path, method, state, start, end, host, scheme, port,
   request: base64(raw request), response: base64(raw response) | null}

Decoding is forgiving. A blob that is not a JSON array yields an empty
session; a single bad record is skipped and the rest still load.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from shadowapi.discovery.models import (
    CapturedTraffic,
    Finding,
    FindingState,
    HttpRequestRecord,
    HttpResponseRecord,
)
from shadowapi.errors import ErrorCode, ShadowError

logger = logging.getLogger(__name__)

CODEC_VERSION = 1


class FindingRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int = CODEC_VERSION
    path: str
    method: Optional[str] = None
    state: FindingState = FindingState.SHADOW
    start: int = 0
    end: int = 0
    host: Optional[str] = None
    scheme: Optional[str] = None
    port: Optional[int] = None
    request: Optional[str] = None
    response: Optional[str] = None


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _unb64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ShadowError(
            ErrorCode.SESSION_RECORD_INVALID,
            f"{field} is not valid base64",
        ) from e


def to_record(finding: Finding) -> FindingRecord:
    request = finding.traffic.request
    response = finding.traffic.response
    start, end = finding.span or (0, 0)
    return FindingRecord(
        path=finding.path,
        method=finding.method,
        state=finding.state,
        start=start,
        end=end,
        host=finding.host,
        scheme=request.scheme,
        port=request.port,
        request=_b64(request.raw),
        response=_b64(response.raw) if response is not None else None,
    )


def from_record(record: FindingRecord) -> Finding:
    """Rebuild a Finding purely from the raw bytes carried in the record."""
    if not record.request:
        raise ShadowError(ErrorCode.SESSION_RECORD_INVALID, "Record has no request bytes")

    request = HttpRequestRecord.from_raw(
        _unb64(record.request, "request"),
        host=record.host,
        port=record.port,
        scheme=record.scheme,
    )
    response = None
    if record.response is not None:
        raw_response = _unb64(record.response, "response")
        if raw_response:
            response = HttpResponseRecord.from_raw(raw_response)
        else:
            # a captured response with no bytes stays a response
            response = HttpResponseRecord(status_code=0, content_type="")

    span = None
    if record.start or record.end:
        span = (record.start, record.end)

    return Finding(
        host=record.host or request.host,
        path=record.path,
        method=record.method,
        state=record.state,
        traffic=CapturedTraffic(request=request, response=response),
        span=span,
    )


def serialize(findings: Iterable[Finding]) -> str:
    records = [to_record(f).model_dump(mode="json") for f in findings]
    return json.dumps(records, separators=(",", ":"))


def deserialize(blob: Optional[str]) -> List[Finding]:
    """Decode a blob. Never raises; failures are logged and degrade to fewer findings."""
    if not blob:
        return []

    try:
        items = json.loads(blob)
        if not isinstance(items, list):
            raise ShadowError(
                ErrorCode.SESSION_DECODE_FAILED,
                "Session blob is not a JSON array",
                details={"type": type(items).__name__},
            )
    except (ValueError, ShadowError) as e:
        logger.warning(f"[SessionCodec] Could not decode session, starting empty: {e}")
        return []

    findings: List[Finding] = []
    for index, item in enumerate(items):
        try:
            findings.append(from_record(FindingRecord.model_validate(item)))
        except (ValidationError, ShadowError) as e:
            logger.warning(f"[SessionCodec] Skipping record {index}: {e}")
    return findings
