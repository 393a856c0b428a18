"""
shadowapi/discovery/models.py
Data models: Finding, its state, and the captured traffic it owns.

Traffic records are immutable and keep the raw HTTP/1.x bytes they were
built from, so a Finding can be persisted and rebuilt without the transport
that produced it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urlsplit

from shadowapi.errors import ErrorCode, ShadowError

FindingKey = Tuple[str, str]  # (host, path)

_DEFAULT_PORTS = {"http": 80, "https": 443}
_CHARSET_RE = re.compile(r"charset=([\w.:-]+)", re.IGNORECASE)


class FindingState(str, Enum):
    SHADOW = "SHADOW"
    VERIFIED = "VERIFIED"


def _split_message(raw: bytes) -> Tuple[list, bytes]:
    """Split raw HTTP/1.x bytes into (head lines, body)."""
    for sep, eol in ((b"\r\n\r\n", b"\r\n"), (b"\n\n", b"\n")):
        if sep in raw:
            head, _, body = raw.partition(sep)
            return head.split(eol), body
    return raw.splitlines(), b""


def _parse_headers(lines: list) -> Tuple[Tuple[str, str], ...]:
    headers = []
    for line in lines:
        name, sep, value = line.partition(b":")
        if not sep:
            continue
        headers.append((name.strip().decode("latin-1"), value.strip().decode("latin-1")))
    return tuple(headers)


def _path_of(target: str) -> str:
    """Request target minus its query string. A leading '//' stays part of the path."""
    return target.partition("?")[0] or "/"


def _header(headers: Tuple[Tuple[str, str], ...], name: str) -> Optional[str]:
    name = name.lower()
    for k, v in headers:
        if k.lower() == name:
            return v
    return None


@dataclass(frozen=True)
class HttpRequestRecord:
    method: str
    scheme: str
    host: str
    port: int
    path: str                      # without query string
    target: str                    # request target as sent (path + query)
    raw: bytes = field(default=b"", repr=False)

    @property
    def url(self) -> str:
        netloc = self.host
        if _DEFAULT_PORTS.get(self.scheme) != self.port:
            netloc = f"{self.host}:{self.port}"
        return f"{self.scheme}://{netloc}{self.target}"

    @classmethod
    def from_raw(
        cls,
        raw: bytes,
        host: Optional[str] = None,
        port: Optional[int] = None,
        scheme: Optional[str] = None,
    ) -> "HttpRequestRecord":
        """
        Rebuild a request from raw bytes.

        host/port/scheme come from the caller when known; otherwise they are
        recovered from an absolute-form target or the Host header.
        """
        lines, _ = _split_message(raw)
        if not lines or not lines[0].strip():
            raise ShadowError(ErrorCode.SESSION_RECORD_INVALID, "Request has no request line")

        parts = lines[0].split(b" ")
        if len(parts) < 2:
            raise ShadowError(
                ErrorCode.SESSION_RECORD_INVALID,
                "Malformed request line",
                details={"line": lines[0][:200].decode("latin-1")},
            )
        method = parts[0].decode("latin-1").upper()
        target = parts[1].decode("latin-1")
        headers = _parse_headers(lines[1:])

        split = urlsplit(target)
        if split.scheme and split.netloc:
            # absolute-form, as sent to a proxy
            scheme = scheme or split.scheme
            host = host or split.hostname
            port = port or split.port
            target = split.path or "/"
            if split.query:
                target = f"{target}?{split.query}"

        if not host:
            host_header = _header(headers, "host") or ""
            parsed = urlsplit(f"//{host_header}")
            host = parsed.hostname
            if port is None and host:
                try:
                    port = parsed.port
                except ValueError:
                    port = None
        if not host:
            raise ShadowError(ErrorCode.SESSION_RECORD_INVALID, "Request host could not be recovered")

        if not scheme:
            scheme = "https" if port == 443 else "http"
        if port is None:
            port = _DEFAULT_PORTS.get(scheme, 80)

        return cls(
            method=method,
            scheme=scheme,
            host=host,
            port=int(port),
            path=_path_of(target),
            target=target,
            raw=raw,
        )


@dataclass(frozen=True)
class HttpResponseRecord:
    status_code: int
    content_type: str
    body: bytes = field(default=b"", repr=False)
    raw: bytes = field(default=b"", repr=False)

    @property
    def text(self) -> str:
        charset = "utf-8"
        m = _CHARSET_RE.search(self.content_type or "")
        if m:
            charset = m.group(1)
        try:
            return self.body.decode(charset, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")

    @classmethod
    def from_raw(cls, raw: bytes) -> "HttpResponseRecord":
        lines, body = _split_message(raw)
        if not lines:
            raise ShadowError(ErrorCode.SESSION_RECORD_INVALID, "Response has no status line")
        status_parts = lines[0].split(b" ", 2)
        try:
            status_code = int(status_parts[1])
        except (IndexError, ValueError) as e:
            raise ShadowError(
                ErrorCode.SESSION_RECORD_INVALID,
                "Malformed status line",
                details={"line": lines[0][:200].decode("latin-1")},
            ) from e
        headers = _parse_headers(lines[1:])
        return cls(
            status_code=status_code,
            content_type=_header(headers, "content-type") or "",
            body=body,
            raw=raw,
        )


@dataclass(frozen=True)
class CapturedTraffic:
    request: HttpRequestRecord
    response: Optional[HttpResponseRecord] = None

    @property
    def has_response(self) -> bool:
        return self.response is not None


@dataclass
class Finding:
    host: str
    path: str
    method: Optional[str]
    state: FindingState
    traffic: CapturedTraffic
    span: Optional[Tuple[int, int]] = None

    @property
    def key(self) -> FindingKey:
        return (self.host, self.path)

    @property
    def is_verified(self) -> bool:
        return self.state is FindingState.VERIFIED

    def copy(self) -> "Finding":
        # traffic records are frozen, a shallow copy is a full snapshot
        return replace(self)
