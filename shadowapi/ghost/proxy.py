"""
shadowapi/ghost/proxy.py
The passive interceptor: a mitmproxy addon feeding live traffic to the
discovery engine.

Hooks run on mitmproxy's worker threads (@concurrent), so many flows are
analysed at once and a slow regex scan never stalls the proxy loop. Flows
are read, never modified: every flow continues exactly as it arrived.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from mitmproxy import http, options
from mitmproxy.net.http.http1 import (
    assemble_request,
    assemble_request_head,
    assemble_response,
    assemble_response_head,
)
from mitmproxy.script import concurrent
from mitmproxy.tools.dump import DumpMaster

from shadowapi.discovery.engine import DiscoveryEngine
from shadowapi.discovery.models import HttpRequestRecord, HttpResponseRecord
from shadowapi.errors import ErrorCode, ShadowError

logger = logging.getLogger(__name__)


def _decoded(message):
    """Copy of a mitmproxy message with content-encoding and chunking removed."""
    copy = message.copy()
    copy.decode(strict=False)
    copy.headers.pop("transfer-encoding", None)
    return copy


def request_record(request: http.Request) -> HttpRequestRecord:
    try:
        decoded = _decoded(request)
        try:
            raw = assemble_request(decoded)
        except ValueError:
            # streamed body, keep the head only
            raw = assemble_request_head(decoded)
        return HttpRequestRecord(
            method=request.method,
            scheme=request.scheme,
            host=request.pretty_host,
            port=request.port,
            path=request.path.partition("?")[0] or "/",
            target=request.path,
            raw=raw,
        )
    except ValueError as e:
        raise ShadowError(
            ErrorCode.TRANSPORT_CONVERSION_FAILED,
            f"Could not convert request: {e}",
            details={"url": request.pretty_url},
        ) from e


def response_record(response: http.Response) -> HttpResponseRecord:
    try:
        decoded = _decoded(response)
        try:
            raw = assemble_response(decoded)
        except ValueError:
            raw = assemble_response_head(decoded)
        return HttpResponseRecord(
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            body=decoded.raw_content or b"",
            raw=raw,
        )
    except ValueError as e:
        raise ShadowError(
            ErrorCode.TRANSPORT_CONVERSION_FAILED,
            f"Could not convert response: {e}",
        ) from e


class ShadowAddon:
    """mitmproxy addon bridging traffic to the DiscoveryEngine."""

    def __init__(self, engine: DiscoveryEngine):
        self.engine = engine

    def process_request(self, flow: http.HTTPFlow) -> None:
        try:
            self.engine.on_request(request_record(flow.request))
        except Exception as e:
            logger.error(f"[Ghost] Request processing error: {e}")

    def process_response(self, flow: http.HTTPFlow) -> None:
        if flow.response is None:
            return
        try:
            self.engine.on_response(request_record(flow.request), response_record(flow.response))
        except Exception as e:
            logger.error(f"[Ghost] Response processing error: {e}")

    @concurrent
    def request(self, flow: http.HTTPFlow) -> None:
        self.process_request(flow)

    @concurrent
    def response(self, flow: http.HTTPFlow) -> None:
        self.process_response(flow)


class ShadowInterceptor:
    """Manages a background mitmproxy DumpMaster with the ShadowAddon installed."""

    def __init__(self, engine: DiscoveryEngine, host: str = "127.0.0.1", port: int = 8080):
        self.engine = engine
        self.host = host
        self.port = port
        self.master: Optional[DumpMaster] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        opts = options.Options(listen_host=self.host, listen_port=self.port)
        self.master = DumpMaster(opts, with_termlog=False, with_dumper=False)
        self.master.addons.add(ShadowAddon(self.engine))
        logger.info(f"[*] Shadow proxy listening on {self.host}:{self.port}")
        self._task = asyncio.create_task(self._run_master())

    async def _run_master(self) -> None:
        try:
            await self.master.run()
        except Exception as e:
            logger.error(f"[Ghost] Proxy error: {e}")

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    def stop(self) -> None:
        if self.master:
            self.master.shutdown()
        if self._task and not self._task.done():
            self._task.cancel()
        logger.info("[*] Shadow proxy stopped.")
