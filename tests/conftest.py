"""Pytest configuration for the Shadow API visualizer."""

import pytest

from shadowapi.config import (
    DiscoveryConfig,
    LogConfig,
    ShadowConfig,
    StorageConfig,
    set_config,
)
from shadowapi.discovery.models import HttpRequestRecord, HttpResponseRecord


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.shadowapi directory."""
    for name in ("SHADOW_PATTERNS_FILE", "SHADOW_SCOPE_FILE", "SHADOW_SCOPE_ONLY", "SHADOW_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SHADOW_DATA_DIR", str(tmp_path / "data"))
    config = ShadowConfig(
        discovery=DiscoveryConfig(),
        storage=StorageConfig(base_dir=tmp_path / "data"),
        log=LogConfig(file_enabled=False),
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def make_request():
    def _make(host="a.com", target="/index.html", method="GET", scheme="https", port=443):
        raw = (
            f"{method} {target} HTTP/1.1\r\n"
            f"Host: {host}\r\n"
            f"User-Agent: pytest\r\n"
            f"\r\n"
        ).encode()
        return HttpRequestRecord.from_raw(raw, host=host, port=port, scheme=scheme)
    return _make


@pytest.fixture
def make_response():
    def _make(body="", content_type="application/javascript", status=200):
        encoded = body.encode("utf-8")
        raw = (
            f"HTTP/1.1 {status} OK\r\n"
            f"Content-Type: {content_type}\r\n"
            f"Content-Length: {len(encoded)}\r\n"
            f"\r\n"
        ).encode() + encoded
        return HttpResponseRecord.from_raw(raw)
    return _make
