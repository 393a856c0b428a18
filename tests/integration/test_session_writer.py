"""
tests/integration/test_session_writer.py
Persistence against a real SQLite file: coalescing, flush, restore.
"""
import asyncio
import threading
from dataclasses import replace

import pytest

from shadowapi.data.blackbox import SessionWriter
from shadowapi.data.db import SessionDatabase
from shadowapi.data.findings_store import FindingStore
from shadowapi.data.session_codec import deserialize
from shadowapi.discovery.models import CapturedTraffic, FindingState
from shadowapi.errors import ErrorCode, ShadowError
from shadowapi.session import ShadowSession

SCRIPT = 'function boot() { fetch.post("/api/orders"); return "/api/users/123"; }'


async def _write_raw(db_path, key, blob):
    db = SessionDatabase(db_path)
    await db.init()
    await db.save_blob(key, blob)
    await db.close()


@pytest.fixture
def writer(tmp_path):
    store = FindingStore()
    w = SessionWriter(SessionDatabase(tmp_path / "session.db"), "test.findings", store.snapshot, io_timeout=5.0)
    w.store = store
    w.start()
    yield w
    w.shutdown(5.0)


def test_load_before_any_save_is_none(writer):
    assert writer.running
    assert writer.load() is None


def test_save_and_load(writer, make_request):
    writer.store.try_insert("a.com", "/api/x", "GET", CapturedTraffic(make_request()))
    writer.request_save()
    assert writer.flush(5.0)
    restored = deserialize(writer.load())
    assert [(f.host, f.path, f.method) for f in restored] == [("a.com", "/api/x", "GET")]
    assert writer.writes_completed == 1


def test_burst_of_saves_is_coalesced(tmp_path, make_request):
    store = FindingStore()
    entered = threading.Event()
    gate = threading.Event()

    def slow_snapshot():
        entered.set()
        gate.wait(5.0)
        return store.snapshot()

    writer = SessionWriter(SessionDatabase(tmp_path / "burst.db"), "burst", slow_snapshot, io_timeout=5.0)
    writer.start()
    try:
        writer.request_save()
        assert entered.wait(5.0)
        for i in range(50):
            store.try_insert("a.com", f"/api/{i}", None, CapturedTraffic(make_request()))
            writer.request_save()
        gate.set()
        assert writer.flush(5.0)

        # one write in flight plus one coalesced follow-up carrying the latest state
        assert writer.writes_completed == 2
        assert len(deserialize(writer.load())) == 50
    finally:
        writer.shutdown(5.0)


def test_stopped_writer_drops_saves_and_refuses_loads(tmp_path):
    writer = SessionWriter(SessionDatabase(tmp_path / "idle.db"), "idle", list)
    writer.request_save()
    assert writer.flush() is True
    with pytest.raises(ShadowError) as exc_info:
        writer.load()
    assert exc_info.value.code is ErrorCode.PERSIST_NOT_RUNNING


def test_session_round_trip_across_instances(isolated_config, make_request, make_response):
    with ShadowSession(isolated_config) as session:
        session.engine.on_response(make_request(target="/static/app.js"), make_response(SCRIPT))
        session.engine.on_request(make_request(target="/api/users/123"))
        assert len(session.store) == 2

    with ShadowSession(isolated_config) as session:
        findings = {f.path: f for f in session.snapshot()}
        assert set(findings) == {"/api/orders", "/api/users/123"}
        assert findings["/api/orders"].method == "POST"
        assert findings["/api/orders"].state is FindingState.SHADOW
        assert findings["/api/users/123"].state is FindingState.VERIFIED
        assert findings["/api/orders"].traffic.response.text == SCRIPT
        assert session.export() == "/api/orders\n/api/users/123"


def test_remove_and_clear_are_persisted(isolated_config, make_request, make_response):
    with ShadowSession(isolated_config) as session:
        session.engine.on_response(make_request(), make_response(SCRIPT))
        assert session.remove("a.com", "/api/orders") is True
        assert session.remove("a.com", "/api/orders") is False

    with ShadowSession(isolated_config) as session:
        assert [f.path for f in session.snapshot()] == ["/api/users/123"]
        session.clear()

    with ShadowSession(isolated_config) as session:
        assert session.snapshot() == []


def test_corrupt_session_starts_empty(isolated_config, make_request, make_response):
    storage = isolated_config.storage
    isolated_config.ensure_dirs()
    asyncio.run(_write_raw(storage.db_path, storage.session_key, "{definitely not json"))

    with ShadowSession(isolated_config) as session:
        assert session.snapshot() == []
        session.engine.on_response(make_request(), make_response(SCRIPT))

    with ShadowSession(isolated_config) as session:
        assert len(session.snapshot()) == 2


def test_unusable_data_dir_degrades_to_memory(tmp_path, isolated_config, make_request, make_response):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    config = replace(isolated_config, storage=replace(isolated_config.storage, base_dir=blocker))

    with ShadowSession(config) as session:
        session.engine.on_response(make_request(), make_response(SCRIPT))
        assert len(session.snapshot()) == 2


def test_session_without_persistence(isolated_config, make_request, make_response):
    with ShadowSession(isolated_config, persist=False) as session:
        assert session.writer is None
        session.engine.on_response(make_request(), make_response(SCRIPT))
        assert len(session.tree().children) == 1
    assert not isolated_config.storage.db_path.exists()
