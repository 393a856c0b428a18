"""
tests/unit/test_discovery_engine.py
End-to-end behaviour of the engine against an in-memory store.
"""
import threading

import pytest

from shadowapi.data.findings_store import FindingStore
from shadowapi.discovery.engine import DiscoveryEngine
from shadowapi.discovery.events import DiscoveryEvents
from shadowapi.discovery.models import FindingState
from shadowapi.discovery.patterns import PatternSet
from shadowapi.scope.enforcer import ScopeEnforcer

API_FRAGMENT = r"""['"](\/api\/[a-zA-Z0-9_\-/]+)['"]"""
# request paths carry no quotes; live discovery needs an unquoted fragment
ROUTE_FRAGMENT = r"(/api/[a-zA-Z0-9_\-/]+)"


class Recorder:
    def __init__(self, events: DiscoveryEvents):
        self.discovered = []
        self.verified = []
        self.updated = []
        events.discovered.connect(self.discovered.append)
        events.verified.connect(lambda host, path: self.verified.append((host, path)))
        events.updated.connect(lambda host, path: self.updated.append((host, path)))


@pytest.fixture
def engine():
    return DiscoveryEngine(FindingStore(), PatternSet([API_FRAGMENT]), events=DiscoveryEvents())


@pytest.fixture
def recorder(engine):
    return Recorder(engine.events)


@pytest.fixture
def live_engine():
    return DiscoveryEngine(FindingStore(), PatternSet([ROUTE_FRAGMENT]), events=DiscoveryEvents())


def test_script_body_yields_shadow_finding(engine, recorder, make_request, make_response):
    body = 'const x = "/api/users/123";'
    engine.on_response(make_request(host="a.com", target="/app.js"), make_response(body))

    finding = engine.store.get("a.com", "/api/users/123")
    assert finding is not None
    assert finding.state is FindingState.SHADOW
    assert finding.method is None
    assert finding.span == (10, 26)
    assert finding.traffic.request.path == "/app.js"
    assert finding.traffic.response.text == body
    assert [f.path for f in recorder.discovered] == ["/api/users/123"]


def test_method_is_inferred_from_context(engine, make_request, make_response):
    body = 'function save(d) { return fetch.post("/api/orders", d); }'
    engine.on_response(make_request(), make_response(body))
    assert engine.store.get("a.com", "/api/orders").method == "POST"


def test_request_verifies_shadow_finding_once(engine, recorder, make_request, make_response):
    engine.on_response(make_request(), make_response('const x = "/api/users/123";'))

    engine.on_request(make_request(target="/api/users/123"))
    engine.on_request(make_request(target="/api/users/123?page=2"))

    assert engine.store.get("a.com", "/api/users/123").state is FindingState.VERIFIED
    assert recorder.verified == [("a.com", "/api/users/123")]
    assert len(engine.store) == 1


def test_same_path_on_two_hosts(engine, make_request, make_response):
    body = 'function ping() { return "/api/ping"; }'
    engine.on_response(make_request(host="a.com"), make_response(body))
    engine.on_response(make_request(host="b.com"), make_response(body))
    assert [(f.host, f.path) for f in engine.store.snapshot()] == [
        ("a.com", "/api/ping"),
        ("b.com", "/api/ping"),
    ]


def test_repeated_literal_is_recorded_once(engine, recorder, make_request, make_response):
    body = 'const a = "/api/x"; const b = "/api/x";'
    engine.on_response(make_request(), make_response(body))
    engine.on_response(make_request(), make_response(body))
    assert len(engine.store) == 1
    assert len(recorder.discovered) == 1
    assert engine.store.get("a.com", "/api/x").span == (10, 18)


def test_oversized_body_is_skipped(engine, recorder, make_request, make_response):
    body = 'const x = "/api/big";' + " " * 6_000_000
    engine.on_response(make_request(), make_response(body))
    assert len(engine.store) == 0
    assert recorder.discovered == []


def test_non_script_response_is_ignored(engine, make_request, make_response):
    engine.on_response(make_request(), make_response('{"next": "/api/page/2"}', content_type="application/json"))
    assert len(engine.store) == 0


def test_live_request_discovers_verified_finding(live_engine, make_request):
    engine = live_engine
    recorder = Recorder(engine.events)
    engine.on_request(make_request(target="/api/direct/call", method="DELETE"))
    finding = engine.store.get("a.com", "/api/direct/call")
    assert finding is not None
    assert finding.state is FindingState.VERIFIED
    assert finding.method == "DELETE"
    assert finding.span == (0, 0)
    assert not finding.traffic.has_response
    assert len(recorder.discovered) == 1
    # already VERIFIED at insert, no separate verified notification
    assert recorder.verified == []


def test_request_without_match_is_ignored(live_engine, make_request):
    engine = live_engine
    engine.on_request(make_request(target="/static/logo.png"))
    assert len(engine.store) == 0


def test_response_fills_live_finding_traffic(live_engine, make_request, make_response):
    engine = live_engine
    recorder = Recorder(engine.events)
    request = make_request(target="/api/direct/call")
    engine.on_request(request)
    engine.on_response(request, make_response('{"ok": 1}', content_type="application/json"))

    finding = engine.store.get("a.com", "/api/direct/call")
    assert finding.traffic.has_response
    assert recorder.updated == [("a.com", "/api/direct/call")]

    engine.on_response(request, make_response('{"ok": 2}', content_type="application/json"))
    assert recorder.updated == [("a.com", "/api/direct/call")]


def test_scope_only_drops_out_of_scope_traffic(make_request, make_response):
    scope = ScopeEnforcer.from_lines(["*.target.com"])
    engine = DiscoveryEngine(FindingStore(), PatternSet([API_FRAGMENT, ROUTE_FRAGMENT]), scope=scope, scope_only=True)
    body = 'const x = "/api/users";'

    engine.on_response(make_request(host="cdn.other.com"), make_response(body))
    engine.on_request(make_request(host="cdn.other.com", target="/api/live"))
    assert len(engine.store) == 0

    engine.on_response(make_request(host="app.target.com"), make_response(body))
    assert engine.store.contains("app.target.com", "/api/users")


def test_scope_rules_ignored_when_scope_only_off(make_request, make_response):
    scope = ScopeEnforcer.from_lines(["*.target.com"])
    engine = DiscoveryEngine(FindingStore(), PatternSet([API_FRAGMENT]), scope=scope, scope_only=False)
    engine.on_response(make_request(host="other.com"), make_response('const x = "/api/users";'))
    assert engine.store.contains("other.com", "/api/users")


def test_verification_ignores_scope(make_request, make_response):
    scope = ScopeEnforcer.from_lines(["*.target.com"])
    engine = DiscoveryEngine(FindingStore(), PatternSet([API_FRAGMENT]), scope=scope, scope_only=False)
    engine.on_response(make_request(host="other.com"), make_response('const x = "/api/users";'))
    engine.scope_only = True
    engine.on_request(make_request(host="other.com", target="/api/users"))
    assert engine.store.get("other.com", "/api/users").is_verified


def test_failing_subscriber_does_not_break_processing(engine, make_request, make_response):
    def boom(finding):
        raise RuntimeError("subscriber failure")

    engine.events.discovered.connect(boom)
    engine.on_response(make_request(), make_response('const a = "/api/a"; const b = "/api/b";'))
    assert len(engine.store) == 2


def test_concurrent_responses_discover_each_key_once(engine, recorder, make_request, make_response):
    body = 'function ping() { return "/api/ping"; }'
    jobs = [(make_request(host=host), make_response(body)) for host in ("a.com", "b.com") for _ in range(16)]
    barrier = threading.Barrier(len(jobs))

    def worker(request, response):
        barrier.wait()
        engine.on_response(request, response)

    threads = [threading.Thread(target=worker, args=job) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted((f.host, f.path) for f in recorder.discovered) == [("a.com", "/api/ping"), ("b.com", "/api/ping")]
    assert len(engine.store) == 2
