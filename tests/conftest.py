# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for all tests. No test talks to a real
# Elasticsearch: FakeElasticsearch records what the emitter
# sends and can be told to fail.
#
# FIXTURES:
# ---------
# - clock         → FakeClock, milliseconds, advanced by hand
# - fake_client   → FakeElasticsearch
# - config        → EmitterConfig pointing at a dummy endpoint
# - emitter       → ElasticEmitter initialized with the fakes
# - make_record   → factory for request/response records
#
# ==============================================

import pytest

from elastic_emitter.config import EmitterConfig, reset_config
from elastic_emitter.emitter import ElasticEmitter


# 2023-11-14T22:13:20Z
CLOCK_START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = CLOCK_START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeIndices:
    def __init__(self):
        self.templates: dict[str, dict] = {}
        self.fail = False
        self.exists_calls = 0

    def exists_index_template(self, name):
        self.exists_calls += 1
        if self.fail:
            raise ConnectionError("template check failed")
        return name in self.templates

    def put_index_template(self, name, body):
        self.templates[name] = body
        return {"acknowledged": True}


class FakeElasticsearch:
    def __init__(self):
        self.indices = FakeIndices()
        self.bulk_calls: list[str] = []
        self.fail_bulk = False
        self.bulk_response = None
        self.closed = False

    def bulk(self, body):
        self.bulk_calls.append(body)
        if self.fail_bulk:
            raise ConnectionError("backend unavailable")
        return self.bulk_response or {"took": 3, "errors": False, "items": []}

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def _fresh_config_singleton():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeElasticsearch()


@pytest.fixture
def config():
    return EmitterConfig(backend_endpoint="http://localhost:9200")


@pytest.fixture
def emitter(config, fake_client, clock):
    emitter = ElasticEmitter(clock=clock)
    emitter.initialize(config, client=fake_client)
    emitter.drain()
    yield emitter
    emitter.close(flush_remaining=False)


@pytest.fixture
def make_record():
    def _make(i: int = 0, **overrides) -> dict:
        record = {
            "id": f"rrr-{i}",
            "@timestamp": "2023-06-15T10:00:00Z",
            "path": "/api/v1/users",
            "method": "GET",
            "responsetime": 12,
            "http": {"response": {"code": "200", "class": "2XX"}},
        }
        record.update(overrides)
        return record
    return _make
