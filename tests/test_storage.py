# ==============================================
# Tests for Storage Module
# ==============================================

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from elasticsearch import RequestsHttpConnection
from requests_aws4auth import AWS4Auth

from elastic_emitter.config import AwsCredentials, EmitterConfig
from elastic_emitter.emitter import ElasticEmitter
from elastic_emitter.storage import search_backend
from elastic_emitter.storage.index_template import build_index_template, template_name
from elastic_emitter.storage.search_backend import SearchBackend, build_es_client

from conftest import FakeElasticsearch


class RecordingElasticsearch:
    def __init__(self, **kwargs):
        self.kwargs = kwargs


@pytest.fixture
def recording_client(monkeypatch):
    monkeypatch.setattr(search_backend, "Elasticsearch", RecordingElasticsearch)


class TestBuildClient:

    def test_plain_transport(self, recording_client):
        client = build_es_client(EmitterConfig(backend_endpoint="http://es:9200"))
        assert client.kwargs == {"hosts": ["http://es:9200"], "timeout": 10.0}

    def test_basic_auth(self, recording_client):
        client = build_es_client(EmitterConfig(
            backend_endpoint="http://es:9200", username="elastic", password="changeme",
        ))
        assert client.kwargs["http_auth"] == ("elastic", "changeme")
        assert "connection_class" not in client.kwargs

    def test_aws_signed_transport(self, recording_client):
        client = build_es_client(EmitterConfig(
            backend_endpoint="https://search-domain.us-west-2.es.amazonaws.com",
            credentials=AwsCredentials("AKID", "secret", region="us-west-2"),
        ))
        assert client.kwargs["connection_class"] is RequestsHttpConnection
        assert isinstance(client.kwargs["http_auth"], AWS4Auth)


class TestIndexTemplate:

    def test_patterns_follow_prefix(self):
        body = build_index_template("api-")
        assert body["name"] == "api"
        assert body["index_patterns"] == ["api-*"]
        assert body["template"]["mappings"]["properties"]["@timestamp"] == {"type": "date"}

    def test_returns_fresh_copy(self):
        build_index_template("api-")["template"]["settings"]["number_of_shards"] = 99
        assert build_index_template("api-")["template"]["settings"]["number_of_shards"] == 1

    @pytest.mark.parametrize("prefix, expected", [("api-", "api"), ("logs_", "logs"), ("-", "api")])
    def test_template_name(self, prefix, expected):
        assert template_name(prefix) == expected


class TestSearchBackend:

    def test_requires_connection(self):
        backend = SearchBackend(EmitterConfig(backend_endpoint="http://es:9200"))
        with pytest.raises(RuntimeError):
            backend.bulk("", 0)

    def test_ensure_template_once(self):
        client = FakeElasticsearch()
        backend = SearchBackend(EmitterConfig(backend_endpoint="http://es:9200"), client)
        assert backend.ensure_template() is True
        assert backend.ensure_template() is False
        assert list(client.indices.templates) == ["api"]

    def test_bulk_without_errors(self):
        client = FakeElasticsearch()
        backend = SearchBackend(EmitterConfig(backend_endpoint="http://es:9200"), client)
        result = backend.bulk("payload\n", 1)
        assert client.bulk_calls == ["payload\n"]
        assert (result.documents, result.rejected, result.errors) == (1, 0, [])

    def test_bulk_reads_response_body(self):
        class ApiResponse:
            body = {"errors": True, "items": [{"index": {"_id": "a", "error": "boom"}}]}

        client = FakeElasticsearch()
        client.bulk_response = ApiResponse()
        backend = SearchBackend(EmitterConfig(backend_endpoint="http://es:9200"), client)
        result = backend.bulk("payload\n", 1)
        assert result.rejected == 1
        assert result.errors == ["a -> boom"]

    def test_bulk_caps_reported_errors(self):
        client = FakeElasticsearch()
        client.bulk_response = {
            "errors": True,
            "items": [{"index": {"_id": str(i), "error": {"type": "t", "reason": "r"}}} for i in range(8)],
        }
        backend = SearchBackend(EmitterConfig(backend_endpoint="http://es:9200"), client)
        result = backend.bulk("payload\n", 8)
        assert result.rejected == 8
        assert len(result.errors) == search_backend.MAX_REPORTED_ERRORS

    def test_close(self):
        client = FakeElasticsearch()
        backend = SearchBackend(EmitterConfig(backend_endpoint="http://es:9200"), client)
        backend.close()
        assert client.closed is True
        assert backend.is_connected is False


# ==============================================
# Real client against a local HTTP server
# ==============================================
# Answers like a 7.x / managed AWS domain: no product header,
# HEAD 404 for unknown templates.

class DomainHandler(BaseHTTPRequestHandler):

    def _handle(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length).decode("utf-8") if length else ""
        self.server.seen.append({
            "method": self.command,
            "path": self.path.split("?")[0],
            "headers": {k.lower(): v for k, v in self.headers.items()},
            "body": body,
        })

        if self.command == "HEAD":
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        if self.path.split("?")[0].endswith("/_bulk"):
            reply = {"took": 1, "errors": False, "items": [{"index": {"_id": "r1", "status": 201}}]}
        else:
            reply = {"acknowledged": True}
        data = json.dumps(reply).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    do_HEAD = _handle
    do_GET = _handle
    do_PUT = _handle
    do_POST = _handle

    def log_message(self, format, *args):
        pass


@pytest.fixture
def domain():
    server = ThreadingHTTPServer(("127.0.0.1", 0), DomainHandler)
    server.seen = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def _ship_one(config: EmitterConfig, record: dict) -> dict:
    emitter = ElasticEmitter()
    emitter.initialize(config)
    assert emitter.enabled is True
    emitter.process_record(record)
    emitter.flush()
    assert emitter.drain(timeout=10) is True
    status = emitter.get_status()
    emitter.close()
    return status


class TestTransport:

    def test_signed_requests_reach_domain(self, domain, make_record):
        config = EmitterConfig(
            backend_endpoint=f"http://127.0.0.1:{domain.server_port}",
            credentials=AwsCredentials("AKID", "secret", region="us-west-2"),
        )
        status = _ship_one(config, make_record(1, id="r1"))

        assert status["flushes_failed"] == 0
        assert [(r["method"], r["path"]) for r in domain.seen[:2]] == [
            ("HEAD", "/_index_template/api"),
            ("PUT", "/_index_template/api"),
        ]

        bulk = [r for r in domain.seen if r["path"].endswith("/_bulk")]
        assert len(bulk) == 1
        assert '{"index":{"_index":"api-2023.06.15","_type":"api","_id":"r1"}}' in bulk[0]["body"]

        for request in domain.seen:
            assert request["headers"]["authorization"].startswith("AWS4-HMAC-SHA256")
            assert "x-amz-date" in request["headers"]
            assert "compatible-with" not in request["headers"].get("accept", "")
            assert "compatible-with" not in request["headers"].get("content-type", "")

    def test_plain_requests_are_unsigned(self, domain, make_record):
        config = EmitterConfig(backend_endpoint=f"http://127.0.0.1:{domain.server_port}")
        status = _ship_one(config, make_record(1, id="r1"))

        assert status["flushes_failed"] == 0
        assert any(r["path"].endswith("/_bulk") for r in domain.seen)
        for request in domain.seen:
            assert "authorization" not in request["headers"]
            assert "compatible-with" not in request["headers"].get("accept", "")
