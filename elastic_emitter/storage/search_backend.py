# ==============================================
# SearchBackend
# ==============================================
#
# PURPOSE:
#   Owns the Elasticsearch client used by one emitter.
#   Builds the right transport, writes bulk payloads and
#   bootstraps the index template for the index prefix.
#
# CLASS: SearchBackend
# --------------------
#   Stateful — holds the client once connected.
#
#   Constructor:
#   ------------
#   - __init__(config: EmitterConfig, client=None)
#       An injected client skips construction in connect().
#
#   Methods:
#   --------
#   - connect() -> None
#       Build the client. AWS credentials select a SigV4-signed
#       requests transport, username/password select basic auth,
#       otherwise a plain transport.
#
#   - ensure_template() -> bool
#       Create the index template if it does not exist.
#       Returns True when a template was created.
#
#   - bulk(payload: str, documents: int) -> BulkResult
#       Send one NDJSON payload to the _bulk endpoint.
#       Item-level rejections are collected, not raised.
#
#   - close() -> None
#
# DATA CLASS: BulkResult
# ----------------------
#   - documents: int
#   - rejected: int
#   - errors: list[str]   (first few rejection reasons)
#
# ==============================================

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from elasticsearch import Elasticsearch, RequestsHttpConnection
from requests_aws4auth import AWS4Auth

from elastic_emitter.config import EmitterConfig
from elastic_emitter.storage.index_template import build_index_template


logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 5


@dataclass
class BulkResult:
    documents: int = 0
    rejected: int = 0
    errors: list[str] = field(default_factory=list)


def build_es_client(config: EmitterConfig) -> Elasticsearch:
    hosts = [config.backend_endpoint]

    if config.credentials:
        creds = config.credentials
        auth = AWS4Auth(
            creds.access_key_id,
            creds.secret_access_key,
            creds.region,
            creds.service,
            session_token=creds.session_token,
        )
        # requests-aws4auth signs through a requests session, so the requests connection is required
        return Elasticsearch(
            hosts=hosts,
            http_auth=auth,
            connection_class=RequestsHttpConnection,
            timeout=config.request_timeout,
        )

    if config.username and config.password:
        return Elasticsearch(
            hosts=hosts,
            http_auth=(config.username, config.password),
            timeout=config.request_timeout,
        )

    return Elasticsearch(hosts=hosts, timeout=config.request_timeout)


class SearchBackend:
    def __init__(self, config: EmitterConfig, client: Optional[Any] = None):
        self.config = config
        self.client = client

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    def connect(self) -> None:
        if self.client is not None:
            return
        self.client = build_es_client(self.config)
        logger.info("Elasticsearch client created for %s", self.config.backend_endpoint)

    def ensure_template(self) -> bool:
        if not self.client:
            raise RuntimeError("Not connected to Elasticsearch.")

        body = build_index_template(self.config.index_prefix)
        name = body.pop("name")

        if self.client.indices.exists_index_template(name=name):
            logger.debug("Index template '%s' already exists", name)
            return False

        self.client.indices.put_index_template(name=name, body=body)
        logger.info("Created index template '%s' for %s", name, body["index_patterns"])
        return True

    def bulk(self, payload: str, documents: int) -> BulkResult:
        if not self.client:
            raise RuntimeError("Not connected to Elasticsearch.")

        response = self.client.bulk(body=payload)
        body = getattr(response, "body", response)

        result = BulkResult(documents=documents)
        if not body.get("errors"):
            return result

        for item in body.get("items", []):
            for outcome in item.values():
                error = outcome.get("error")
                if not error:
                    continue
                result.rejected += 1
                if len(result.errors) < MAX_REPORTED_ERRORS:
                    if isinstance(error, dict):
                        reason = f"{error.get('type')}: {error.get('reason')}"
                    else:
                        reason = str(error)
                    result.errors.append(f"{outcome.get('_id')} -> {reason}")
        return result

    def close(self) -> None:
        if self.client:
            self.client.close()
            self.client = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
