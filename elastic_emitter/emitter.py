# ==============================================
# ElasticEmitter — Batch Emitter
# ==============================================
#
# PURPOSE:
#   Buffers request/response records and ships them to
#   Elasticsearch in bulk. This is the only class the host
#   talks to; everything else is internal.
#
# HOW THE PIECES CONNECT:
#
#   process_record(record)
#        │
#        ▼
#   RecordPreprocessor      attrs → str, attrsint → number
#        │
#        ▼
#   index name              prefix + UTC date of @timestamp
#        │
#        ▼
#   [ BulkBuffer ]          meta line + record line
#        │  count reaches 50, or tick() finds it stale (>= 1s)
#        ▼
#   flush()                 drain buffer, hand payload to worker
#        │
#        ▼
#   SearchBackend.bulk()    on the single flush worker thread
#
# CLASS: ElasticEmitter
# ---------------------
#
#   Public Methods (host-facing API):
#   ---------------------------------
#   - initialize(config, client=None) -> None
#       No endpoint → stays disabled, every call is a no-op.
#       Otherwise builds the client, schedules the template
#       bootstrap and enables the emitter.
#
#   - process_record(record: dict) -> None
#   - tick(now_ms: int, total_elapsed_sec: float) -> None
#   - flush() -> Future | None
#       Buffer is reset before the write completes. A failed
#       write is logged and the batch is dropped.
#
#   - drain(timeout=None) -> bool
#       Wait for in-flight flushes (graceful shutdown).
#   - close(flush_remaining=True) -> None
#   - get_status() -> dict
#
# ==============================================

import logging
import threading
import time
from collections.abc import MutableMapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Callable, Optional

from elastic_emitter.config import DEFAULT_INDEX_PREFIX, EmitterConfig
from elastic_emitter.normalization.record_preprocessor import RecordPreprocessor
from elastic_emitter.normalization.type_coercion import TypeCoercer
from elastic_emitter.storage.bulk_buffer import BulkBuffer
from elastic_emitter.storage.search_backend import BulkResult, SearchBackend


logger = logging.getLogger(__name__)

MAX_BUFFER = 50
FLUSH_INTERVAL_MS = 1000
INDEX_DATE_FORMAT = "%Y.%m.%d"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ElasticEmitter:
    """
    Buffers request/response records and periodically ships them to
    Elasticsearch through the bulk API.

    Delivery is best-effort: a failed bulk write is logged and its batch is
    lost, the emitter keeps accepting records.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        """
        Args:
            clock: Returns "now" in milliseconds. Must share a time base with the
                now_ms passed to tick(). Defaults to wall-clock epoch ms.
        """
        self.enabled = False
        self.index_prefix = DEFAULT_INDEX_PREFIX
        self.last_flush = 0

        self._clock = clock or _now_ms
        self._type_coercer = TypeCoercer()
        self._preprocessor = RecordPreprocessor(self._type_coercer)
        self._buffer = BulkBuffer()
        self._max_buffer = MAX_BUFFER
        self._flush_interval_ms = FLUSH_INTERVAL_MS

        self._config: Optional[EmitterConfig] = None
        self._backend: Optional[SearchBackend] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: set[Future] = set()

        # Guards _pending and _stats, both touched from the flush worker
        self._lock = threading.Lock()
        self._stats = {
            "records_buffered": 0,
            "records_malformed": 0,
            "flushes_submitted": 0,
            "flushes_failed": 0,
            "documents_rejected": 0,
        }

    @property
    def buffer_count(self) -> int:
        return self._buffer.count

    def initialize(self, config: Optional[EmitterConfig], client=None) -> None:
        """
        Configure the backend connection and enable the emitter.

        Args:
            config: Emitter configuration. None or a missing endpoint keeps the
                emitter disabled.
            client: Pre-built Elasticsearch client to use instead of building one.
        """
        if self.enabled:
            logger.warning("Elasticsearch emitter is already initialized")
            return

        if config is None or not config.is_complete:
            logger.debug("Elasticsearch is disabled")
            return

        backend = SearchBackend(config, client)
        try:
            backend.connect()
        except Exception as e:
            logger.error("Could not create Elasticsearch client for %s: %s",
                         config.backend_endpoint, e)
            return

        self._config = config
        self._backend = backend
        self.index_prefix = config.index_prefix
        self._max_buffer = config.buffer.buffer_size
        self._flush_interval_ms = config.buffer.flush_interval_ms
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="elastic-emitter")

        # Scheduled ahead of any bulk write on the same worker, not awaited
        self._submit(self._bootstrap_schema)

        self.enabled = True
        logger.info("Elasticsearch emitter enabled (prefix: %s, buffer size: %d)",
                    self.index_prefix, self._max_buffer)

    def preprocess(self, record: dict) -> None:
        """Coerce attrs to strings and attrsint to numbers, in place."""
        self._preprocessor.preprocess(record)

    def index_name(self, timestamp) -> Optional[str]:
        """Daily index for a timestamp, or None if it can't be parsed."""
        parsed = self._type_coercer.parse_timestamp(timestamp)
        if parsed is None:
            return None
        return self.index_prefix + parsed.strftime(INDEX_DATE_FORMAT)

    def process_record(self, record: dict) -> None:
        """
        Buffer one request/response record.

        Malformed records are still shipped where possible: an unparseable
        @timestamp falls back to today's (UTC) index and a missing id lets
        Elasticsearch assign one. Both count towards records_malformed.
        """
        if not self.enabled:
            return

        if not isinstance(record, MutableMapping):
            self._count("records_malformed")
            logger.warning("Dropping record of type %s, expected a mapping",
                           type(record).__name__)
            return

        self.preprocess(record)

        malformed = False
        index_name = self.index_name(record.get("@timestamp"))
        if index_name is None:
            malformed = True
            logger.warning("Record %s has unparseable @timestamp %r, using ingestion date",
                           record.get("id"), record.get("@timestamp"))
            index_name = self.index_prefix + self._ingestion_date()

        doc_id = record.get("id")
        if doc_id is None:
            malformed = True
            logger.warning("Record without id, Elasticsearch will assign one")

        try:
            count = self._buffer.append(index_name, doc_id, record)
        except (TypeError, ValueError) as e:
            self._count("records_malformed")
            logger.warning("Dropping record %s, not serializable: %s", doc_id, e)
            return

        if malformed:
            self._count("records_malformed")
        self._count("records_buffered")

        if count >= self._max_buffer:
            self.flush()

    def tick(self, now_ms: int, total_elapsed_sec: float = 0.0) -> None:
        """Flush if the buffer is not empty and was not flushed within the interval."""
        if self._buffer.count > 0 and now_ms - self.last_flush >= self._flush_interval_ms:
            self.flush()

    def flush(self) -> Optional[Future]:
        """
        Hand the current buffer to the flush worker and reset it.

        Returns:
            Future resolving to a BulkResult (None if the write failed), or None
            when there was nothing to send.
        """
        if not self.enabled or self._buffer.is_empty:
            return None

        self.last_flush = self._clock()
        documents = self._buffer.count
        payload = self._buffer.drain()

        self._count("flushes_submitted")
        return self._submit(self._send_bulk, payload, documents)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight flushes and the template bootstrap.

        Returns:
            True if everything finished within the timeout.
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        done, not_done = wait(pending, timeout=timeout)
        # wait() returns before done-callbacks run
        with self._lock:
            self._pending.difference_update(done)
        return not not_done

    def close(self, flush_remaining: bool = True) -> None:
        """
        Flush what is buffered, wait for in-flight writes and release the client.
        The emitter is disabled afterwards.
        """
        if self.enabled and flush_remaining:
            self.flush()
        self.enabled = False

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        if self._backend is not None:
            try:
                self._backend.close()
            except Exception as e:
                logger.warning("Error while closing Elasticsearch client: %s", e)
            self._backend = None

        # Records arriving after close are dropped anyway
        self._buffer.drain()

    def get_status(self) -> dict:
        with self._lock:
            stats = dict(self._stats)
            in_flight = sum(1 for f in self._pending if not f.done())
        return {
            "enabled": self.enabled,
            "endpoint": self._config.backend_endpoint if self._config else None,
            "index_prefix": self.index_prefix,
            "buffer_count": self._buffer.count,
            "buffer_bytes": self._buffer.size_bytes,
            "buffer_capacity": self._max_buffer,
            "last_flush": self.last_flush,
            "in_flight": in_flight,
            **stats,
        }

    def _submit(self, fn, *args) -> Future:
        future = self._executor.submit(fn, *args)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _bootstrap_schema(self) -> None:
        try:
            self._backend.ensure_template()
        except Exception as e:
            logger.error("Index template bootstrap for prefix '%s' failed: %s",
                         self.index_prefix, e)

    def _send_bulk(self, payload: str, documents: int) -> Optional[BulkResult]:
        try:
            result = self._backend.bulk(payload, documents)
        except Exception as e:
            self._count("flushes_failed")
            logger.error("Bulk write of %d records failed, batch dropped: %s", documents, e)
            return None

        if result.rejected:
            self._count("documents_rejected", result.rejected)
            logger.warning("Elasticsearch rejected %d of %d records: %s",
                           result.rejected, documents, "; ".join(result.errors))
        else:
            logger.debug("Flushed %d records", documents)
        return result

    def _count(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._stats[name] += amount

    def _ingestion_date(self) -> str:
        now = datetime.fromtimestamp(self._clock() / 1000.0, tz=timezone.utc)
        return now.strftime(INDEX_DATE_FORMAT)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
