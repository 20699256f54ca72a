# ==============================================
# CLI — Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   A small host for the emitter: feeds request/response
#   records into ElasticEmitter and drives tick() while doing so.
#
# COMMANDS:
# ---------
# 1. Ship NDJSON records from a file (or stdin):
#    python -m elastic_emitter.cli ship records.ndjson
#    cat records.ndjson | python -m elastic_emitter.cli ship
#
# 2. Pull records from an HTTP endpoint:
#    python -m elastic_emitter.cli stream --url http://127.0.0.1:8000/record --count 100
#
# Connection settings come from the environment / .env
# (ES_URL, ES_INDEX_PREFIX, ...) and can be overridden with
# --es-url / --index-prefix.
#
# ==============================================

import argparse
import json
import sys
import time
from dataclasses import replace
from typing import IO, Iterable, Iterator, Optional

import requests

from elastic_emitter.config import ConfigError, EmitterConfig, get_config, validate_endpoint
from elastic_emitter.emitter import ElasticEmitter
from elastic_emitter.logging_setup import configure_logging


def read_ndjson(stream: IO[str]) -> Iterator[dict]:
    """Yield one record per non-blank line, skipping lines that aren't JSON objects."""
    for line_no, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            print(f"   ✗ Line {line_no}: invalid JSON ({e})", file=sys.stderr)
            continue
        if not isinstance(record, dict):
            print(f"   ✗ Line {line_no}: expected a JSON object", file=sys.stderr)
            continue
        yield record


def fetch_records(
    url: str,
    max_records: Optional[int] = None,
    interval: float = 0.1,
    max_errors: int = 10,
) -> Iterator[dict]:
    """
    Poll an HTTP endpoint for records. Each response may hold one
    record or a list of them.
    """
    fetched = 0
    errors = 0
    while max_records is None or fetched < max_records:
        try:
            response = requests.get(url, timeout=10)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            errors += 1
            print(f"   ✗ API error: {e}", file=sys.stderr)
            if errors > max_errors:
                print("   Too many errors, stopping...", file=sys.stderr)
                return
            time.sleep(1)
            continue

        items = payload if isinstance(payload, list) else [payload]
        for item in items:
            if max_records is not None and fetched >= max_records:
                return
            if isinstance(item, dict):
                fetched += 1
                yield item

        time.sleep(interval)


def run(emitter: ElasticEmitter, records: Iterable[dict]) -> dict:
    """
    Feed records into the emitter, ticking as we go, then close it.

    Returns:
        Summary statistics
    """
    start_time = time.time()
    ingested = 0

    try:
        for record in records:
            emitter.process_record(record)
            ingested += 1
            emitter.tick(int(time.time() * 1000), time.time() - start_time)
    except KeyboardInterrupt:
        print("\n⚠ Interrupted by user", file=sys.stderr)
    finally:
        emitter.close()
        status = emitter.get_status()

    elapsed = time.time() - start_time
    return {
        "records_ingested": ingested,
        "records_malformed": status["records_malformed"],
        "flushes": status["flushes_submitted"],
        "flushes_failed": status["flushes_failed"],
        "elapsed_seconds": round(elapsed, 2),
        "records_per_second": round(ingested / elapsed, 2) if elapsed > 0 else 0,
    }


def build_config(args: argparse.Namespace) -> EmitterConfig:
    config = get_config()
    if args.es_url:
        validate_endpoint(args.es_url)
        config = replace(config, backend_endpoint=args.es_url)
    if args.index_prefix is not None:
        config = replace(config, index_prefix=args.index_prefix)
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="elastic-emitter",
        description="Ship request/response records to Elasticsearch in bulk.",
    )
    parser.add_argument("--es-url", help="Elasticsearch URL (default: $ES_URL)")
    parser.add_argument("--index-prefix", help="Index name prefix (default: $ES_INDEX_PREFIX or api-)")
    parser.add_argument("--log-level", help="Logging level (default: $LOG_LEVEL or INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    ship = sub.add_parser("ship", help="Ship NDJSON records from a file or stdin")
    ship.add_argument("file", nargs="?", default="-", help="NDJSON file, '-' for stdin")

    stream = sub.add_parser("stream", help="Pull records from an HTTP endpoint")
    stream.add_argument("--url", required=True, help="URL returning a record or a list of records")
    stream.add_argument("--count", type=int, default=None, help="Stop after N records")
    stream.add_argument("--interval", type=float, default=0.1, help="Delay between requests (seconds)")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 2

    if not config.is_complete:
        print("✗ Elasticsearch is disabled: set ES_URL or pass --es-url", file=sys.stderr)
        return 2

    # Opened before the emitter exists so a bad path leaves nothing to clean up
    source = None
    if args.command == "ship" and args.file != "-":
        try:
            source = open(args.file, "r", encoding="utf-8")
        except OSError as e:
            print(f"✗ Cannot read {args.file}: {e}", file=sys.stderr)
            return 2

    try:
        emitter = ElasticEmitter()
        emitter.initialize(config)
        if not emitter.enabled:
            print(f"✗ Could not connect to {config.backend_endpoint}", file=sys.stderr)
            return 1

        print(f"🚀 Shipping records to {config.backend_endpoint} (prefix: {config.index_prefix})")

        if args.command == "ship":
            summary = run(emitter, read_ndjson(source or sys.stdin))
        else:
            summary = run(emitter, fetch_records(args.url, args.count, args.interval))
    finally:
        if source is not None:
            source.close()

    print("\n📊 Summary:")
    print(f"   → Records ingested: {summary['records_ingested']}")
    print(f"   → Malformed records: {summary['records_malformed']}")
    print(f"   → Bulk flushes: {summary['flushes']}")
    print(f"   → Failed flushes: {summary['flushes_failed']}")
    print(f"   → Time elapsed: {summary['elapsed_seconds']}s")
    print(f"   → Rate: {summary['records_per_second']} records/sec")
    return 0


if __name__ == "__main__":
    sys.exit(main())
