"""Feed service — reads feed requests, applies them, publishes feed events.

Consumes push_data / clean_outdated_data requests from the requests topic,
applies each to the OracleFeed, and publishes an "emitted" event for every
accepted push and a "rejected" event for every refused request.  One
instance per feed: requests must be applied in order by a single writer, so
the requests topic has one partition.

Usage:
    python -m oracle.main
    python -m oracle.main --config config/oracle.yml --state-file oracle-state.json
"""

import argparse
import json
import signal
import sys
import time

from confluent_kafka import Consumer, Producer, KafkaError
from confluent_kafka.admin import AdminClient, NewTopic
from prometheus_client import start_http_server

from oracle import metrics
from oracle.config import load_config
from oracle.feed import Emitted, OracleFeed, FeedError
from oracle.snapshot import read_state, write_state
from oracle.time_windowed_log import StaleInsertionTime

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down feed service...")
    running = False


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ensure_topics(bootstrap_servers, topics):
    """Create the feed topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    fs = admin.create_topics([NewTopic(t, num_partitions=1, replication_factor=3) for t in topics])
    for t, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{t}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{t}' already exists")
            else:
                raise


def emitted_message(event: Emitted) -> dict:
    return {
        "event": "emitted",
        "data": event.data.hex(),
        "recorded_at": event.recorded_at,
    }


def persist(path, feed: OracleFeed) -> bool:
    """Write the feed's snapshot to *path*; report and count a failed write."""
    try:
        write_state(path, feed.snapshot())
    except OSError as e:
        metrics.request_errors_total.inc()
        print(f"Could not save state to {path}: {e}", file=sys.stderr)
        return False
    return True


def handle_request(feed: OracleFeed, request: dict) -> dict | None:
    """Apply one decoded request to *feed*.

    Returns the outcome: an "emitted" or "rejected" message, or None for an
    accepted cleanup.  Emitted messages reach the events topic through the
    feed subscription set up in main(); only rejections are published by the
    caller.  Raises ValueError for a malformed request.
    """
    call = request.get("call")
    if call not in ("push_data", "clean_outdated_data"):
        raise ValueError(f"unknown call {call!r}")
    metrics.requests_total.labels(call=call).inc()

    try:
        if call == "push_data":
            data = request.get("data")
            if not isinstance(data, str):
                raise ValueError("push_data needs hex 'data'")
            return emitted_message(feed.push_data(request.get("origin"), bytes.fromhex(data)))

        evicted = feed.clean_outdated_data()
        metrics.evicted_entries_total.inc(evicted)
        return None
    except (FeedError, StaleInsertionTime) as e:
        reason = type(e).__name__
        metrics.rejections_total.labels(call=call, reason=reason).inc()
        return {"event": "rejected", "call": call, "error": reason, "detail": str(e)}


def main():
    parser = argparse.ArgumentParser(description="Oracle feed service")
    parser.add_argument("--config", default="config/oracle.yml")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--group-id", default="oracle-feed")
    parser.add_argument("--authority", help="Override the configured authority")
    parser.add_argument("--lifetime-ms", type=int, help="Override the configured lifetime")
    parser.add_argument(
        "--state-file", default=None,
        help="JSON file the log is restored from and saved to after each change",
    )
    parser.add_argument(
        "--metrics-port", type=int, default=9091, help="Prometheus metrics HTTP port",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    if args.authority:
        config.authority = args.authority
    if args.lifetime_ms is not None:
        if args.lifetime_ms <= 0:
            parser.error("--lifetime-ms must be positive")
        config.lifetime_ms = args.lifetime_ms

    feed = OracleFeed(config.authority, config.lifetime_ms, clock=_now_ms)
    if args.state_file:
        feed.load_snapshot(read_state(args.state_file))
        restored = feed.oracle_data()
        print(f"Restored state from {args.state_file}  "
              f"live={len(restored) if restored is not None else 'none'}")

    start_http_server(args.metrics_port)
    _ensure_topics(args.bootstrap_servers, [config.requests_topic, config.events_topic])

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([config.requests_topic])

    producer = Producer({"bootstrap.servers": args.bootstrap_servers})

    def publish(message: dict):
        producer.produce(
            config.events_topic,
            key=config.authority,
            value=json.dumps(message).encode("utf-8"),
        )
        producer.poll(0)

    feed.subscribe(lambda event: publish(emitted_message(event)))

    consumed = 0
    emitted = 0
    rejected = 0

    print(f"Feed service started  requests={config.requests_topic}  "
          f"events={config.events_topic}  authority={config.authority}  "
          f"lifetime_ms={config.lifetime_ms}")

    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                metrics.request_errors_total.inc()
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            consumed += 1
            try:
                request = json.loads(msg.value().decode("utf-8"))
                if not isinstance(request, dict):
                    raise ValueError("request must be a JSON object")
                event = handle_request(feed, request)
            except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
                metrics.request_errors_total.inc()
                print(f"Malformed request skipped: {e}", file=sys.stderr)
                continue

            if event is None or event["event"] == "emitted":
                if args.state_file:
                    persist(args.state_file, feed)
            if event is not None:
                if event["event"] == "emitted":
                    emitted += 1
                else:
                    publish(event)
                    rejected += 1
                    print(f"REJECTED  call={event['call']:<20s} error={event['error']}")

            live = feed.oracle_data()
            metrics.live_entries.set(len(live) if live is not None else 0)

            if consumed % 500 == 0:
                print(f"  ... {consumed} requests consumed, {emitted} emitted, {rejected} rejected")
    finally:
        producer.flush()
        consumer.close()
        print(f"Done. {consumed} requests consumed, {emitted} emitted, {rejected} rejected.")


if __name__ == "__main__":
    main()
