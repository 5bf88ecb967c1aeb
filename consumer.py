"""Watch the events published by the oracle feed.

Prints one line per emitted or rejected request and a per-kind tally on
exit.  Lines that are not feed events are reported to stderr and skipped.

Usage:
    python consumer.py
    python consumer.py --bootstrap-servers kafka-1:29092 --topic oracle-events
    python consumer.py --rejected-only
"""

import argparse
import json
import signal
import sys
from collections import Counter

from confluent_kafka import Consumer, KafkaError

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down watcher...")
    running = False


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)


def format_event(event: dict) -> str:
    """One display line for a feed event.  Raises ValueError for anything else."""
    kind = event.get("event")
    if kind == "emitted":
        try:
            data = bytes.fromhex(event["data"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"emitted event without hex data: {e}") from e
        return f"EMITTED   at={event.get('recorded_at')}  data={data!r}"
    if kind == "rejected":
        return f"REJECTED  call={event.get('call')}  error={event.get('error')}"
    raise ValueError(f"unknown event kind {kind!r}")


def main():
    parser = argparse.ArgumentParser(description="Oracle event watcher")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="oracle-events")
    parser.add_argument("--group-id", default="oracle-watcher")
    parser.add_argument("--rejected-only", action="store_true",
                        help="Only print refused requests")
    args = parser.parse_args()

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.topic])

    seen = Counter()
    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                event = json.loads(msg.value().decode("utf-8"))
                if not isinstance(event, dict):
                    raise ValueError("event must be a JSON object")
                line = format_event(event)
            except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
                seen["malformed"] += 1
                print(f"Skipping malformed event: {e}", file=sys.stderr)
                continue

            seen[event["event"]] += 1
            if not args.rejected_only or event["event"] == "rejected":
                print(line)
    finally:
        consumer.close()
        print(f"Done. {seen['emitted']} emitted, {seen['rejected']} rejected, "
              f"{seen['malformed']} malformed.")


if __name__ == "__main__":
    main()
