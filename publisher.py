"""Submit requests to the oracle feed.

Sends push_data requests (one per payload, or a steady stream of generated
readings) and clean_outdated_data requests to the feed's requests topic.

Usage:
    python publisher.py push "eth-usd=3012.55" "btc-usd=64001.10"
    python publisher.py push --origin someone-else "rejected"
    python publisher.py clean
    python publisher.py stream --rate 2 --feeds eth-usd btc-usd
"""

import argparse
import json
import random
import signal
import time

from confluent_kafka import Producer

from oracle.config import load_config

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down publisher...")
    running = False


signal.signal(signal.SIGINT, _shutdown)   # Ctrl+C (local dev)
signal.signal(signal.SIGTERM, _shutdown)  # docker stop / k8s pod termination


def push_request(origin: str | None, payload: bytes) -> dict:
    return {"call": "push_data", "origin": origin, "data": payload.hex()}


def clean_request() -> dict:
    return {"call": "clean_outdated_data"}


def _reading(feed: str, last: dict[str, float]) -> bytes:
    """Random-walk price reading, encoded as "<feed>=<price>"."""
    price = last.get(feed, random.uniform(10, 5000))
    price *= 1 + random.gauss(0, 0.002)
    last[feed] = price
    return f"{feed}={price:.2f}".encode()


def main():
    parser = argparse.ArgumentParser(description="Oracle feed request publisher")
    parser.add_argument("--config", default="config/oracle.yml")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--origin", help="Signer of push requests (default: the authority)")
    parser.add_argument("--unsigned", action="store_true", help="Send push requests without an origin")
    sub = parser.add_subparsers(dest="command", required=True)

    push = sub.add_parser("push", help="Push one entry per payload")
    push.add_argument("payloads", nargs="+")

    sub.add_parser("clean", help="Ask the feed to drop expired entries")

    stream = sub.add_parser("stream", help="Push generated price readings until stopped")
    stream.add_argument("--rate", type=float, default=1.0, help="Requests/sec")
    stream.add_argument("--feeds", nargs="+", default=["eth-usd", "btc-usd"])
    stream.add_argument("--clean-every", type=int, default=100,
                        help="Send a cleanup request every N pushes (0 = never)")
    args = parser.parse_args()

    config = load_config(args.config)
    origin = None if args.unsigned else (args.origin or config.authority)

    producer = Producer({
        "bootstrap.servers": args.bootstrap_servers,
        "acks": "all",
        "client.id": "oracle-publisher",
    })

    def send(request: dict):
        producer.produce(
            topic=config.requests_topic,
            key=config.authority.encode(),
            value=json.dumps(request),
        )
        producer.poll(0)

    count = 0
    if args.command == "push":
        for payload in args.payloads:
            send(push_request(origin, payload.encode()))
            count += 1
    elif args.command == "clean":
        send(clean_request())
        count += 1
    else:
        print(f"Streaming {args.feeds} to '{config.requests_topic}' at ~{args.rate} req/sec")
        last: dict[str, float] = {}
        delay = 1.0 / args.rate
        while running:
            send(push_request(origin, _reading(random.choice(args.feeds), last)))
            count += 1
            if args.clean_every and count % args.clean_every == 0:
                send(clean_request())
            if count % 100 == 0:
                print(f"  ... {count} requests sent")
            time.sleep(delay)

    producer.flush()
    print(f"Done. {count} requests sent.")


if __name__ == "__main__":
    main()
