"""Tests for the feed service's request handling (no broker needed)."""

import pytest
from prometheus_client import REGISTRY

from oracle.feed import OracleFeed
from oracle.main import emitted_message, handle_request, persist
from oracle.snapshot import read_state

AUTHORITY = "oracle-authority"


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def _push(data: bytes, origin=AUTHORITY) -> dict:
    return {"call": "push_data", "origin": origin, "data": data.hex()}


class TestHandleRequest:
    def setup_method(self):
        self.clock = FakeClock(1_000)
        self.feed = OracleFeed(AUTHORITY, 10, clock=self.clock)

    def test_push_returns_emitted_event(self):
        event = handle_request(self.feed, _push(b"eth-usd=3012.55"))
        assert event == {
            "event": "emitted",
            "data": b"eth-usd=3012.55".hex(),
            "recorded_at": 1_000,
        }
        assert self.feed.oracle_data() == [b"eth-usd=3012.55"]

    def test_wrong_authority_is_rejected(self):
        before = _sample("oracle_rejections_total", call="push_data", reason="WrongAuthority")
        event = handle_request(self.feed, _push(b"x", origin="mallory"))
        assert event["event"] == "rejected"
        assert event["error"] == "WrongAuthority"
        assert self.feed.oracle_data() is None
        after = _sample("oracle_rejections_total", call="push_data", reason="WrongAuthority")
        assert after == before + 1

    def test_unsigned_push_is_rejected(self):
        event = handle_request(self.feed, _push(b"x", origin=None))
        assert event["error"] == "BadOrigin"

    def test_stale_push_is_rejected(self):
        handle_request(self.feed, _push(b"first"))
        self.clock.now = 999
        event = handle_request(self.feed, _push(b"second"))
        assert event["error"] == "StaleInsertionTime"
        self.clock.now = 1_000
        assert self.feed.oracle_data() == [b"first"]

    def test_cleanup_returns_nothing_and_counts_evictions(self):
        handle_request(self.feed, _push(b"old"))
        self.clock.now = 1_010
        before = _sample("oracle_evicted_entries_total")
        assert handle_request(self.feed, {"call": "clean_outdated_data"}) is None
        assert _sample("oracle_evicted_entries_total") == before + 1
        assert self.feed.oracle_data() == []

    def test_stale_cleanup_is_rejected(self):
        handle_request(self.feed, _push(b"x"))
        self.clock.now = 500
        event = handle_request(self.feed, {"call": "clean_outdated_data"})
        assert event["call"] == "clean_outdated_data"
        assert event["error"] == "StaleInsertionTime"

    @pytest.mark.parametrize("request_", [
        {"call": "drop_table"},
        {},
        {"call": "push_data", "origin": AUTHORITY},
        {"call": "push_data", "origin": AUTHORITY, "data": "not-hex"},
        {"call": "push_data", "origin": AUTHORITY, "data": 42},
    ])
    def test_malformed_requests_raise_value_error(self, request_):
        with pytest.raises(ValueError):
            handle_request(self.feed, request_)
        assert self.feed.oracle_data() is None


class TestPublishing:
    def setup_method(self):
        self.clock = FakeClock(1_000)
        self.feed = OracleFeed(AUTHORITY, 10, clock=self.clock)
        self.published = []
        self.feed.subscribe(lambda event: self.published.append(emitted_message(event)))

    def test_accepted_push_is_published_through_subscription(self):
        outcome = handle_request(self.feed, _push(b"btc-usd=64001.10"))
        assert self.published == [outcome]
        assert outcome["event"] == "emitted"

    def test_rejected_push_is_not_published_as_emitted(self):
        handle_request(self.feed, _push(b"x", origin="mallory"))
        assert self.published == []

    def test_failed_publish_leaves_feed_untouched(self):
        def queue_full(event):
            raise BufferError("queue full")

        self.feed.subscribe(queue_full)
        with pytest.raises(BufferError):
            handle_request(self.feed, _push(b"x"))
        assert self.feed.oracle_data() is None


class TestPersist:
    def setup_method(self):
        self.feed = OracleFeed(AUTHORITY, 10, clock=FakeClock(5))
        self.feed.push_data(AUTHORITY, b"kept")

    def test_writes_snapshot(self, tmp_path):
        path = tmp_path / "state.json"
        assert persist(path, self.feed) is True
        assert read_state(path) == self.feed.snapshot()

    def test_write_failure_is_counted_not_raised(self, tmp_path, monkeypatch, capsys):
        def fail(path, snapshot):
            raise OSError("disk full")

        monkeypatch.setattr("oracle.main.write_state", fail)
        before = _sample("oracle_request_errors_total")

        assert persist(tmp_path / "state.json", self.feed) is False

        assert _sample("oracle_request_errors_total") == before + 1
        assert "disk full" in capsys.readouterr().err
        assert self.feed.oracle_data() == [b"kept"]

    def test_missing_directory_is_reported(self, tmp_path):
        assert persist(tmp_path / "no-such-dir" / "state.json", self.feed) is False
