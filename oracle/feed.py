"""Oracle feed — who may write, who gets told, and what readers see.

Pure business logic, no Kafka dependency.  The feed service feeds requests in
and publishes the resulting events.

State: an optional TimeWindowedLog.  It stays None until the first successful
push or cleanup, so readers can tell "never written" from "all expired".
"""

from dataclasses import dataclass
from typing import Any, Callable

from oracle.snapshot import decode_log, encode_log
from oracle.time_windowed_log import TimeWindowedLog, as_payload


class FeedError(Exception):
    """Base class for requests the feed refuses."""


class BadOrigin(FeedError):
    """The request carries no signer."""


class WrongAuthority(FeedError):
    """The request is signed by someone other than the feed authority."""

    def __init__(self, origin):
        super().__init__(f"{origin!r} is not the feed authority")
        self.origin = origin


@dataclass(frozen=True)
class Emitted:
    data: bytes
    recorded_at: Any


class OracleFeed:

    def __init__(self, authority: str, lifetime, clock: Callable[[], Any],
                 log: TimeWindowedLog | None = None):
        self.authority = authority
        self.lifetime = lifetime
        self._clock = clock
        self._log = log
        self._subscribers: list[Callable[[Emitted], None]] = []

    def subscribe(self, callback: Callable[[Emitted], None]) -> None:
        """Call *callback* with the Emitted event of every accepted push.

        Callbacks run before the entry is stored; an exception from one
        aborts the push and propagates to the caller of push_data().
        """
        self._subscribers.append(callback)

    def push_data(self, origin: str | None, data: bytes) -> Emitted:
        """Store *data* at the current time.  Only the authority may push.

        Raises BadOrigin / WrongAuthority before touching anything, TypeError
        for a payload that is not bytes-like, and StaleInsertionTime if the
        clock is behind the newest entry.  Returns the Emitted event that was
        sent to subscribers.
        """
        if origin is None:
            raise BadOrigin("push_data requires a signed origin")
        if origin != self.authority:
            raise WrongAuthority(origin)

        now = self._clock()
        payload = as_payload(data)
        log = self._log if self._log is not None else TimeWindowedLog(self.lifetime)
        log.check_time(now)

        # Subscribers run before the log changes: if one raises, the push is
        # abandoned and the feed is exactly as it was.  After check_time() the
        # push itself cannot fail.
        event = Emitted(payload, now)
        for callback in self._subscribers:
            callback(event)

        log.push(now, payload)
        self._log = log
        return event

    def clean_outdated_data(self) -> int:
        """Evict expired entries.  Open to anyone; returns how many were dropped."""
        log = self._log if self._log is not None else TimeWindowedLog(self.lifetime)
        evicted = log.evict_expired(self._clock())
        self._log = log
        return evicted

    def oracle_data(self) -> list[bytes] | None:
        """Live payloads in chronological order, or None if never written."""
        if self._log is None:
            return None
        return list(self._log.live_entries(self._clock()))

    def snapshot(self) -> dict | None:
        if self._log is None:
            return None
        return encode_log(self._log)

    def load_snapshot(self, snapshot: dict | None) -> None:
        """Replace the feed's log with one rebuilt from snapshot()."""
        self._log = None if snapshot is None else decode_log(snapshot, self.lifetime)
