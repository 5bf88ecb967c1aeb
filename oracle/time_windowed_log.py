"""Time-windowed log of opaque payloads for the oracle feed.

Entries are kept in insertion order, which is also timestamp order: a push
with a time older than the newest stored entry is rejected, so the expired
entries always form a prefix.  That lets eviction and reads find the first
live entry with a binary search instead of a linear scan.

The log never reads a clock.  Callers pass ``now`` on every call, and any
ordered type whose difference compares against ``lifetime`` works as a
timestamp (int milliseconds, floats, datetime with a timedelta lifetime).
"""

from bisect import bisect_left
from dataclasses import dataclass
from typing import Any, Iterable, Iterator


class StaleInsertionTime(Exception):
    """``now`` is older than the most recently recorded entry."""

    def __init__(self, now, latest):
        super().__init__(f"time {now!r} is older than latest entry at {latest!r}")
        self.now = now
        self.latest = latest


# Older name for the same error.
AttemptToInsertHistoricalData = StaleInsertionTime


def as_payload(payload) -> bytes:
    """Immutable copy of a bytes-like *payload*.

    Anything else is a TypeError: bytes(5) would silently store five zero bytes.
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise TypeError(f"payload must be bytes-like, not {type(payload).__name__}")
    return bytes(payload)


@dataclass(frozen=True)
class Entry:
    payload: bytes
    recorded_at: Any


class TimeWindowedLog:
    __slots__ = ("_lifetime", "_entries")

    def __init__(self, lifetime, entries: Iterable[Entry] = ()):
        self._lifetime = lifetime
        self._entries: list[Entry] = list(entries)
        for prev, cur in zip(self._entries, self._entries[1:]):
            if cur.recorded_at < prev.recorded_at:
                raise ValueError(
                    f"entries out of order: {cur.recorded_at!r} after {prev.recorded_at!r}"
                )

    @property
    def lifetime(self):
        return self._lifetime

    @property
    def latest(self):
        """Timestamp of the newest stored entry, or None when empty."""
        return self._entries[-1].recorded_at if self._entries else None

    def push(self, now, payload: bytes) -> None:
        """Evict what is expired at *now*, then append *payload* recorded at *now*.

        Raises TypeError for a payload that is not bytes-like and
        StaleInsertionTime if *now* is older than the newest entry.  Either way
        the log is left untouched.
        """
        payload = as_payload(payload)
        self.evict_expired(now)
        self._entries.append(Entry(payload, now))

    def check_time(self, now) -> None:
        """Raise StaleInsertionTime if *now* is older than the newest entry."""
        latest = self.latest
        if latest is not None and latest > now:
            raise StaleInsertionTime(now, latest)

    def evict_expired(self, now) -> int:
        """Drop every entry whose age at *now* is >= lifetime.

        Returns the number of entries removed.  Rejects a *now* older than the
        newest entry the same way push() does, without touching the log.
        """
        self.check_time(now)
        point = self._partition_point(now)
        del self._entries[:point]
        return point

    def live_entries(self, now) -> Iterator[bytes]:
        """Payloads still inside the window at *now*, oldest first.

        Read-only: expired entries stay stored until the next evict_expired()
        or push().
        """
        point = self._partition_point(now)
        return (entry.payload for entry in self._entries[point:])

    def entries(self) -> list[Entry]:
        """Copy of every stored entry, expired or not."""
        return list(self._entries)

    def _is_live(self, entry: Entry, now) -> bool:
        return not (now - entry.recorded_at >= self._lifetime)

    def _partition_point(self, now) -> int:
        # Index of the first live entry.  Liveness goes False..False, True..True
        # along the list because timestamps never decrease.
        return bisect_left(self._entries, True, key=lambda e: self._is_live(e, now))

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TimeWindowedLog(lifetime={self._lifetime!r}, entries={len(self._entries)})"
