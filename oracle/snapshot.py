"""JSON snapshots of the feed's log, so a restarted service keeps its entries.

Payloads are hex-encoded; timestamps are written as-is and must therefore be
JSON-native (the service uses integer milliseconds).
"""

import json
import os
from pathlib import Path

from oracle.time_windowed_log import Entry, TimeWindowedLog


def encode_log(log: TimeWindowedLog) -> dict:
    return {
        "lifetime": log.lifetime,
        "entries": [
            {"payload": e.payload.hex(), "recorded_at": e.recorded_at}
            for e in log.entries()
        ],
    }


def decode_log(snapshot: dict, lifetime=None) -> TimeWindowedLog:
    """Rebuild a log from encode_log() output.

    *lifetime* overrides the stored one, so a service restarted with a new
    retention setting applies it to old entries as well.
    """
    if "entries" not in snapshot:
        raise ValueError("snapshot: missing required field 'entries'")
    if lifetime is None:
        if "lifetime" not in snapshot:
            raise ValueError("snapshot: missing required field 'lifetime'")
        lifetime = snapshot["lifetime"]

    entries = []
    for i, raw in enumerate(snapshot["entries"]):
        try:
            entries.append(Entry(bytes.fromhex(raw["payload"]), raw["recorded_at"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"snapshot: bad entry #{i}: {e}") from e
    return TimeWindowedLog(lifetime, entries)


def read_state(path: str | Path) -> dict | None:
    """Load a state file written by write_state(); None if there is none yet."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path) as f:
        return json.load(f)


def write_state(path: str | Path, snapshot: dict | None) -> None:
    """Atomically replace the state file (temp file + rename)."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w") as f:
        json.dump(snapshot, f)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)
