"""Load the feed configuration from a YAML file."""

from dataclasses import dataclass
from pathlib import Path

import yaml

_REQUIRED_FIELDS = ("authority", "lifetime_ms")
_DEFAULT_TOPICS = {"requests": "oracle-requests", "events": "oracle-events"}


@dataclass
class FeedConfig:
    authority: str
    lifetime_ms: int
    requests_topic: str = _DEFAULT_TOPICS["requests"]
    events_topic: str = _DEFAULT_TOPICS["events"]


def load_config(path: str | Path) -> FeedConfig:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        definition = yaml.safe_load(f) or {}

    if not isinstance(definition, dict):
        raise ValueError(f"{path.name}: expected a mapping at the top level")

    for field in _REQUIRED_FIELDS:
        if field not in definition:
            raise ValueError(f"{path.name}: missing required field '{field}'")

    authority = definition["authority"]
    if not isinstance(authority, str) or not authority:
        raise ValueError(f"{path.name}: 'authority' must be a non-empty string")

    lifetime = definition["lifetime_ms"]
    # bool is an int subclass; reject it explicitly
    if isinstance(lifetime, bool) or not isinstance(lifetime, int) or lifetime <= 0:
        raise ValueError(f"{path.name}: 'lifetime_ms' must be a positive integer")

    overrides = definition.get("topics") or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"{path.name}: 'topics' must be a mapping")
    unknown = set(overrides) - set(_DEFAULT_TOPICS)
    if unknown:
        raise ValueError(f"{path.name}: unknown topics {sorted(map(str, unknown))}")
    for name, topic in overrides.items():
        if not isinstance(topic, str) or not topic:
            raise ValueError(f"{path.name}: topic '{name}' must be a non-empty string")
    topics = {**_DEFAULT_TOPICS, **overrides}

    return FeedConfig(
        authority=authority,
        lifetime_ms=lifetime,
        requests_topic=topics["requests"],
        events_topic=topics["events"],
    )
