import base64
import json
import pytest
import sys
from collections import deque
from pathlib import Path
from types import SimpleNamespace

import redis

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from certwatch.store.layout import StoreLayout  # noqa: E402

VALUE_PREFIX = "caddy-storage-redis"
ACME_DIR = "acme-v02.api.letsencrypt.org-directory"

T0 = "2024-01-01T00:00:00Z"
T0_NS = 1704067200 * 1_000_000_000
T1 = "2024-01-01T00:00:01.5Z"
T1_NS = 1704067201_500_000_000


def encode_value(payload: bytes, modified: str, prefix: str = VALUE_PREFIX) -> str:
    """Encode a component the way caddy-storage-redis stores it."""
    record = {"Value": base64.b64encode(payload).decode("ascii"), "Modified": modified}
    return prefix + json.dumps(record)


class FakePubSub:
    """Replays queued keyspace messages; behaves as a broken connection once drained unless told otherwise."""

    def __init__(self, store: "FakeStore") -> None:
        self.store = store
        self.patterns = []
        self.closed = False

    def psubscribe(self, pattern: str) -> None:
        self.patterns.append(pattern)

    def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0):
        if self.store.messages:
            return self.store.messages.popleft()
        if self.store.on_drained is not None:
            return self.store.on_drained()
        raise redis.ConnectionError("connection lost")

    def close(self) -> None:
        self.closed = True


class FakeStore:
    """In-memory stand-in for the subset of redis.Redis that certwatch uses; values come back as raw bytes."""

    def __init__(self, db: int = 0) -> None:
        self.values = {}
        self.messages = deque()
        self.on_drained = None
        self.get_errors = {}
        self.gets = []
        self.pubsubs = []
        self.closed = False
        self.connection_pool = SimpleNamespace(connection_kwargs={"db": db})

    def get(self, key: str):
        self.gets.append(key)
        if key in self.get_errors:
            raise self.get_errors[key]
        return self.values.get(key)

    def pubsub(self) -> FakePubSub:
        pubsub = FakePubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    def close(self) -> None:
        self.closed = True

    def put(self, layout: StoreLayout, name: str, suffix: str, payload: bytes, modified: str) -> str:
        key = layout.component_key(name, suffix)
        self.values[key] = encode_value(payload, modified).encode("utf-8")
        return key

    def publish(self, layout: StoreLayout, stored_key: str, payload: str) -> None:
        self.messages.append(
            {
                "type": "pmessage",
                "pattern": layout.channel_pattern,
                "channel": f"{layout.channel_prefix}{stored_key}".encode("utf-8"),
                "data": payload.encode("utf-8"),
            }
        )


@pytest.fixture
def layout():
    return StoreLayout(key_prefix="caddy", acme_dir_name=ACME_DIR, db=0)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def cert_dir(tmp_path):
    """
    Returns a temporary directory acting as the local certificate mirror.
    """
    path = tmp_path / "certs"
    path.mkdir()
    return path


@pytest.fixture(autouse=True)
def _clean_certwatch_env(monkeypatch):
    import os

    for name in list(os.environ):
        if name.startswith("CERTWATCH_"):
            monkeypatch.delenv(name, raising=False)
