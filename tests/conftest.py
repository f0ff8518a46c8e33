from __future__ import annotations

import pytest

from ttlkv import StoreSettings, TTLStore, configure_logging


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(scope="session", autouse=True)
def _logging():
    configure_logging(StoreSettings(path=":memory:", prefix="log:",
                                    log_level="DEBUG", log_format="console"))


@pytest.fixture(autouse=True)
def _env_isolation(monkeypatch):
    """Keep TTLKV_* variables from the developer's shell out of the tests."""
    for var in ("TTLKV_PATH", "TTLKV_PREFIX", "TTLKV_SWEEP_INTERVAL", "TTLKV_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "kv.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_store(db_path, clock):
    """Factory for stores over the shared test database; all closed on teardown."""
    opened = []

    def _mk(prefix: str = "test:", **kwargs) -> TTLStore:
        kwargs.setdefault("clock", clock)
        if "settings" not in kwargs:
            kwargs.setdefault("path", db_path)
            kwargs.setdefault("prefix", prefix)
        store = TTLStore(**kwargs)
        opened.append(store)
        return store

    yield _mk
    for store in opened:
        store.close()


@pytest.fixture
def store(make_store):
    return make_store()
