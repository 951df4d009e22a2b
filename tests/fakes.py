"""Test doubles shared by the latmon test modules."""

from latmon.engine import EngineError
from latmon.store import StoreError


class FakeEngine:
    """Probing engine double that records commands.

    Starts are accepted unless the endpoint already has a run or
    ``accept`` is False. Nothing is emitted; tests feed events to the router
    themselves.
    """

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.fail_with: str | None = None
        self.active: set[str] = set()
        self.start_calls: list[tuple[str, str, int]] = []
        self.stop_calls: list[str] = []
        self.stop_all_calls = 0

    def request_start(self, endpoint_id: str, address: str, sample_count: int) -> bool:
        self.start_calls.append((endpoint_id, address, sample_count))
        if self.fail_with:
            raise EngineError(self.fail_with)
        if not self.accept or endpoint_id in self.active:
            return False
        self.active.add(endpoint_id)
        return True

    def request_stop(self, endpoint_id: str) -> None:
        self.stop_calls.append(endpoint_id)
        if self.fail_with:
            raise EngineError(self.fail_with)

    def stop_all(self) -> None:
        self.stop_all_calls += 1
        self.active.clear()

    def finish(self, endpoint_id: str):
        """Forget a run, as the real engine does before its terminal event."""
        self.active.discard(endpoint_id)


class FailingStore:
    """Store whose reads and writes always fail."""

    def __init__(self, fail_get: bool = True, fail_set: bool = True):
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.data = {}

    def get(self, key, default=None):
        if self.fail_get:
            raise StoreError("disk unavailable")
        return self.data.get(key, default)

    def set(self, key, value):
        if self.fail_set:
            raise StoreError("disk full")
        self.data[key] = value
