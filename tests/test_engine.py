"""Tests for the simulated probing engine."""

import time

import pytest
from PySide6.QtCore import QCoreApplication
from latmon.engine import EngineError, SimulatedEngine
from latmon.models import EventKind
from latmon.registry import EndpointRegistry
from latmon.router import EventRouter
from latmon.store import MemoryStore


@pytest.fixture(scope="module")
def qapp():
    """Create QCoreApplication instance for tests."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def engine(qapp):
    eng = SimulatedEngine(interval_ms=1000, seed=42)
    yield eng
    eng.stop_all()


@pytest.fixture
def events(engine):
    received = []
    engine.event.connect(received.append)
    return received


def process_until(qapp, condition, timeout_s=5.0):
    """Spin the Qt event loop until condition() holds or the deadline passes."""
    deadline = time.monotonic() + timeout_s
    while not condition() and time.monotonic() < deadline:
        qapp.processEvents()
        time.sleep(0.001)
    return condition()


class TestSimulatedEngineCommands:
    """Test start/stop command semantics."""

    def test_start_accepted(self, engine):
        assert engine.request_start("eu", "pingtest-ams.brawlhalla.com", 10) is True
        assert engine.is_running("eu")

    def test_duplicate_start_declined(self, engine):
        """Verify only one run per endpoint."""
        engine.request_start("eu", "pingtest-ams.brawlhalla.com", 10)

        assert engine.request_start("eu", "pingtest-ams.brawlhalla.com", 10) is False
        assert engine.active_runs() == ["eu"]

    @pytest.mark.parametrize("address", ["", "bad host", "host;rm -rf", "a/b"])
    def test_invalid_address_raises(self, engine, address):
        """Verify addresses with forbidden characters are refused."""
        with pytest.raises(EngineError, match="Invalid address"):
            engine.request_start("eu", address, 10)
        assert not engine.is_running("eu")

    def test_ipv6_address_accepted(self, engine):
        assert engine.request_start("v6", "2001:db8::1", 1) is True

    def test_non_positive_count_raises(self, engine):
        with pytest.raises(EngineError, match="sample_count"):
            engine.request_start("eu", "example.com", 0)

    def test_stop_emits_stopped(self, engine, events):
        """Verify stop ends the run and confirms with a stopped event."""
        engine.request_start("eu", "example.com", 10)

        engine.request_stop("eu")

        assert not engine.is_running("eu")
        assert [e.kind for e in events] == [EventKind.STOPPED]

    def test_stop_without_run_emits_nothing(self, engine, events):
        engine.request_stop("eu")

        assert events == []

    def test_stop_all_is_silent(self, engine, events):
        """Verify shutdown stops every run without events."""
        engine.request_start("eu", "example.com", 10)
        engine.request_start("jpn", "example.com", 10)

        engine.stop_all()

        assert engine.active_runs() == []
        assert events == []

    def test_invalid_interval(self, qapp):
        with pytest.raises(ValueError, match="interval_ms"):
            SimulatedEngine(interval_ms=0)


class TestSimulatedEngineProbes:
    """Test generated probe results."""

    def test_ticks_emit_probes_then_complete(self, engine, events):
        """Verify a run emits sample_count probes followed by complete."""
        engine.request_start("eu", "example.com", 3)

        for _ in range(3):
            engine._on_tick("eu")

        kinds = [e.kind for e in events]
        assert len(kinds) == 4
        assert all(k in (EventKind.SAMPLE, EventKind.TIMEOUT) for k in kinds[:3])
        assert kinds[3] == EventKind.COMPLETE
        assert all(e.endpoint_id == "eu" for e in events)
        assert not engine.is_running("eu")

    def test_tick_after_finish_ignored(self, engine, events):
        engine._on_tick("eu")

        assert events == []

    def test_deterministic_with_seed(self, qapp):
        """Verify engines with the same seed produce the same probes."""
        a = SimulatedEngine(seed=7)
        b = SimulatedEngine(seed=7)

        assert [a.generate_probe("eu") for _ in range(20)] == [
            b.generate_probe("eu") for _ in range(20)
        ]

    def test_latencies_positive(self, engine):
        """Verify generated latencies are always positive."""
        engine.latency_variance = 50.0
        for _ in range(200):
            probe = engine.generate_probe("eu")
            if probe.kind == EventKind.SAMPLE:
                assert probe.latency_ms > 0

    def test_timeout_probability(self, engine):
        """Verify timeouts are produced when configured."""
        engine.timeout_probability = 1.0

        probe = engine.generate_probe("eu")

        assert probe.kind == EventKind.TIMEOUT
        assert probe.latency_ms is None

    def test_stop_from_handler_suppresses_complete(self, engine, events):
        """Verify a run stopped during its last probe does not also complete."""
        engine.request_start("eu", "example.com", 1)
        engine.event.connect(
            lambda e: engine.request_stop("eu") if e.kind != EventKind.STOPPED else None
        )

        engine._on_tick("eu")

        assert [e.kind for e in events][-1] == EventKind.STOPPED
        assert EventKind.COMPLETE not in [e.kind for e in events]


class TestEndToEnd:
    """Run the engine, router and registry together on the Qt event loop."""

    def test_runs_to_completion(self, qapp):
        """Verify timer-driven runs finish with consistent statistics."""
        engine = SimulatedEngine(interval_ms=1, seed=3)
        router = EventRouter()
        engine.event.connect(router.dispatch)
        registry = EndpointRegistry(MemoryStore(), engine, router, sample_count=5)
        registry.load()

        assert registry.start("eu") is True
        assert registry.start("jpn") is True
        assert process_until(qapp, lambda: not registry.running_ids())

        for endpoint_id in ("eu", "jpn"):
            snapshot = registry.snapshot(endpoint_id)
            assert snapshot.attempts == 5
            assert not snapshot.running
            if snapshot.samples:
                assert snapshot.stats.min <= snapshot.stats.avg <= snapshot.stats.max

    def test_stop_mid_run(self, qapp):
        """Verify a stopped run goes idle with the samples seen so far."""
        engine = SimulatedEngine(interval_ms=1, seed=5)
        router = EventRouter()
        engine.event.connect(router.dispatch)
        registry = EndpointRegistry(MemoryStore(), engine, router, sample_count=1000)
        registry.load()

        registry.start("eu")
        process_until(qapp, lambda: registry.snapshot("eu").attempts >= 3)
        registry.stop("eu")

        snapshot = registry.snapshot("eu")
        assert not snapshot.running
        assert 3 <= snapshot.attempts < 1000
