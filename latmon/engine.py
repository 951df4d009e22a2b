"""Probing engine abstraction and a simulated engine for latmon."""

import logging
import random
import re
from typing import Protocol

from PySide6.QtCore import QObject, QTimer, Signal

from latmon.models import ProbeEvent

logger = logging.getLogger(__name__)

# Letters, digits, dots, hyphens and colons (IPv6)
_ADDRESS_CHARS = re.compile(r"^[A-Za-z0-9.:-]+$")


class EngineError(RuntimeError):
    """Raised when the command channel to a probing engine is broken."""


class ProbingEngine(Protocol):
    """Protocol for the component that sends and times probes.

    Implementations also expose an ``event`` Qt signal carrying ProbeEvent
    values for sample, timeout, complete and stopped.
    """

    def request_start(self, endpoint_id: str, address: str, sample_count: int) -> bool:
        """Begin a run; return False if the run could not start."""
        ...

    def request_stop(self, endpoint_id: str) -> None:
        """Ask the run for endpoint_id to cease (best effort)."""
        ...

    def stop_all(self) -> None:
        """Stop every active run."""
        ...


class _Run:
    """Bookkeeping for one simulated run."""

    def __init__(self, endpoint_id: str, sample_count: int, timer: QTimer):
        self.endpoint_id = endpoint_id
        self.remaining = sample_count
        self.timer = timer


class SimulatedEngine(QObject):
    """Probing engine that generates synthetic latency samples.

    Each run owns a QTimer; every tick produces one probe result. No network
    I/O is performed, which makes it suitable for demos and tests.
    """

    event = Signal(object)  # Emits ProbeEvent

    def __init__(self, interval_ms: int = 1000, seed: int | None = None, parent=None):
        """Initialize the simulated engine.

        Args:
            interval_ms: Time between probes of one run in milliseconds
            seed: Optional random seed for deterministic behavior
            parent: Qt parent object
        """
        super().__init__(parent)

        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self.interval_ms = interval_ms

        # Isolated random instance so seeded engines don't share state
        self._random = random.Random(seed)

        # Simulation parameters
        self.base_latency = 25.0  # Base latency in ms
        self.latency_variance = 5.0  # Normal variance
        self.spike_probability = 0.05  # 5% chance of latency spike
        self.spike_multiplier = 3.0  # Spike makes latency 3x higher
        self.timeout_probability = 0.02  # 2% chance of a timeout

        self._runs: dict[str, _Run] = {}

    def request_start(self, endpoint_id: str, address: str, sample_count: int) -> bool:
        """Start a simulated run.

        Returns:
            True if a new run started, False if one is already active

        Raises:
            EngineError: if the address contains characters a ping target
                can never contain
        """
        if endpoint_id in self._runs:
            logger.debug("Start declined, run already active: endpoint=%s", endpoint_id)
            return False

        if not address or not _ADDRESS_CHARS.match(address):
            raise EngineError("Invalid address format")

        if sample_count <= 0:
            raise EngineError("sample_count must be positive")

        timer = QTimer(self)
        timer.setInterval(self.interval_ms)
        timer.timeout.connect(lambda: self._on_tick(endpoint_id))
        self._runs[endpoint_id] = _Run(endpoint_id, sample_count, timer)
        timer.start()

        logger.info(
            "Run started: endpoint=%s, address=%s, count=%d",
            endpoint_id,
            address,
            sample_count,
        )
        return True

    def request_stop(self, endpoint_id: str) -> None:
        """Stop a run and emit a stopped event.

        Stopping a run that is not active emits nothing.
        """
        run = self._finish(endpoint_id)
        if run is None:
            logger.debug("Stop ignored, no active run: endpoint=%s", endpoint_id)
            return

        logger.info("Run stopped: endpoint=%s, remaining=%d", endpoint_id, run.remaining)
        self.event.emit(ProbeEvent.stopped(endpoint_id))

    def stop_all(self) -> None:
        """Stop every run without emitting events (shutdown path)."""
        for endpoint_id in list(self._runs):
            self._finish(endpoint_id)
        logger.debug("All runs stopped")

    def is_running(self, endpoint_id: str) -> bool:
        return endpoint_id in self._runs

    def active_runs(self) -> list[str]:
        return list(self._runs)

    def generate_probe(self, endpoint_id: str) -> ProbeEvent:
        """Generate a single probe result for the given endpoint."""
        if self._random.random() < self.timeout_probability:
            return ProbeEvent.timeout(endpoint_id)

        # Generate latency with occasional spikes
        if self._random.random() < self.spike_probability:
            latency = self.base_latency * self.spike_multiplier + self._random.gauss(
                0, self.latency_variance
            )
        else:
            latency = self.base_latency + self._random.gauss(0, self.latency_variance)

        # Ensure latency is positive
        latency = max(0.1, latency)

        return ProbeEvent.sample(endpoint_id, round(latency, 2))

    def _on_tick(self, endpoint_id: str):
        """Produce the next probe of a run and complete it when exhausted."""
        run = self._runs.get(endpoint_id)
        if run is None:
            return

        run.remaining -= 1
        self.event.emit(self.generate_probe(endpoint_id))

        # A handler may have stopped the run while the probe was delivered
        if self._runs.get(endpoint_id) is not run:
            return

        if run.remaining <= 0:
            self._finish(endpoint_id)
            logger.info("Run complete: endpoint=%s", endpoint_id)
            self.event.emit(ProbeEvent.complete(endpoint_id))

    def _finish(self, endpoint_id: str) -> _Run | None:
        run = self._runs.pop(endpoint_id, None)
        if run is not None:
            run.timer.stop()
            run.timer.deleteLater()
        return run
