"""Per-endpoint measurement session."""

import logging
from collections import deque

from PySide6.QtCore import QObject, Signal

from latmon import stats
from latmon.engine import EngineError, ProbingEngine
from latmon.models import EventKind, ProbeEvent, SessionSnapshot, Stats

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_COUNT = 100


class Session(QObject):
    """Measurement lifecycle of a single endpoint.

    State machine: Idle -> Running (accepted start) -> Idle (complete or
    stopped event). The engine is the only authority on whether a run is
    active, so ``running`` is never cleared on request, only on the terminal
    event.

    All state access happens on the Qt main thread.
    """

    # Signals
    changed = Signal(object)  # Emits SessionSnapshot
    failed = Signal(str, str)  # (endpoint_id, error_msg)

    def __init__(
        self,
        endpoint_id: str,
        engine: ProbingEngine,
        history_size: int = DEFAULT_SAMPLE_COUNT,
        parent=None,
    ):
        """Initialize an idle session.

        Args:
            endpoint_id: Endpoint this session measures
            engine: Probing engine receiving start/stop commands
            history_size: Capacity of the recent-sample buffer
            parent: Qt parent object
        """
        super().__init__(parent)

        if history_size <= 0:
            raise ValueError("history_size must be positive")

        self.endpoint_id = endpoint_id
        self.engine = engine

        self.running = False
        self.stopping = False
        self.samples: list[float] = []
        self.timeout_count = 0
        self.stats = Stats()
        self.recent: deque[float] = deque(maxlen=history_size)

    def start(self, address: str, sample_count: int = DEFAULT_SAMPLE_COUNT) -> bool:
        """Request a new run.

        From idle, local state is cleared before the engine is asked so that
        no event of the new run is applied on top of the previous one.

        Args:
            address: Hostname or IP to probe
            sample_count: Number of probes in the run

        Returns:
            True if the engine accepted the start

        Raises:
            EngineError: if the engine channel is broken; the session is
                forced back to idle first
        """
        if not self.running:
            self._reset()

        try:
            accepted = self.engine.request_start(self.endpoint_id, address, sample_count)
        except EngineError as e:
            logger.exception("Engine start failed: endpoint=%s", self.endpoint_id)
            self._force_idle(str(e))
            raise

        if accepted:
            if not self.running:
                self.running = True
                self.stopping = False
                logger.info("Session running: endpoint=%s", self.endpoint_id)
        else:
            logger.info(
                "Start rejected: endpoint=%s, running=%s", self.endpoint_id, self.running
            )

        self._emit_changed()
        return bool(accepted)

    def stop(self):
        """Request the engine to end the current run.

        ``running`` stays set until the engine confirms with a complete or
        stopped event. Repeated requests while stopping are ignored.
        """
        if not self.running or self.stopping:
            logger.debug(
                "Stop ignored: endpoint=%s, running=%s, stopping=%s",
                self.endpoint_id,
                self.running,
                self.stopping,
            )
            return

        self.stopping = True
        try:
            self.engine.request_stop(self.endpoint_id)
        except EngineError as e:
            logger.exception("Engine stop failed: endpoint=%s", self.endpoint_id)
            self._force_idle(str(e))
            raise

        self._emit_changed()

    def toggle(self, address: str, sample_count: int = DEFAULT_SAMPLE_COUNT) -> bool:
        """Stop when running, otherwise start.

        Returns:
            True if a new run was started
        """
        if self.running:
            self.stop()
            return False
        return self.start(address, sample_count)

    def handle_event(self, event: ProbeEvent):
        """Apply one routed engine event."""
        if event.endpoint_id != self.endpoint_id:
            logger.warning(
                "Event for %s delivered to session %s, ignoring",
                event.endpoint_id,
                self.endpoint_id,
            )
            return

        if event.kind == EventKind.SAMPLE:
            self.on_sample(event.latency_ms)
        elif event.kind == EventKind.TIMEOUT:
            self.on_timeout()
        elif event.kind == EventKind.COMPLETE:
            self.on_complete()
        elif event.kind == EventKind.STOPPED:
            self.on_stopped()

    def on_sample(self, latency_ms: float):
        self.samples.append(latency_ms)
        self.recent.append(latency_ms)
        self._recompute()

    def on_timeout(self):
        self.timeout_count += 1
        self._recompute()

    def on_complete(self):
        self._finish("complete")

    def on_stopped(self):
        self._finish("stopped")

    def snapshot(self) -> SessionSnapshot:
        """Return an immutable view of the current state."""
        return SessionSnapshot(
            endpoint_id=self.endpoint_id,
            running=self.running,
            stopping=self.stopping,
            samples=tuple(self.samples),
            timeout_count=self.timeout_count,
            stats=self.stats,
            recent=tuple(self.recent),
        )

    def _recompute(self):
        self.stats = stats.compute(self.samples, self.timeout_count)
        self._emit_changed()

    def _finish(self, reason: str):
        if not self.running:
            return

        self.running = False
        self.stopping = False
        logger.info(
            "Session idle: endpoint=%s, reason=%s, samples=%d, timeouts=%d",
            self.endpoint_id,
            reason,
            len(self.samples),
            self.timeout_count,
        )
        self._emit_changed()

    def _reset(self):
        self.samples = []
        self.timeout_count = 0
        self.recent.clear()
        self.stats = Stats()

    def _force_idle(self, error_msg: str):
        self.running = False
        self.stopping = False
        self._emit_changed()
        self.failed.emit(self.endpoint_id, error_msg)

    def _emit_changed(self):
        self.changed.emit(self.snapshot())
