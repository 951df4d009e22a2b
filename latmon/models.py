"""Data models for latmon endpoints, probe events and session state."""

from dataclasses import dataclass, field, asdict
from enum import Enum


@dataclass
class Endpoint:
    """A configured network target for latency probing."""

    id: str
    name: str
    address: str
    favorite: bool = False
    custom: bool = False

    def to_dict(self) -> dict:
        """Return the persisted representation of this endpoint."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Endpoint":
        """Build an endpoint from its persisted representation.

        Only ``id`` is required. A missing or empty name falls back to the id
        and a missing address is kept empty, so such an entry survives
        loading but cannot be started.

        Raises:
            ValueError: if the id is missing, or a field is not a string
        """
        if not isinstance(data, dict):
            raise ValueError(f"Malformed endpoint entry: {data!r}")

        endpoint_id = data.get("id")
        name = data.get("name") or endpoint_id
        address = data.get("address") or ""

        if not isinstance(endpoint_id, str) or not endpoint_id:
            raise ValueError(f"Malformed endpoint entry: {data!r}")
        if not isinstance(name, str) or not isinstance(address, str):
            raise ValueError(f"Malformed endpoint entry: {data!r}")

        return cls(
            id=endpoint_id,
            name=name,
            address=address,
            favorite=bool(data.get("favorite", False)),
            custom=bool(data.get("custom", False)),
        )


class EventKind(str, Enum):
    """Kinds of events emitted by a probing engine."""

    SAMPLE = "sample"
    TIMEOUT = "timeout"
    COMPLETE = "complete"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ProbeEvent:
    """A single event on the shared probing-engine stream."""

    kind: EventKind
    endpoint_id: str
    latency_ms: float | None = None  # Only set for SAMPLE events

    def __post_init__(self):
        """Ensure consistency between kind and latency_ms."""
        if self.kind == EventKind.SAMPLE:
            if self.latency_ms is None:
                raise ValueError("Sample event requires latency_ms")
            object.__setattr__(self, "latency_ms", float(self.latency_ms))
        elif self.latency_ms is not None:
            object.__setattr__(self, "latency_ms", None)

    @classmethod
    def sample(cls, endpoint_id: str, latency_ms: float) -> "ProbeEvent":
        return cls(EventKind.SAMPLE, endpoint_id, latency_ms)

    @classmethod
    def timeout(cls, endpoint_id: str) -> "ProbeEvent":
        return cls(EventKind.TIMEOUT, endpoint_id)

    @classmethod
    def complete(cls, endpoint_id: str) -> "ProbeEvent":
        return cls(EventKind.COMPLETE, endpoint_id)

    @classmethod
    def stopped(cls, endpoint_id: str) -> "ProbeEvent":
        return cls(EventKind.STOPPED, endpoint_id)

    @property
    def is_terminal(self) -> bool:
        """True for events that end a run."""
        return self.kind in (EventKind.COMPLETE, EventKind.STOPPED)


@dataclass(frozen=True)
class Stats:
    """Statistics snapshot derived from a session's samples and timeouts."""

    avg: float | None = None
    min: float | None = None
    max: float | None = None
    loss: float = 0.0


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a session, safe to hand to display code."""

    endpoint_id: str
    running: bool = False
    stopping: bool = False
    samples: tuple[float, ...] = ()
    timeout_count: int = 0
    stats: Stats = field(default_factory=Stats)
    recent: tuple[float, ...] = ()  # Bounded buffer for charting

    @property
    def attempts(self) -> int:
        """Number of probes accounted for so far."""
        return len(self.samples) + self.timeout_count
