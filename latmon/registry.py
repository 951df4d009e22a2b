"""Endpoint registry: built-in and custom endpoints and their sessions."""

import logging
from collections.abc import Iterable
from dataclasses import replace

from PySide6.QtCore import QObject, QThreadPool, Signal

from latmon.engine import ProbingEngine
from latmon.models import Endpoint, SessionSnapshot
from latmon.router import EventRouter, Subscription
from latmon.session import DEFAULT_SAMPLE_COUNT, Session
from latmon.store import Store
from latmon.workers import PersistWorker

logger = logging.getLogger(__name__)

# Store keys
SERVERS_KEY = "servers"  # List of custom endpoint dicts
FAVORITES_KEY = "favorites"  # List of favorite endpoint ids

DEFAULT_ENDPOINTS = (
    Endpoint("us-e", "US-East", "pingtest-atl.brawlhalla.com"),
    Endpoint("us-w", "US-West", "pingtest-cal.brawlhalla.com"),
    Endpoint("eu", "Europe", "pingtest-ams.brawlhalla.com"),
    Endpoint("sea", "Southeast Asia", "pingtest-sgp.brawlhalla.com"),
    Endpoint("aus", "Australia", "pingtest-aus.brawlhalla.com"),
    Endpoint("brz", "Brazil", "pingtest-brs.brawlhalla.com"),
    Endpoint("jpn", "Japan", "pingtest-jpn.brawlhalla.com"),
    Endpoint("mde", "Middle East", "pingtest-mde.brawlhalla.com"),
    Endpoint("saf", "Southern Africa", "pingtest-saf.brawlhalla.com"),
)


def merge_endpoints(
    builtins: Iterable[Endpoint],
    saved: Iterable | None,
    favorites: Iterable[str] | None,
) -> list[Endpoint]:
    """Merge built-in endpoints with persisted custom ones (pure function).

    Phase 1 seeds the result with every built-in. Phase 2 overlays persisted
    entries flagged as custom; anything else in the persisted list, malformed
    entries, and entries reusing a built-in id are ignored. Favorites are then
    applied as an annotation over the merged set.

    Args:
        builtins: Fixed built-in endpoints
        saved: Persisted custom endpoint dicts (may be None)
        favorites: Persisted favorite ids (may be None)

    Returns:
        Merged endpoints, built-ins first, in input order
    """
    merged: dict[str, Endpoint] = {}
    for endpoint in builtins:
        merged[endpoint.id] = replace(endpoint, favorite=False, custom=False)

    builtin_ids = set(merged)

    for entry in saved or ():
        if not isinstance(entry, dict) or not entry.get("custom"):
            continue
        try:
            endpoint = Endpoint.from_dict(entry)
        except ValueError:
            logger.warning("Ignoring malformed custom endpoint: %r", entry)
            continue
        if endpoint.id in builtin_ids:
            logger.warning("Ignoring custom endpoint shadowing built-in: %s", endpoint.id)
            continue
        merged[endpoint.id] = replace(endpoint, custom=True)

    favorite_ids = set(favorites or ())
    return [replace(e, favorite=e.id in favorite_ids) for e in merged.values()]


def sort_endpoints(endpoints: Iterable[Endpoint]) -> list[Endpoint]:
    """Return endpoints in display order: favorites first, then by name."""
    return sorted(endpoints, key=lambda e: (not e.favorite, e.name.casefold(), e.name))


class EndpointRegistry(QObject):
    """Owns the known endpoints and the Session of each endpoint.

    Key features:
    - Built-in endpoints are always present and never removable
    - Custom endpoints can be added, and removed while idle
    - Sessions are created on first use and subscribed to the event router
    - Every mutation persists the custom list and the favorite ids

    Thread-safe: All state access on Qt main thread via signals/slots.
    """

    # Signals
    endpoints_changed = Signal()
    persist_failed = Signal(str)  # Emits error message

    def __init__(
        self,
        store: Store,
        engine: ProbingEngine,
        router: EventRouter,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        builtins: Iterable[Endpoint] = DEFAULT_ENDPOINTS,
        thread_pool: QThreadPool | None = None,
        parent=None,
    ):
        """Initialize the registry with only built-in endpoints.

        Args:
            store: Persistence store for customs and favorites
            engine: Probing engine shared by all sessions
            router: Router delivering engine events to sessions
            sample_count: Probes per run
            builtins: Fixed built-in endpoints
            thread_pool: Pool for background writes; None writes inline
            parent: Qt parent object
        """
        super().__init__(parent)

        if sample_count <= 0:
            raise ValueError("sample_count must be positive")

        self.store = store
        self.engine = engine
        self.router = router
        self.sample_count = sample_count
        self.thread_pool = thread_pool

        self._builtins = tuple(builtins)
        self._endpoints: dict[str, Endpoint] = {
            e.id: e for e in merge_endpoints(self._builtins, None, None)
        }
        self._sessions: dict[str, Session] = {}
        self._subscriptions: dict[str, Subscription] = {}

    def load(self) -> list[Endpoint]:
        """Load customs and favorites from the store and merge them.

        Falls back to the built-in set when the store cannot be read.

        Returns:
            Endpoints in display order
        """
        try:
            saved = self.store.get(SERVERS_KEY)
            favorites = self.store.get(FAVORITES_KEY)
        except Exception as e:
            logger.warning("Store load failed, using built-in endpoints: %s", e, exc_info=True)
            saved, favorites = None, None

        if saved is not None and not isinstance(saved, list):
            logger.warning("Ignoring persisted endpoints of type %s", type(saved).__name__)
            saved = None
        if favorites is not None and not isinstance(favorites, list):
            logger.warning("Ignoring persisted favorites of type %s", type(favorites).__name__)
            favorites = None

        merged = merge_endpoints(self._builtins, saved, favorites)
        endpoints = {e.id: e for e in merged}

        # A running endpoint stays listed until its run ends; idle ones go now
        for endpoint_id in list(self._sessions):
            if endpoint_id in endpoints:
                continue
            session = self._sessions[endpoint_id]
            if session.running and endpoint_id in self._endpoints:
                logger.info("Keeping running endpoint missing from store: %s", endpoint_id)
                endpoints[endpoint_id] = self._endpoints[endpoint_id]
                merged.append(self._endpoints[endpoint_id])
            else:
                self._discard_session(endpoint_id)

        self._endpoints = endpoints

        logger.info(
            "Registry loaded: %d endpoints (%d custom, %d favorite)",
            len(merged),
            sum(1 for e in merged if e.custom),
            sum(1 for e in merged if e.favorite),
        )
        self.endpoints_changed.emit()
        return self.endpoints()

    def endpoints(self) -> list[Endpoint]:
        """Get all endpoints in display order."""
        return sort_endpoints(self._endpoints.values())

    def get(self, endpoint_id: str) -> Endpoint | None:
        return self._endpoints.get(endpoint_id)

    def add(self, endpoint: Endpoint) -> bool:
        """Add a custom endpoint.

        Returns:
            False if the id is taken or the endpoint is not custom
        """
        if not endpoint.custom:
            logger.warning("Rejected add of non-custom endpoint: %s", endpoint.id)
            return False

        if endpoint.id in self._endpoints:
            logger.warning("Rejected add of duplicate endpoint: %s", endpoint.id)
            return False

        self._endpoints[endpoint.id] = replace(endpoint)
        logger.info("Endpoint added: %s (%s)", endpoint.id, endpoint.address)
        self._after_mutation()
        return True

    def remove(self, endpoint_id: str) -> bool:
        """Remove a custom endpoint that has no active run.

        Returns:
            False if the endpoint is unknown, built-in, or running
        """
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            logger.debug("Remove ignored, unknown endpoint: %s", endpoint_id)
            return False

        if not endpoint.custom:
            logger.warning("Rejected removal of built-in endpoint: %s", endpoint_id)
            return False

        if self.is_running(endpoint_id):
            logger.warning("Rejected removal of running endpoint: %s", endpoint_id)
            return False

        del self._endpoints[endpoint_id]
        self._discard_session(endpoint_id)
        logger.info("Endpoint removed: %s", endpoint_id)
        self._after_mutation()
        return True

    def toggle_favorite(self, endpoint_id: str) -> bool:
        """Flip the favorite flag of an endpoint.

        Returns:
            False if the endpoint is unknown
        """
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            logger.debug("Favorite toggle ignored, unknown endpoint: %s", endpoint_id)
            return False

        self._endpoints[endpoint_id] = replace(endpoint, favorite=not endpoint.favorite)
        logger.debug("Favorite toggled: %s -> %s", endpoint_id, not endpoint.favorite)
        self._after_mutation()
        return True

    def session(self, endpoint_id: str) -> Session | None:
        """Get the session of an endpoint, creating it on first use.

        Returns:
            The Session, or None for an unknown endpoint
        """
        session = self._sessions.get(endpoint_id)
        if session is not None:
            return session

        if endpoint_id not in self._endpoints:
            return None

        session = Session(endpoint_id, self.engine, history_size=self.sample_count, parent=self)
        self._sessions[endpoint_id] = session
        self._subscriptions[endpoint_id] = self.router.subscribe(endpoint_id, session.handle_event)
        logger.debug("Session created: %s", endpoint_id)
        return session

    def snapshot(self, endpoint_id: str) -> SessionSnapshot | None:
        """Current snapshot of an endpoint; idle and empty if never started."""
        if endpoint_id not in self._endpoints:
            return None
        session = self._sessions.get(endpoint_id)
        if session is None:
            return SessionSnapshot(endpoint_id=endpoint_id)
        return session.snapshot()

    def start(self, endpoint_id: str) -> bool:
        """Start a run for an endpoint.

        Returns:
            True if the engine accepted the start
        """
        session = self.session(endpoint_id)
        if session is None:
            logger.warning("Start ignored, unknown endpoint: %s", endpoint_id)
            return False
        return session.start(self._endpoints[endpoint_id].address, self.sample_count)

    def stop(self, endpoint_id: str):
        """Request the run of an endpoint to stop."""
        session = self._sessions.get(endpoint_id)
        if session is None:
            logger.debug("Stop ignored, no session: %s", endpoint_id)
            return
        session.stop()

    def toggle(self, endpoint_id: str) -> bool:
        """Stop a running endpoint, or start an idle one.

        Returns:
            True if a new run was started
        """
        session = self.session(endpoint_id)
        if session is None:
            logger.warning("Toggle ignored, unknown endpoint: %s", endpoint_id)
            return False
        return session.toggle(self._endpoints[endpoint_id].address, self.sample_count)

    def stop_all(self):
        """Request every running session to stop."""
        for endpoint_id in self.running_ids():
            self._sessions[endpoint_id].stop()

    def is_running(self, endpoint_id: str) -> bool:
        session = self._sessions.get(endpoint_id)
        return session is not None and session.running

    def running_ids(self) -> list[str]:
        return [endpoint_id for endpoint_id, s in self._sessions.items() if s.running]

    def custom_projection(self) -> list[dict]:
        """Persisted form of the custom endpoints."""
        return [e.to_dict() for e in self._endpoints.values() if e.custom]

    def favorites_projection(self) -> list[str]:
        """Persisted form of the favorite ids."""
        return [e.id for e in self._endpoints.values() if e.favorite]

    def _discard_session(self, endpoint_id: str):
        subscription = self._subscriptions.pop(endpoint_id, None)
        if subscription is not None:
            subscription.unsubscribe()
        session = self._sessions.pop(endpoint_id, None)
        if session is not None:
            session.deleteLater()

    def _after_mutation(self):
        self._persist()
        self.endpoints_changed.emit()

    def _persist(self):
        """Write the custom list and favorite ids to the store."""
        items = {
            SERVERS_KEY: self.custom_projection(),
            FAVORITES_KEY: self.favorites_projection(),
        }

        if self.thread_pool is not None:
            worker = PersistWorker(self.store, items)
            worker.signals.error.connect(self._on_persist_error)
            self.thread_pool.start(worker)
            return

        try:
            for key, value in items.items():
                self.store.set(key, value)
        except Exception as e:
            logger.warning("Store save failed, keeping in-memory state: %s", e, exc_info=True)
            self._on_persist_error(str(e))

    def _on_persist_error(self, error_msg: str):
        self.persist_failed.emit(error_msg)
