"""Qt model exposing endpoints and their session statistics."""

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from latmon.models import SessionSnapshot
from latmon.registry import EndpointRegistry
from latmon.stats import format_loss, format_ms


class EndpointTableModel(QAbstractTableModel):
    """Table model with one row per endpoint, in registry display order.

    Rows follow the registry (reset on endpoints_changed); cells follow the
    sessions (dataChanged on every snapshot). Snapshots are cached per row so
    data() never touches live session state.
    """

    def __init__(self, registry: EndpointRegistry, parent=None):
        super().__init__(parent)
        self._registry = registry
        self._endpoints = []
        self._snapshots: dict[str, SessionSnapshot] = {}
        self._connected: set[str] = set()

        # Column definitions
        self._columns = ["", "Name", "Address", "Avg", "Min", "Max", "Loss", "Status"]

        # Cached strings to reduce allocations
        self._star_on = "★"
        self._star_off = "☆"

        registry.endpoints_changed.connect(self.refresh)
        self.refresh()

    def rowCount(self, parent=QModelIndex()):
        """Return the number of rows (endpoints)."""
        if parent.isValid():
            return 0
        return len(self._endpoints)

    def columnCount(self, parent=QModelIndex()):
        """Return the number of columns."""
        if parent.isValid():
            return 0
        return len(self._columns)

    def data(self, index, role=Qt.DisplayRole):
        """Return data for a given cell."""
        if not index.isValid():
            return None

        if index.row() >= len(self._endpoints) or index.row() < 0:
            return None

        endpoint = self._endpoints[index.row()]
        snapshot = self._snapshots.get(endpoint.id) or SessionSnapshot(endpoint.id)
        col = index.column()

        if role == Qt.DisplayRole:
            if col == 0:  # Favorite
                return self._star_on if endpoint.favorite else self._star_off
            elif col == 1:
                return endpoint.name
            elif col == 2:
                return endpoint.address
            elif col == 3:
                return format_ms(snapshot.stats.avg)
            elif col == 4:
                return format_ms(snapshot.stats.min)
            elif col == 5:
                return format_ms(snapshot.stats.max)
            elif col == 6:
                return format_loss(snapshot.stats.loss)
            elif col == 7:
                return self._status_text(snapshot)

        elif role == Qt.TextAlignmentRole:
            if 3 <= col <= 6:  # Numbers - right aligned
                return Qt.AlignRight | Qt.AlignVCenter
            elif col == 0:
                return Qt.AlignCenter
            else:
                return Qt.AlignLeft | Qt.AlignVCenter

        elif role == Qt.UserRole:
            return endpoint.id

        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        """Return header data."""
        if role == Qt.DisplayRole and orientation == Qt.Horizontal:
            if 0 <= section < len(self._columns):
                return self._columns[section]
        return None

    def flags(self, index):
        """Return item flags (read-only)."""
        if not index.isValid():
            return Qt.NoItemFlags
        return Qt.ItemIsEnabled | Qt.ItemIsSelectable

    def refresh(self):
        """Reload rows from the registry and track any new sessions."""
        self.beginResetModel()
        self._endpoints = self._registry.endpoints()
        live_ids = {e.id for e in self._endpoints}
        self._snapshots = {
            endpoint_id: snapshot
            for endpoint_id, snapshot in self._snapshots.items()
            if endpoint_id in live_ids
        }
        self._connected &= live_ids
        self.endResetModel()

        for endpoint in self._endpoints:
            self.track(endpoint.id)

    def track(self, endpoint_id: str):
        """Follow the session of an endpoint so its row updates live."""
        if endpoint_id in self._connected:
            return
        session = self._registry.session(endpoint_id)
        if session is None:
            return
        session.changed.connect(self._on_session_changed)
        self._connected.add(endpoint_id)
        self._snapshots[endpoint_id] = session.snapshot()

    def row_of(self, endpoint_id: str) -> int:
        """Row of an endpoint, or -1 if absent."""
        for row, endpoint in enumerate(self._endpoints):
            if endpoint.id == endpoint_id:
                return row
        return -1

    def _on_session_changed(self, snapshot: SessionSnapshot):
        self._snapshots[snapshot.endpoint_id] = snapshot
        row = self.row_of(snapshot.endpoint_id)
        if row < 0:
            return
        self.dataChanged.emit(self.index(row, 3), self.index(row, len(self._columns) - 1))

    @staticmethod
    def _status_text(snapshot: SessionSnapshot) -> str:
        if snapshot.stopping:
            return "Stopping"
        if snapshot.running:
            return "Pinging"
        return "Idle"
