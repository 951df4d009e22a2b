"""Entry point for the latmon command-line client."""

import argparse
import logging
import signal
import sys

from PySide6.QtCore import QCoreApplication, QThreadPool, QTimer, Qt

from latmon.config import AppConfig
from latmon.engine import EngineError, SimulatedEngine
from latmon.logging_config import configure_logging
from latmon.registry import EndpointRegistry
from latmon.router import EventRouter
from latmon.store import JsonFileStore
from latmon.ui.endpoint_model import EndpointTableModel
from latmon.validation import new_custom_endpoint

# Configure logging early
configure_logging()
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="latmon", description="Live latency monitor")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("list", help="List endpoints")

    ping = commands.add_parser("ping", help="Run latency sessions")
    ping.add_argument("ids", nargs="*", help="Endpoint ids (default: all)")

    add = commands.add_parser("add", help="Add a custom endpoint")
    add.add_argument("name")
    add.add_argument("address")

    remove = commands.add_parser("remove", help="Remove a custom endpoint")
    remove.add_argument("id")

    favorite = commands.add_parser("favorite", help="Toggle favorite flag")
    favorite.add_argument("id")

    return parser


def render_table(model: EndpointTableModel) -> str:
    """Render the endpoint model as fixed-width text."""
    rows = [
        [model.headerData(col, Qt.Horizontal) for col in range(model.columnCount())]
    ]
    for row in range(model.rowCount()):
        rows.append(
            [model.data(model.index(row, col), Qt.DisplayRole) for col in range(model.columnCount())]
        )

    widths = [max(len(str(r[col])) for r in rows) for col in range(len(rows[0]))]
    return "\n".join(
        "  ".join(str(cell).ljust(width) for cell, width in zip(r, widths)).rstrip() for r in rows
    )


def run_sessions(app: QCoreApplication, registry: EndpointRegistry, ids: list[str]) -> int:
    """Start sessions and spin the event loop until all of them are idle."""
    started = []
    for endpoint_id in ids:
        if registry.get(endpoint_id) is None:
            print(f"Unknown endpoint: {endpoint_id}", file=sys.stderr)
            continue
        try:
            if registry.start(endpoint_id):
                started.append(endpoint_id)
            else:
                print(f"Could not start {endpoint_id}", file=sys.stderr)
        except EngineError as e:
            print(f"Could not start {endpoint_id}: {e}", file=sys.stderr)

    if not started:
        return 1

    def on_changed(_snapshot):
        if not registry.running_ids():
            app.quit()

    for endpoint_id in started:
        registry.session(endpoint_id).changed.connect(on_changed)

    def on_interrupt(_signum, _frame):
        logger.info("Interrupted, stopping %d sessions", len(registry.running_ids()))
        registry.stop_all()

    previous_handler = signal.signal(signal.SIGINT, on_interrupt)

    # Give the interpreter a chance to run Python signal handlers
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(200)

    try:
        app.exec()
    finally:
        heartbeat.stop()
        signal.signal(signal.SIGINT, previous_handler)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the latmon client."""
    args = build_parser().parse_args(argv)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("latmon")

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    engine = SimulatedEngine(interval_ms=config.interval_ms, seed=config.seed)
    router = EventRouter()
    engine.event.connect(router.dispatch)

    # Single writer keeps persistence writes in order
    pool = QThreadPool()
    pool.setMaxThreadCount(1)

    registry = EndpointRegistry(
        JsonFileStore(config.store_path),
        engine,
        router,
        sample_count=config.sample_count,
        thread_pool=pool,
    )
    registry.load()
    model = EndpointTableModel(registry)

    command = args.command or "list"
    status = 0

    try:
        if command == "list":
            print(render_table(model))

        elif command == "ping":
            ids = args.ids or [e.id for e in registry.endpoints() if not e.custom]
            status = run_sessions(app, registry, ids)
            print(render_table(model))

        elif command == "add":
            try:
                endpoint = new_custom_endpoint(
                    args.name, args.address, [e.id for e in registry.endpoints()]
                )
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                status = 1
            else:
                registry.add(endpoint)
                print(f"Added {endpoint.id}: {endpoint.name} ({endpoint.address})")

        elif command == "remove":
            if registry.remove(args.id):
                print(f"Removed {args.id}")
            else:
                print(f"Cannot remove {args.id} (unknown, built-in, or running)", file=sys.stderr)
                status = 1

        elif command == "favorite":
            if registry.toggle_favorite(args.id):
                endpoint = registry.get(args.id)
                print(f"{endpoint.name}: favorite={endpoint.favorite}")
            else:
                print(f"Unknown endpoint: {args.id}", file=sys.stderr)
                status = 1
    finally:
        engine.stop_all()
        pool.waitForDone(2000)

    return status


if __name__ == "__main__":
    sys.exit(main())
