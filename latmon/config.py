"""Environment-driven configuration for latmon."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from PySide6.QtCore import QStandardPaths

from latmon.session import DEFAULT_SAMPLE_COUNT

logger = logging.getLogger(__name__)

STORE_FILENAME = "servers.json"


def default_store_path() -> Path:
    """Location of the JSON store when LATMON_STORE_PATH is not set."""
    location = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppConfigLocation)
    if location:
        return Path(location) / STORE_FILENAME
    return Path.home() / ".latmon" / STORE_FILENAME


def _positive_int(env: dict, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass
class AppConfig:
    """Runtime settings for the command-line client."""

    store_path: Path
    sample_count: int = DEFAULT_SAMPLE_COUNT
    interval_ms: int = 1000
    seed: int | None = None

    @classmethod
    def from_env(cls, env: dict | None = None) -> "AppConfig":
        """Build configuration from environment variables.

        Environment Variables:
            LATMON_STORE_PATH: JSON store file (default: app config dir)
            LATMON_SAMPLE_COUNT: Probes per run (default: 100)
            LATMON_INTERVAL_MS: Simulated probe interval (default: 1000)
            LATMON_SEED: Seed for the simulated engine (default: random)

        Raises:
            ValueError: naming the variable that holds an invalid value
        """
        if env is None:
            env = dict(os.environ)

        store_path = env.get("LATMON_STORE_PATH")
        seed_raw = env.get("LATMON_SEED")
        seed = None
        if seed_raw is not None and seed_raw.strip() != "":
            try:
                seed = int(seed_raw)
            except ValueError:
                raise ValueError(f"LATMON_SEED must be an integer, got {seed_raw!r}") from None

        config = cls(
            store_path=Path(store_path).expanduser() if store_path else default_store_path(),
            sample_count=_positive_int(env, "LATMON_SAMPLE_COUNT", DEFAULT_SAMPLE_COUNT),
            interval_ms=_positive_int(env, "LATMON_INTERVAL_MS", 1000),
            seed=seed,
        )
        logger.debug("Configuration: %s", config)
        return config
