"""Logging setup for the latmon command line."""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"


def parse_level(value: str | None, default: int | None = logging.INFO) -> int | None:
    """Turn a level name or number into a logging level.

    Returns:
        The level, default for an empty value, or None if unrecognized
    """
    if value is None or not value.strip():
        return default

    value = value.strip()
    if value.isdigit():
        return int(value)

    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else None


def parse_overrides(value: str | None) -> tuple[dict[str, int], list[str]]:
    """Parse ``name=LEVEL`` pairs separated by commas.

    Returns:
        (levels by logger name, entries that could not be parsed)
    """
    overrides = {}
    rejected = []
    for item in (value or "").split(","):
        if not item.strip():
            continue
        name, sep, level_str = item.partition("=")
        level = parse_level(level_str, default=None) if sep else None
        if not name.strip() or level is None:
            rejected.append(item.strip())
            continue
        overrides[name.strip()] = level
    return overrides, rejected


def configure_logging() -> int:
    """Configure stderr logging for the command line.

    Environment Variables:
        LATMON_LOG_LEVEL: root level, a name (DEBUG, INFO, ...) or a number.
            Default is INFO; unknown values fall back to it with a warning.
        LATMON_LOG_MODULES: per-logger levels, e.g.
            ``latmon.router=DEBUG,latmon.engine=WARNING``

    Examples:
        # Follow event routing without the engine's per-tick noise
        $ LATMON_LOG_MODULES=latmon.router=DEBUG python -m latmon ping eu

    Returns:
        The root level that was applied
    """
    raw_level = os.environ.get("LATMON_LOG_LEVEL")
    level = parse_level(raw_level)

    logging.basicConfig(
        level=level if level is not None else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )

    logger = logging.getLogger(__name__)
    if level is None:
        logger.warning("Unknown LATMON_LOG_LEVEL %r, using INFO", raw_level)
        level = logging.INFO

    overrides, rejected = parse_overrides(os.environ.get("LATMON_LOG_MODULES"))
    for name, module_level in overrides.items():
        logging.getLogger(name).setLevel(module_level)
    for item in rejected:
        logger.warning("Ignoring LATMON_LOG_MODULES entry %r", item)

    logger.debug(
        "Logging configured: level=%s, overrides=%s", logging.getLevelName(level), overrides
    )
    return level
