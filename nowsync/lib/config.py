"""
Shared configuration loader for nowsync.

Loads a single JSON config file.  Search order:
  1. $NOWSYNC_CONFIG              (explicit path, e.g. from --config)
  2. /etc/nowsync/config.json     (system install)
  3. config.json                  (CWD — handy for local dev)

Usage:
    from nowsync.lib.config import cfg

    port        = cfg("surface", "port", default=8766)
    interval    = cfg("sync", "min_interval_ms", default=1000)
    mpv         = cfg("mpv")  # returns the whole dict
"""

import json
import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/nowsync/config.json",
    "config.json",
]

KNOWN_COMMANDS = ("play", "pause", "seekto", "seekbackward", "seekforward", "stop")


def _search_paths() -> list[str]:
    explicit = os.environ.get("NOWSYNC_CONFIG")
    if explicit:
        return [explicit] + _SEARCH_PATHS
    return list(_SEARCH_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    surface = config.get("surface") or {}
    for name in surface.get("commands") or ():
        if name not in KNOWN_COMMANDS:
            logger.warning("Config %s: unknown surface command '%s'", path, name)
    sync = config.get("sync") or {}
    unknown = set(sync) - {f.name for f in fields(SyncSettings)}
    if unknown:
        logger.warning("Config %s: unknown sync keys %s", path, ", ".join(sorted(unknown)))
    mpv = config.get("mpv") or {}
    if mpv.get("socket") and not os.path.isabs(mpv["socket"]):
        logger.warning("Config %s: mpv.socket should be an absolute path", path)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.info("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("surface")                      → config["surface"]
    cfg("surface", "port")              → config["surface"]["port"]
    cfg("sync", "min_interval_ms", default=1000)  → value or 1000
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


@dataclass(frozen=True)
class SyncSettings:
    """Tunables for the position shadow and the surface push policy."""

    min_interval_ms: float = 1000.0
    settle_window_ms: float = 15.0
    force_on_transition: bool = True
    spurious_epsilon: float = 0.5
    seek_tolerance: float = 0.5
    skip_seconds: float = 15.0

    @classmethod
    def from_config(cls) -> "SyncSettings":
        """Build settings from the ``sync`` config section.

        Values that are missing, non-numeric or negative fall back to the
        defaults above.
        """
        defaults = cls()
        values = {}
        for field in fields(cls):
            default = getattr(defaults, field.name)
            raw = cfg("sync", field.name, default=default)
            if isinstance(default, bool):
                values[field.name] = bool(raw)
                continue
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("sync.%s=%r is not a number — using %s",
                               field.name, raw, default)
                value = default
            if value < 0:
                logger.warning("sync.%s=%r is negative — using %s",
                               field.name, raw, default)
                value = default
            values[field.name] = value
        return cls(**values)
