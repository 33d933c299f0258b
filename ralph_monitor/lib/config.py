"""
Configuration loader for ralph-monitor.

Values are resolved in order: explicit overrides (CLI flags), environment
variables, tasks/monitor.env, then defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import envparse

logger = logging.getLogger(__name__)

DEFAULT_PORT = 7420
DEFAULT_HOST = "127.0.0.1"
DEFAULT_STALE_SECONDS = 600
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_HEARTBEAT_INTERVAL = 15.0

ENV_FILE_NAME = "monitor.env"
FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class MonitorConfig:
    """Resolved settings for one monitoring session."""
    work_dir: Path
    tasks_dir: Path
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    stale_seconds: int = DEFAULT_STALE_SECONDS
    translate_enabled: bool = True
    poll_interval: float = DEFAULT_POLL_INTERVAL
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL


def parse_bool(raw: Optional[str], default: bool) -> bool:
    """Parse an on/off flag. Anything other than 0/false/no/off is true."""
    if raw is None:
        return default
    normalized = str(raw).strip().lower()
    if not normalized:
        return default
    return normalized not in FALSE_VALUES


def _parse_int(raw: Optional[str], default: int, name: str) -> int:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning(f"Invalid {name} '{raw}', using {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name} '{raw}' (must be positive), using {default}")
        return default
    return value


def _load_env_file(tasks_dir: Path) -> dict[str, str]:
    env_path = tasks_dir / ENV_FILE_NAME
    try:
        return envparse.load_env(env_path, required=False)
    except ValueError as e:
        logger.warning(f"Ignoring {env_path}: {e}")
        return {}


def load_config(
    work_dir: Optional[str] = None,
    port: Optional[int] = None,
    host: Optional[str] = None,
    stale_seconds: Optional[int] = None,
    translate: Optional[bool] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MonitorConfig:
    """Build a MonitorConfig from overrides, the environment and monitor.env."""
    if environ is None:
        environ = os.environ

    resolved_dir = Path(work_dir or environ.get("WORK_DIR") or Path.cwd()).resolve()
    tasks_dir = resolved_dir / "tasks"
    file_env = _load_env_file(tasks_dir)

    if port is None:
        port = _parse_int(environ.get("PORT", file_env.get("PORT")), DEFAULT_PORT, "PORT")

    if host is None:
        host = environ.get("HOST") or file_env.get("HOST") or DEFAULT_HOST

    if stale_seconds is None:
        stale_seconds = _parse_int(
            environ.get("STALE_SECONDS", file_env.get("STALE_SECONDS")),
            DEFAULT_STALE_SECONDS,
            "STALE_SECONDS",
        )

    if translate is None:
        raw = environ.get("RALPH_DASHBOARD_TRANSLATE", file_env.get("TRANSLATE"))
        translate = parse_bool(raw, default=True)

    return MonitorConfig(
        work_dir=resolved_dir,
        tasks_dir=tasks_dir,
        port=port,
        host=host,
        stale_seconds=stale_seconds,
        translate_enabled=translate,
    )
